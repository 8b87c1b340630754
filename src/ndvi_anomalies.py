"""
ndvi_anomalies.py
==================
Landsat 7 NDVI anomalies over vegetated land (ESA WorldCover trees, shrubland,
herbaceous) for a country or a custom AOI.

Monthly NDVI is averaged for every (year, month) of the charting period. The
baseline is the mean of each calendar month over the baseline dates, and the
anomaly of a month is its NDVI minus the baseline of the same month. A single
"mean anomaly" raster compares the mean NDVI of the study period with the mean
of the baseline period inside a day of year window.

Landsat 7 (ETM+, 2000-2020 here) covers the whole baseline period at 30 m. For
other periods swap COLLECTION and the red/NIR band names:
- Landsat 5 TM  LANDSAT/LT05/C02/T1_L2  (1984-2012, red SR_B3, NIR SR_B4)
- Landsat 8 OLI LANDSAT/LC08/C02/T1_L2  (2013-, red SR_B4, NIR SR_B5)

Usage: python src/ndvi_anomalies.py
"""

import ee
import pandas as pd

from gee_common import (
    initialize_gee,
    resolve_aoi,
    aoi_outline,
    export_image,
    export_table,
    features_to_dataframe,
    centroid_latlon,
    output_dir,
    print_banner,
    MAX_PIXELS,
    TASKS_URL,
)

# USER SETTINGS
COUNTRY_NAME = "Kenya"
USE_CUSTOM_AOI = True
AOI_SOURCE = "data/aoi.geojson"   # local vector file or asset id (users/..., FAO/GAUL/2015/level1)

# charting period (monthly NDVI)
START_YEAR = 2000
END_YEAR = 2020
START_MONTH = 1
END_MONTH = 12

# baseline (reference conditions)
BASELINE_START = "2000-01-01"
BASELINE_END = "2015-02-28"
BASELINE_DOY_START = 1
BASELINE_DOY_END = 365

# study period (deviations from the baseline)
ANOMALY_START = "2015-03-01"
ANOMALY_END = "2018-07-31"

# date range for the Landsat collection
FILTER_START = "2000-01-01"
FILTER_END = "2020-12-31"

SCALE = 100   # 30m native, 100m recommended for speed

# WorldCover classes kept: 10 trees, 20 shrubland, 30 herbaceous vegetation
LC_CLASSES = [10, 20, 30]

COLLECTION = "LANDSAT/LE07/C02/T1_L2"
WORLDCOVER = "ESA/WorldCover/v200"
NIR_BAND = "SR_B4"
RED_BAND = "SR_B3"

ANOMALY_VIS = {"min": -0.1, "max": 0.1, "palette": ["FF0000", "000000", "00FF00"]}


def year_of(date_string):
    return str(date_string)[:4]


def month_sequence(start_year, end_year, start_month=1, end_month=12):
    """(year, month) pairs of the charting period, in time order."""
    if start_year > end_year:
        raise ValueError(f"start_year {start_year} is after end_year {end_year}")
    if not (1 <= start_month <= 12 and 1 <= end_month <= 12):
        raise ValueError("Months must be between 1 and 12")
    return [
        (year, month)
        for year in range(start_year, end_year + 1)
        for month in range(start_month, end_month + 1)
    ]


# PREPROCESSING

def prep_sr_l7(image):
    """Mask clouds, shadows and saturated pixels and apply the Collection 2 scale factors."""
    qa_mask = image.select("QA_PIXEL").bitwiseAnd(int("11111", 2)).eq(0)
    saturation_mask = image.select("QA_RADSAT").eq(0)

    def _factor_image(factor_names):
        factors = image.toDictionary().select(factor_names).values()
        return ee.Image.constant(factors)

    scale_img = _factor_image(["REFLECTANCE_MULT_BAND_.|TEMPERATURE_MULT_BAND_ST_B6"])
    offset_img = _factor_image(["REFLECTANCE_ADD_BAND_.|TEMPERATURE_ADD_BAND_ST_B6"])
    scaled = image.select("SR_B.|ST_B6").multiply(scale_img).add(offset_img)

    return image.addBands(scaled, None, True).updateMask(qa_mask).updateMask(saturation_mask)


def vegetation_mask(lc, classes=LC_CLASSES):
    """1 where the land cover is any of classes."""
    if not classes:
        raise ValueError("At least one land cover class is needed")
    mask = lc.eq(classes[0])
    for value in classes[1:]:
        mask = mask.Or(lc.eq(value))
    return mask


def make_add_ndvi(lc, classes=LC_CLASSES):
    veg_mask = vegetation_mask(lc, classes)

    def _add_ndvi(image):
        ndvi = image.normalizedDifference([NIR_BAND, RED_BAND]).rename("NDVI")
        return image.addBands(ndvi.updateMask(veg_mask))

    return _add_ndvi


# MONTHLY NDVI AND ANOMALIES

def monthly_ndvi(with_ndvi, start_year, end_year, start_month=1, end_month=12):
    images = []
    for year, month in month_sequence(start_year, end_year, start_month, end_month):
        image = (
            with_ndvi.select("NDVI")
            .filter(ee.Filter.calendarRange(year, year, "year"))
            .filter(ee.Filter.calendarRange(month, month, "month"))
            .mean()
        )
        images.append(image.set({
            "year": year,
            "month": month,
            "system:time_start": ee.Date.fromYMD(year, month, 1).millis(),
            "n_bands": image.bandNames().size(),
        }))
    return ee.ImageCollection.fromImages(images)


def empty_months(monthly):
    """YYYY-MM of the months without any valid image."""
    return (
        monthly.filter(ee.Filter.eq("n_bands", 0))
        .aggregate_array("system:time_start")
        .map(lambda ms: ee.Date(ms).format("YYYY-MM"))
    )


def baseline_monthly_mean(monthly, baseline_start, baseline_end):
    baseline = monthly.filterDate(baseline_start, baseline_end)
    return ee.ImageCollection.fromImages([
        baseline.filter(ee.Filter.eq("month", month)).mean().set("month", month)
        for month in range(1, 13)
    ])


def make_compute_anomaly(reference_months):
    """Mapping function: monthly NDVI minus the baseline of the same month."""

    def _compute_anomaly(image):
        month = image.get("month")
        reference = ee.Image(reference_months.filter(ee.Filter.eq("month", month)).first())
        has_bands = image.bandNames().size().gt(0)

        anomaly = ee.Algorithms.If(
            has_bands,
            ee.Algorithms.If(
                reference.bandNames().size().gt(0),
                image.subtract(reference),
                image,
            ),
            image,
        )
        return ee.Image(anomaly).set({
            "system:time_start": image.get("system:time_start"),
            "year": image.get("year"),
            "month": month,
        })

    return _compute_anomaly


def anomaly_table(anomalies, geometry, scale=SCALE):
    def _mean_feature(image):
        mean = image.reduceRegion(
            reducer=ee.Reducer.mean(),
            geometry=geometry,
            scale=scale,
            maxPixels=MAX_PIXELS,
            bestEffort=True,
        )
        return ee.Feature(None, mean).set({
            "year": image.get("year"),
            "month": image.get("month"),
            "system:time_start": image.get("system:time_start"),
        })

    return anomalies.map(_mean_feature)


def anomaly_frame(fc_info):
    """Monthly table fetched with getInfo() -> DataFrame with a date column, sorted by date."""
    df = features_to_dataframe(fc_info, columns=["year", "month", "NDVI"])
    df = df.dropna(subset=["year", "month"]).copy()
    if df.empty:
        df["date"] = pd.Series(dtype="datetime64[ns]")
        return df
    parts = pd.DataFrame({
        "year": df["year"].astype(int),
        "month": df["month"].astype(int),
        "day": 1,
    })
    df["date"] = pd.to_datetime(parts)
    return df.sort_values("date").reset_index(drop=True)


def mean_anomaly(with_ndvi, baseline_start, baseline_end, doy_start, doy_end,
                 study_start, study_end, geometry):
    """(study mean NDVI, baseline mean NDVI, study - baseline) images."""
    baseline = (
        with_ndvi.filterDate(baseline_start, baseline_end)
        .select("NDVI")
        .filter(ee.Filter.dayOfYear(doy_start, doy_end))
        .mean()
    )
    study = with_ndvi.filterDate(study_start, study_end).select("NDVI").mean().clip(geometry)
    anomaly = study.subtract(baseline).rename("NDVI_mean_anomaly").clip(geometry)
    return study, baseline, anomaly


# MAIN EXECUTION

def run_ndvi_analysis(
    country_name=COUNTRY_NAME,
    use_custom_aoi=USE_CUSTOM_AOI,
    aoi_source=AOI_SOURCE,
    start_year=START_YEAR,
    end_year=END_YEAR,
    start_month=START_MONTH,
    end_month=END_MONTH,
    baseline_start=BASELINE_START,
    baseline_end=BASELINE_END,
    baseline_doy_start=BASELINE_DOY_START,
    baseline_doy_end=BASELINE_DOY_END,
    anomaly_start=ANOMALY_START,
    anomaly_end=ANOMALY_END,
    filter_start=FILTER_START,
    filter_end=FILTER_END,
    scale=SCALE,
    lc_classes=LC_CLASSES,
    output_prefix=None,
    make_map=True,
    make_charts=True,
):
    month_sequence(start_year, end_year, start_month, end_month)
    initialize_gee()

    if output_prefix is None:
        output_prefix = f"NDVI_Anomaly_{country_name}"
    aoi = resolve_aoi(use_custom_aoi, country_name, aoi_source, "Custom AOI (imported)")
    output_prefix = f"{output_prefix}_{aoi.tag}"
    geometry = aoi.geometry

    print_banner("LANDSAT NDVI ANOMALY ANALYSIS", [
        f"AOI: {aoi.label}",
        f"Baseline period: {baseline_start} to {baseline_end}",
        f"Study period: {anomaly_start} to {anomaly_end}",
    ])

    print("[1/4] Landsat 7 collection and NDVI...")
    dataset = ee.ImageCollection(COLLECTION).filterDate(filter_start, filter_end).filterBounds(geometry)
    print(f"  Landsat 7 images available: {dataset.size().getInfo()}")

    lc = ee.ImageCollection(WORLDCOVER).first().clip(geometry)
    with_ndvi = dataset.map(prep_sr_l7).map(make_add_ndvi(lc, lc_classes))
    print(f"  Baseline images: {with_ndvi.filterDate(baseline_start, baseline_end).size().getInfo()}")

    print("\n[2/4] Monthly NDVI and anomalies...")
    monthly = monthly_ndvi(with_ndvi, start_year, end_year, start_month, end_month)
    missing = empty_months(monthly).getInfo()
    if missing:
        print(f"  Months with empty NDVI ({len(missing)}): {', '.join(missing)}")

    reference = baseline_monthly_mean(monthly, baseline_start, baseline_end)
    anomalies = monthly.map(make_compute_anomaly(reference)).filterDate(anomaly_start, anomaly_end)
    table = anomaly_table(anomalies, geometry, scale)

    print("\n[3/4] Mean anomaly image...")
    study_mean, baseline, anomaly = mean_anomaly(
        with_ndvi, baseline_start, baseline_end, baseline_doy_start, baseline_doy_end,
        anomaly_start, anomaly_end, geometry,
    )

    if make_charts:
        from charts import plot_time_series

        df = anomaly_frame(table.getInfo())
        df = df.dropna(subset=["NDVI"])
        if df.empty:
            print("  No valid monthly anomaly in the study period, skipping chart")
        else:
            plot_time_series(
                df["date"], df["NDVI"],
                title=f"Monthly NDVI anomaly ({anomaly_start} to {anomaly_end})",
                ylabel="NDVI anomaly",
                label="NDVI anomaly",
                out_path=output_dir() / f"{output_prefix}_monthly_anomaly.png",
            )

    if make_map:
        from map_layers import create_analysis_map, add_ee_layer, save_map

        m = create_analysis_map(centroid_latlon(geometry), zoom_start=6)
        add_ee_layer(m, aoi_outline(aoi.collection), {}, aoi.label)
        add_ee_layer(m, anomaly, ANOMALY_VIS, "NDVI anomaly (mean)")
        save_map(m, output_dir() / f"{output_prefix}_map.html")

    print("\n[4/4] Queuing exports...")
    baseline_years = f"{year_of(baseline_start)}_{year_of(baseline_end)}"
    study_years = f"{year_of(anomaly_start)}_{year_of(anomaly_end)}"
    tasks = [
        export_table(table, f"{output_prefix}_Monthly_Anomalies", selectors=["year", "month", "NDVI"]),
        export_image(anomaly, f"{output_prefix}_Mean_Anomaly_{start_year}_{end_year}",
                     geometry, scale, crs="EPSG:4326"),
        export_image(baseline, f"{output_prefix}_Baseline_NDVI_{baseline_years}",
                     geometry, scale, crs="EPSG:4326"),
        export_image(study_mean, f"{output_prefix}_Study_NDVI_{study_years}",
                     geometry, scale, crs="EPSG:4326"),
    ]

    print_banner("=== ALL EXPORTS QUEUED ===", [
        f"Output prefix: {output_prefix}",
        f"AOI: {aoi.label}",
        f"Baseline period: {baseline_start} to {baseline_end}",
        f"Study period: {anomaly_start} to {anomaly_end}",
        f"Task manager: {TASKS_URL}",
    ])
    return tasks


if __name__ == "__main__":
    run_ndvi_analysis()
