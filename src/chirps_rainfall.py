# CHIRPS rainfall analysis over admin boundaries (or a custom AOI)
# the script is organized in 4 phases:
# 1. user settings: country, admin level and name filters, study period, baseline years,
#    day of year window and output prefix
# 2. helper functions
#   2.1 study_total: total rainfall of the study period (sum of the daily images)
#   2.2 seasonal_baseline: for every baseline year sum the days inside the day of year window,
#       then average those yearly totals. This is the "normal" rainfall for the season
#   2.3 rainfall_anomaly: study total - baseline, with the baseline masked like the study image
#   2.4 admin_stats: mean/min/max/sum of the study total for every admin unit + centroid coords
#   2.5 chart_values: only the per-unit means (and names) for the chart, as plain lists
# 3. main execution: map, chart and export of the three rasters and the two tables
#
# how to run: python src/chirps_rainfall.py

import ee

from gee_common import (
    initialize_gee,
    resolve_aoi,
    admin_aoi,
    aoi_outline,
    combined_reducer,
    reduce_regions_clean,
    add_centroid_coordinates,
    export_image,
    export_table,
    centroid_latlon,
    output_dir,
    print_banner,
    TASKS_URL,
)

# PHASE 1 USER SETTINGS

COUNTRY_NAME = "Portugal"

# True = custom AOI (local vector file or any asset id, e.g. FAO/GAUL/2015/level1), False = GAUL admin boundaries
USE_CUSTOM_AOI = False
CUSTOM_AOI_SOURCE = None

# 0 = country, 1 = regions/provinces, 2 = municipalities/counties
ADMIN_LEVEL = 2
ADMIN1_NAMES = []            # e.g. ["Lisboa", "Porto"], empty = all
ADMIN2_NAMES = ["Odemira"]   # e.g. ["Odemira"], empty = all

STUDY_START = "2024-01-01"
STUDY_END = "2024-12-31"

BASELINE_START_YEAR = 2000
BASELINE_END_YEAR = 2015

# day of year window for the seasonal baseline
DOY_START = 1
DOY_END = 365

SCALE = 250

CHIRPS_DAILY = "UCSB-CHG/CHIRPS/DAILY"

RAIN_VIS = {
    "min": 50,
    "max": 600,
    "palette": ["#f1eef6", "#bdc9e1", "#74a9cf", "#2b8cbe", "#045a8d"],
}
ANOMALY_VIS = {
    "min": -300,
    "max": 300,
    "palette": ["#67001f", "#b2182b", "#d6604d", "#f4a582", "#fddbc7",
                "#e0e0e0",
                "#d1e5f0", "#92c5de", "#4393c3", "#2166ac", "#053061"],
}


def validate_settings(admin_level, baseline_start_year, baseline_end_year, doy_start, doy_end):
    if admin_level not in (0, 1, 2):
        raise ValueError(f"admin_level must be 0, 1, or 2 (got {admin_level!r})")
    if baseline_start_year > baseline_end_year:
        raise ValueError(
            f"Baseline start year {baseline_start_year} is after end year {baseline_end_year}"
        )
    for doy in (doy_start, doy_end):
        if not 1 <= doy <= 366:
            raise ValueError(f"Day of year must be between 1 and 366 (got {doy})")


def stats_selectors(admin_level, use_custom_aoi=False):
    """Columns of the per-unit statistics CSV."""
    values = ["longitude", "latitude", "mean", "min", "max", "sum"]
    if use_custom_aoi:
        return values
    names = ["ADM0_NAME", "ADM1_NAME", "ADM2_NAME"][: admin_level + 1]
    return names + values


# PHASE 2 HELPER FUNCTIONS

def load_chirps(geometry):
    return ee.ImageCollection(CHIRPS_DAILY).select("precipitation").filterBounds(geometry)


def study_total(chirps, start_date, end_date, geometry):
    return chirps.filter(ee.Filter.date(start_date, end_date)).sum().clip(geometry)


def seasonal_baseline(chirps, start_year, end_year, doy_start, doy_end, geometry):
    """Mean over the baseline years of the per-year rainfall total inside the DOY window."""
    seasonal = chirps.filter(ee.Filter.dayOfYear(doy_start, doy_end))
    yearly_totals = [
        seasonal.filter(ee.Filter.calendarRange(year, year, "year"))
        .sum()
        .clip(geometry)
        .set("year", year)
        for year in range(start_year, end_year + 1)
    ]
    return ee.ImageCollection.fromImages(yearly_totals).mean()


def rainfall_anomaly(study, baseline, geometry):
    baseline_masked = baseline.updateMask(study.mask())
    return study.subtract(baseline_masked).clip(geometry)


def admin_stats(study, collection, scale=SCALE):
    stats = reduce_regions_clean(
        study,
        collection,
        combined_reducer(["mean", "min", "max", "sum"]),
        scale,
        not_null="mean",
    )
    return add_centroid_coordinates(stats)


def unit_name_column(admin_level, use_custom_aoi=False):
    """Admin name shown on the chart axis, None for a custom AOI."""
    if use_custom_aoi:
        return None
    return f"ADM{admin_level}_NAME"


def chart_values(stats, name_column=None):
    """Only the columns the chart needs, as lists (no geometries, no 5000 feature limit)."""
    columns = {"mean": stats.aggregate_array("mean")}
    if name_column:
        columns["name"] = stats.aggregate_array(name_column)
    return ee.Dictionary(columns)


# PHASE 3 MAIN EXECUTION

def run_chirps_analysis(
    country_name=COUNTRY_NAME,
    use_custom_aoi=USE_CUSTOM_AOI,
    custom_aoi_source=CUSTOM_AOI_SOURCE,
    admin_level=ADMIN_LEVEL,
    admin1_names=ADMIN1_NAMES,
    admin2_names=ADMIN2_NAMES,
    study_start=STUDY_START,
    study_end=STUDY_END,
    baseline_start_year=BASELINE_START_YEAR,
    baseline_end_year=BASELINE_END_YEAR,
    doy_start=DOY_START,
    doy_end=DOY_END,
    scale=SCALE,
    output_prefix=None,
    make_map=True,
    make_charts=True,
):
    validate_settings(admin_level, baseline_start_year, baseline_end_year, doy_start, doy_end)
    initialize_gee()

    if output_prefix is None:
        output_prefix = f"Rainfall_{country_name}"

    if use_custom_aoi:
        aoi = resolve_aoi(True, country_name, custom_aoi_source, "Custom AOI (imported)")
    else:
        aoi = admin_aoi(country_name, admin_level, admin1_names, admin2_names)
        print(f"  Using GAUL admin boundaries: {aoi.label}")
    output_prefix = f"{output_prefix}_{aoi.tag}"

    print_banner("CHIRPS RAINFALL ANALYSIS", [
        f"AOI: {aoi.label}",
        f"Study period: {study_start} to {study_end}",
        f"Baseline period: {baseline_start_year} to {baseline_end_year} (DOY {doy_start}-{doy_end})",
    ])
    print(f"  AOI feature count: {aoi.collection.size().getInfo()}")

    tasks = []
    chirps = load_chirps(aoi.geometry)

    print("[1/4] Total rainfall in the study period...")
    study = study_total(chirps, study_start, study_end, aoi.geometry)

    print("\n[2/4] Seasonal baseline...")
    baseline = seasonal_baseline(
        chirps, baseline_start_year, baseline_end_year, doy_start, doy_end, aoi.geometry
    )

    print("\n[3/4] Rainfall anomaly...")
    anomaly = rainfall_anomaly(study, baseline, aoi.geometry)

    print("\n[4/4] Statistics per admin unit...")
    stats = admin_stats(study, aoi.collection, scale)
    selectors = stats_selectors(admin_level, use_custom_aoi)

    if make_map:
        from map_layers import create_analysis_map, add_ee_layer, save_map

        m = create_analysis_map(centroid_latlon(aoi.geometry), zoom_start=7)
        add_ee_layer(m, aoi_outline(aoi.collection), {}, aoi.label)
        add_ee_layer(m, study, RAIN_VIS, "Total precipitation (Study period)")
        add_ee_layer(
            m, baseline, RAIN_VIS,
            f"Baseline avg precipitation ({baseline_start_year}-{baseline_end_year})",
        )
        add_ee_layer(m, anomaly, ANOMALY_VIS, "Rainfall anomaly (Study vs Baseline)")
        save_map(m, output_dir() / f"{output_prefix}_map.html")

    if make_charts:
        from charts import plot_columns

        try:
            values = chart_values(stats, unit_name_column(admin_level, use_custom_aoi)).getInfo()
        except ee.EEException as e:
            print(f"  Could not fetch the per-unit means ({e}), skipping chart")
            values = {}
        means = values.get("mean") or []
        if not means:
            print("  No admin unit with valid rainfall, skipping chart")
        else:
            labels = values.get("name") or list(range(1, len(means) + 1))
            plot_columns(
                labels, means,
                title=f"Mean rainfall per unit ({study_start} to {study_end})",
                xlabel="Unit", ylabel="Precipitation (mm)",
                out_path=output_dir() / f"{output_prefix}_admin_mean.png",
            )

    print("\nQueuing exports...")
    tasks.append(export_image(study, f"{output_prefix}_StudyPeriod", aoi.geometry, scale))
    tasks.append(export_image(
        baseline, f"{output_prefix}_Baseline_{baseline_start_year}_{baseline_end_year}",
        aoi.geometry, scale,
    ))
    tasks.append(export_image(anomaly, f"{output_prefix}_Anomaly", aoi.geometry, scale))
    tasks.append(export_table(stats, f"{output_prefix}_Admin_Stats", selectors=selectors))
    tasks.append(export_table(aoi.collection, f"{output_prefix}_Admin_Boundaries", file_format="SHP"))

    print_banner(f"✓ {len(tasks)} export tasks submitted with prefix: {output_prefix}", [
        f"Task manager: {TASKS_URL}",
    ])
    return tasks


if __name__ == "__main__":
    run_chirps_analysis()
