# Hansen Global Forest Change (UMD, 2000-2024) for a country or a custom AOI
#
# bands of the dataset:
# - treecover2000: canopy cover % in 2000 (0-100)
# - loss: 1 where loss was detected between 2000 and 2024
# - lossyear: year of loss as 1..24 (= 2001..2024), 0 = no loss
# - gain: 1 where gain was detected, only 2000-2012
#
# loss is only detected where canopy was above 25% in 2000 and includes natural disturbance,
# gain is underestimated and stops in 2012
#
# how to run: python src/gfc_forest_change.py

import ee
import pandas as pd

from gee_common import (
    initialize_gee,
    resolve_aoi,
    aoi_outline,
    area_sum,
    grouped_area_sum,
    groups_list,
    export_image,
    export_table,
    centroid_latlon,
    output_dir,
    print_banner,
    TASKS_URL,
)

# USER SETTINGS
COUNTRY_NAME = "Spain"
USE_CUSTOM_AOI = True
AOI_SOURCE = "data/aoi.geojson"   # local vector file or asset id (users/..., FAO/GAUL/2015/level1)

START_YEAR = 2000
END_YEAR = 2024
SCALE = 30                # 30m native, 100m fast, 250m fastest
CANOPY_THRESHOLD = 25     # % canopy that counts as forest

GFC_ASSET = "UMD/hansen/global_forest_change_2024_v1_12"
GFC_BANDS = ["treecover2000", "loss", "lossyear", "gain"]
M2_PER_HA = 10000

TREE_COVER_VIS = {"bands": ["treecover2000"], "min": 0, "max": 100, "palette": ["000000", "00FF00"]}
LOSS_YEAR_VIS = {"bands": ["lossyear"], "min": 0, "max": 24, "palette": ["yellow", "red"]}
LOSS_VIS = {"bands": ["loss"], "min": 0, "max": 1, "palette": ["000000", "FF0000"]}
GAIN_VIS = {"bands": ["gain"], "min": 0, "max": 1, "palette": ["000000", "9900FF"]}


def load_gfc(geometry):
    gfc = ee.Image(GFC_ASSET)
    layers = {band: gfc.select(band).clip(geometry) for band in GFC_BANDS}
    layers["complete"] = gfc.select(GFC_BANDS).clip(geometry)
    return layers


def forest_area_2000(treecover2000, geometry, scale=SCALE, threshold=CANOPY_THRESHOLD):
    """Area (ha) of pixels with canopy cover above threshold in 2000."""
    return area_sum(treecover2000.gt(threshold), geometry, scale, divisor=M2_PER_HA)


def loss_area(loss, geometry, scale=SCALE):
    return area_sum(loss, geometry, scale, divisor=M2_PER_HA)


def gain_area(gain, geometry, scale=SCALE):
    return area_sum(gain, geometry, scale, divisor=M2_PER_HA)


def loss_by_year(lossyear, geometry, scale=SCALE):
    """Loss area (ha) grouped by lossyear code."""
    area_ha = lossyear.gt(0).multiply(ee.Image.pixelArea()).divide(M2_PER_HA)
    return grouped_area_sum(lossyear, geometry, scale, "year", area_image=area_ha)


def loss_by_year_collection(reduction):
    def _year_feature(group):
        group = ee.Dictionary(group)
        code = ee.Number(group.get("year")).toInt()
        return ee.Feature(None, {
            "lossyear_code": code,
            "year": code.add(2000),
            "loss_ha": ee.Number(group.get("sum")),
        })

    return (
        ee.FeatureCollection(groups_list(reduction).map(_year_feature))
        .filter(ee.Filter.gt("lossyear_code", 0))
        .sort("year")
    )


def loss_by_year_frame(groups):
    """Fetched groups -> DataFrame with calendar year and loss in ha (code 0 = no loss dropped)."""
    rows = [
        {"year": 2000 + int(g["year"]), "loss_ha": float(g.get("sum", 0))}
        for g in groups
        if int(g["year"]) > 0
    ]
    df = pd.DataFrame(rows, columns=["year", "loss_ha"])
    return df.sort_values("year").reset_index(drop=True)


def run_gfc_analysis(
    country_name=COUNTRY_NAME,
    use_custom_aoi=USE_CUSTOM_AOI,
    aoi_source=AOI_SOURCE,
    start_year=START_YEAR,
    end_year=END_YEAR,
    scale=SCALE,
    output_prefix=None,
    make_map=True,
    make_charts=True,
):
    if start_year > end_year:
        raise ValueError(f"start_year {start_year} is after end_year {end_year}")

    initialize_gee()
    if output_prefix is None:
        output_prefix = f"GFC_{country_name}"

    aoi = resolve_aoi(use_custom_aoi, country_name, aoi_source, "Custom AOI (imported)")
    output_prefix = f"{output_prefix}_{aoi.tag}"
    geometry = aoi.geometry

    print_banner("GLOBAL FOREST CHANGE ANALYSIS", [
        f"AOI: {aoi.label}",
        f"Time period: {start_year}-{end_year}",
        f"Scale: {scale} m",
    ])

    gfc = load_gfc(geometry)

    print("[1/2] Forest statistics...")
    forest_2000 = forest_area_2000(gfc["treecover2000"], geometry, scale)
    loss_total = loss_area(gfc["loss"], geometry, scale)
    gain_total = gain_area(gfc["gain"], geometry, scale)
    by_year = loss_by_year(gfc["lossyear"], geometry, scale)

    summary = ee.Dictionary({
        "forest_2000_ha": forest_2000.get("treecover2000"),
        "loss_ha": loss_total.get("loss"),
        "gain_ha": gain_total.get("gain"),
    }).getInfo()
    print(f"  Forest area 2000 (>{CANOPY_THRESHOLD}% canopy, ha): {summary['forest_2000_ha']}")
    print(f"  Total forest loss (ha): {summary['loss_ha']}")
    print(f"  Total forest gain (ha, 2000-2012): {summary['gain_ha']}")

    if make_charts:
        from charts import plot_columns

        df = loss_by_year_frame(groups_list(by_year).getInfo())
        if df.empty:
            print("  No forest loss inside the AOI, skipping chart")
        else:
            plot_columns(
                df["year"].tolist(), df["loss_ha"].tolist(),
                title=f"Annual forest loss in {aoi.label} ({start_year}-{end_year})",
                xlabel="Year", ylabel="Loss (ha)", color="#d1102d",
                out_path=output_dir() / f"{output_prefix}_loss_by_year.png",
            )

    if make_map:
        from map_layers import create_analysis_map, add_ee_layer, save_map

        treecover = gfc["treecover2000"]
        lossyear = gfc["lossyear"]
        m = create_analysis_map(centroid_latlon(geometry), zoom_start=6)
        add_ee_layer(m, aoi_outline(aoi.collection), {}, aoi.label)
        add_ee_layer(m, treecover.updateMask(treecover.gt(0)), TREE_COVER_VIS, "Tree Cover 2000 (%)")
        add_ee_layer(m, lossyear.updateMask(lossyear.gt(0)), LOSS_YEAR_VIS,
                     f"Forest Loss Year ({start_year}-{end_year})", shown=False)
        add_ee_layer(m, gfc["loss"], LOSS_VIS, "Forest Loss (binary)", shown=False)
        add_ee_layer(m, gfc["gain"], GAIN_VIS, "Forest Gain (2000-2012, binary)", shown=False)
        save_map(m, output_dir() / f"{output_prefix}_map.html")

    print("\n[2/2] Queuing exports...")
    years = f"{start_year}_{end_year}"
    tasks = [
        export_image(gfc["treecover2000"], f"{output_prefix}_TreeCover2000", geometry, scale, crs="EPSG:4326"),
        export_image(gfc["loss"], f"{output_prefix}_Loss_Binary_{years}", geometry, scale, crs="EPSG:4326"),
        export_image(gfc["lossyear"], f"{output_prefix}_LossYear_{years}", geometry, scale, crs="EPSG:4326"),
        export_image(gfc["gain"], f"{output_prefix}_Gain_Binary_2000_2012", geometry, scale, crs="EPSG:4326"),
        export_image(gfc["complete"], f"{output_prefix}_Complete_{years}", geometry, scale, crs="EPSG:4326"),
        export_table(loss_by_year_collection(by_year), f"{output_prefix}_Loss_By_Year_{years}",
                     selectors=["year", "loss_ha"]),
    ]

    print_banner("=== ALL EXPORTS QUEUED ===", [
        f"Output prefix: {output_prefix}",
        f"AOI: {aoi.label}",
        f"Task manager: {TASKS_URL}",
    ])
    return tasks


if __name__ == "__main__":
    run_gfc_analysis()
