# Global Surface Water (JRC GSW 1.4) occurrence, change intensity and transition classes
# 1. settings: AOI (country or custom), years of the dataset, scales for charts/stats/exports
# 2. transition class table: the 11 GSW classes with a display name and color
# 3. helpers
#   3.1 water_mask: pixels with water more than 90% of the time
#   3.2 change_area_histogram: km2 of AOI per 10-unit bin of occurrence change intensity
#   3.3 transition_areas: km2 per transition class, with the class names and colors attached
#   3.4 client side versions of 3.2 and 3.3 (pandas) for the charts
# 4. main execution: map layers, charts (pixel histogram, km2 histogram, pie), exports
#
# for whole-country AOIs keep the chart/stats scales coarse to avoid maxPixels errors and timeouts
#
# how to run: python src/gsw_water_change.py

import ee
import pandas as pd

from gee_common import (
    initialize_gee,
    resolve_aoi,
    slugify_name,
    grouped_area_sum,
    groups_list,
    export_image,
    export_table,
    centroid_latlon,
    output_dir,
    print_banner,
    MAX_PIXELS,
    TASKS_URL,
)

# USER SETTINGS
COUNTRY_NAME = "Spain"
USE_CUSTOM_AOI = True        # True = custom AOI, False = country boundary
AOI_NAME = "AOI_Inland_bassin"
AOI_SOURCE = "data/aoi.geojson"   # local vector file or asset id (users/..., FAO/GAUL/2015/level1)

START_YEAR = 1984
END_YEAR = 2021

HIST_SCALE = 100
STATS_SCALE = 30
EXPORT_SCALE = 30
BIN_WIDTH = 10

GSW_ASSET = "JRC/GSW1_4/GlobalSurfaceWater"

# transition classes in band value order (0..10)
CLASS_NAMES = [
    "No Change", "Permanent Water", "New Permanent", "Lost Permanent",
    "Seasonal Water", "New Seasonal", "Lost Seasonal",
    "Seasonal to Permanent", "Permanent to Seasonal",
    "Ephemeral Permanent", "Ephemeral Seasonal",
]
CLASS_COLORS = [
    "#ffffff", "#0000ff", "#22b14c", "#d1102d", "#99d9ea",
    "#b5e61d", "#e6a1aa", "#ff7f27", "#ffc90e", "#7f7f7f", "#c3c3c3",
]
UNKNOWN_CLASS = ("Unknown", "#999999")

VIS_OCCURRENCE = {"min": 0, "max": 100, "palette": ["red", "blue"]}
VIS_CHANGE = {"min": -50, "max": 50, "palette": ["red", "black", "limegreen"]}
VIS_WATER_MASK = {"palette": ["white", "black"]}
VIS_MAX_EXTENT = {"min": 0, "max": 1, "palette": ["ffffff", "0000ff"]}
VIS_TRANSITION = {"min": 0, "max": 10, "palette": CLASS_COLORS}

TRANSITION_SELECTORS = ["transition_class_number", "transition_class_name", "area_km2"]


def transition_class(value):
    """(name, color) of a transition class value, Unknown for anything outside 0..10."""
    try:
        index = int(value)
    except (TypeError, ValueError):
        return UNKNOWN_CLASS
    if 0 <= index < len(CLASS_NAMES):
        return CLASS_NAMES[index], CLASS_COLORS[index]
    return UNKNOWN_CLASS


def bin_label(bin_start, bin_width=BIN_WIDTH):
    return f"{int(bin_start)} to {int(bin_start) + bin_width}"


def load_gsw():
    gsw = ee.Image(GSW_ASSET)
    return {
        "occurrence": gsw.select("occurrence"),
        "change": gsw.select("change_abs"),
        "transition": gsw.select("transition"),
        "max_extent": gsw.select("max_extent"),
    }


def water_mask(occurrence, threshold=90):
    return occurrence.gt(threshold).selfMask()


def aoi_outline_image(geometry):
    return ee.Image().byte().paint(ee.FeatureCollection([ee.Feature(geometry)]), 1, 2)


# CHANGE INTENSITY HISTOGRAM

def change_bins(change, geometry, bin_width=BIN_WIDTH):
    """Bin change_abs into -100, -90, ..., 100. No-data values like -128 are masked out."""
    change_valid = change.clip(geometry).updateMask(change.gte(-100).And(change.lte(100)))
    return (
        change_valid.divide(bin_width)
        .floor()
        .multiply(bin_width)
        .toInt()
        .rename("bin")
    )


def change_area_reduction(change, geometry, scale=HIST_SCALE, bin_width=BIN_WIDTH):
    area_km2 = ee.Image.pixelArea().divide(1e6).rename("area_km2")
    bins = change_bins(change, geometry, bin_width)
    return grouped_area_sum(bins, geometry, scale, "bin", area_image=area_km2)


def change_area_histogram(change, geometry, scale=HIST_SCALE, bin_width=BIN_WIDTH):
    """FeatureCollection with bin, bin_label and area_km2, sorted by bin."""
    reduction = change_area_reduction(change, geometry, scale, bin_width)

    def _bin_feature(group):
        group = ee.Dictionary(group)
        b = ee.Number(group.get("bin")).toInt()
        return ee.Feature(None, {
            "bin": b,
            "bin_label": b.format("%d").cat(" to ").cat(b.add(bin_width).format("%d")),
            "area_km2": ee.Number(group.get("sum")),
        })

    return ee.FeatureCollection(groups_list(reduction).map(_bin_feature)).sort("bin")


def change_histogram_frame(groups, bin_width=BIN_WIDTH):
    rows = [
        {
            "bin": int(g["bin"]),
            "bin_label": bin_label(g["bin"], bin_width),
            "area_km2": float(g.get("sum", 0)),
        }
        for g in groups
    ]
    df = pd.DataFrame(rows, columns=["bin", "bin_label", "area_km2"])
    return df.sort_values("bin").reset_index(drop=True)


# TRANSITION AREAS

def transition_feature(stats):
    """Server side: one grouped area entry -> feature with class number, name, color and km2."""
    stats = ee.Dictionary(stats)
    class_number = ee.Number(stats.get("transition_class_value")).toInt()
    valid = class_number.gte(0).And(class_number.lte(len(CLASS_NAMES) - 1))

    class_name = ee.String(ee.Algorithms.If(
        valid, ee.List(CLASS_NAMES).get(class_number), UNKNOWN_CLASS[0]
    ))
    class_color = ee.String(ee.Algorithms.If(
        valid, ee.List(CLASS_COLORS).get(class_number), UNKNOWN_CLASS[1]
    ))
    area_km2 = ee.Number(stats.get("sum", 0)).divide(1e6)

    return ee.Feature(None, {
        "transition_class_number": class_number,
        "transition_class_name": class_name,
        "transition_class_palette": class_color,
        "area_km2": area_km2,
    })


def transition_reduction(transition, geometry, scale=STATS_SCALE):
    return grouped_area_sum(transition, geometry, scale, "transition_class_value")


def transition_areas(transition, geometry, scale=STATS_SCALE):
    groups = groups_list(transition_reduction(transition, geometry, scale))
    return (
        ee.FeatureCollection(groups.map(transition_feature))
        .filter(ee.Filter.gt("area_km2", 0))
        .sort("area_km2", False)
    )


def transition_summary_frame(groups):
    """Client side version of transition_areas for fetched groups (areas in m2)."""
    rows = []
    for g in groups:
        number = int(g["transition_class_value"])
        name, color = transition_class(number)
        rows.append({
            "transition_class_number": number,
            "transition_class_name": name,
            "transition_class_palette": color,
            "area_km2": float(g.get("sum", 0)) / 1e6,
        })
    df = pd.DataFrame(rows, columns=[
        "transition_class_number", "transition_class_name", "transition_class_palette", "area_km2",
    ])
    df = df[df["area_km2"] > 0]
    return df.sort_values("area_km2", ascending=False).reset_index(drop=True)


def pie_slice_colors(summary):
    return summary["transition_class_palette"].tolist()


# MAIN EXECUTION

def run_gsw_analysis(
    country_name=COUNTRY_NAME,
    use_custom_aoi=USE_CUSTOM_AOI,
    aoi_name=AOI_NAME,
    aoi_source=AOI_SOURCE,
    start_year=START_YEAR,
    end_year=END_YEAR,
    hist_scale=HIST_SCALE,
    stats_scale=STATS_SCALE,
    export_scale=EXPORT_SCALE,
    bin_width=BIN_WIDTH,
    make_map=True,
    make_charts=True,
):
    initialize_gee()

    if use_custom_aoi:
        aoi = resolve_aoi(True, country_name, aoi_source, aoi_name)
        output_prefix = f"GSW_{slugify_name(aoi_name)}"
    else:
        aoi = resolve_aoi(False, country_name)
        output_prefix = f"GSW_{slugify_name(country_name)}"
    geometry = aoi.geometry

    print_banner("GLOBAL SURFACE WATER ANALYSIS", [
        f"AOI: {aoi.label}",
        f"Years: {start_year}-{end_year}",
        f"HIST_SCALE={hist_scale} STATS_SCALE={stats_scale} EXPORT_SCALE={export_scale}",
    ])

    gsw = load_gsw()
    occurrence = gsw["occurrence"]
    change = gsw["change"]
    transition = gsw["transition"]

    print("[1/3] Change intensity histograms...")
    pixel_histogram = change.reduceRegion(
        reducer=ee.Reducer.histogram(minBucketWidth=bin_width),
        geometry=geometry,
        scale=hist_scale,
        maxPixels=MAX_PIXELS,
        bestEffort=True,
    )
    bin_reduction = change_area_reduction(change, geometry, hist_scale, bin_width)

    print("\n[2/3] Transition class areas (km2)...")
    reduction = transition_reduction(transition, geometry, stats_scale)
    transition_fc = transition_areas(transition, geometry, stats_scale)

    if make_charts:
        from charts import plot_histogram, plot_columns, plot_pie

        hist = pixel_histogram.getInfo().get("change_abs")
        if hist:
            plot_histogram(
                hist,
                title=f"Histogram of surface water change intensity in {aoi.label} (scale {hist_scale})",
                xlabel="Change intensity",
                out_path=output_dir() / f"{output_prefix}_change_histogram.png",
            )

        bins_df = change_histogram_frame(groups_list(bin_reduction).getInfo(), bin_width)
        if not bins_df.empty:
            plot_columns(
                bins_df["bin_label"].tolist(), bins_df["area_km2"].tolist(),
                title=(f"Surface water change intensity in {aoi.label} "
                       f"(km2 per {bin_width}-unit bin, scale {hist_scale} m)"),
                xlabel="Change intensity bin", ylabel="Area (km2)",
                out_path=output_dir() / f"{output_prefix}_change_km2.png",
            )

        summary = transition_summary_frame(groups_list(reduction).getInfo())
        if summary.empty:
            print("  No transition pixels inside the AOI, skipping pie chart")
        else:
            print(summary[TRANSITION_SELECTORS].to_string(index=False))
            plot_pie(
                summary["transition_class_name"].tolist(), summary["area_km2"].tolist(),
                pie_slice_colors(summary),
                title=f"Summary of transition class areas in {aoi.label} (km2)",
                out_path=output_dir() / f"{output_prefix}_transitions_pie.png",
            )

    if make_map:
        from map_layers import create_analysis_map, add_ee_layer, save_map

        m = create_analysis_map(centroid_latlon(geometry), zoom_start=6)
        add_ee_layer(m, aoi_outline_image(geometry), {"palette": ["FF4500"]}, aoi.label)
        add_ee_layer(m, transition.unmask(0).clip(geometry), VIS_TRANSITION,
                     "Transition (unmasked for display)", shown=False)
        add_ee_layer(m, gsw["max_extent"].clip(geometry), VIS_MAX_EXTENT,
                     "Max extent (ever water)", shown=False)
        add_ee_layer(m, water_mask(occurrence), VIS_WATER_MASK,
                     "90% occurrence water mask", shown=False)
        add_ee_layer(m, occurrence.updateMask(occurrence.divide(100)), VIS_OCCURRENCE,
                     f"Water Occurrence ({start_year}-{end_year})", shown=False)
        add_ee_layer(m, change, VIS_CHANGE, "Occurrence change intensity", shown=False)
        add_ee_layer(m, transition.clip(geometry), VIS_TRANSITION,
                     f"Transition classes ({start_year}-{end_year})")
        save_map(m, output_dir() / f"{output_prefix}_map.html")

    print("\n[3/3] Clip, reproject and export...")
    proj = occurrence.projection()
    occurrence_aoi = occurrence.clip(geometry).reproject(proj)
    change_aoi = change.clip(geometry).reproject(proj)
    transition_aoi = transition.clip(geometry).reproject(proj)
    water_mask_aoi = water_mask(occurrence).clip(geometry).reproject(proj)

    years = f"{start_year}_{end_year}"
    tasks = [
        export_table(transition_fc, f"{output_prefix}_Transition_Summary_km2",
                     selectors=TRANSITION_SELECTORS),
        export_image(water_mask_aoi, f"{output_prefix}_Water_Mask_gt90", geometry,
                     export_scale, crs="EPSG:4326"),
        export_image(occurrence_aoi, f"{output_prefix}_Water_Occurrence_{years}", geometry,
                     export_scale, crs="EPSG:4326"),
        export_image(change_aoi, f"{output_prefix}_Change_Intensity_{years}", geometry,
                     export_scale, crs="EPSG:4326"),
        export_image(transition_aoi, f"{output_prefix}_Transition_Classes_{years}", geometry,
                     export_scale, crs="EPSG:4326"),
    ]

    print_banner("=== ALL EXPORTS QUEUED ===", [
        f"Output prefix: {output_prefix}",
        f"AOI: {aoi.label}",
        "Area units in outputs/charts: km2",
        f"Task manager: {TASKS_URL}",
    ])
    return tasks


if __name__ == "__main__":
    run_gsw_analysis()
