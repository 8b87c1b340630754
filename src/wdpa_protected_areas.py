# protected areas (WDPA, UNEP-WCMC) inside a country or a custom AOI
# 1. settings: AOI, which designation statuses count, marine areas in/out
# 2. helpers
#   2.1 protected_areas: WDPA polygons touching the AOI, filtered by status (and marine flag)
#   2.2 with_area_in_aoi: km2 of each protected area that falls inside the AOI
#   2.3 protected_mask / protected_coverage: rasterized union of the areas, so overlapping
#       designations are not counted twice, and its share of the AOI
#   2.4 iucn_area_groups / iucn_summary_frame: km2 per IUCN category, grouped server side
# 3. main execution: map, chart, exports
#
# how to run: python src/wdpa_protected_areas.py

import ee
import pandas as pd

from gee_common import (
    initialize_gee,
    resolve_aoi,
    aoi_outline,
    area_sum,
    export_image,
    export_table,
    groups_list,
    centroid_latlon,
    output_dir,
    print_banner,
    TASKS_URL,
)

# USER SETTINGS
COUNTRY_NAME = "Portugal"
USE_CUSTOM_AOI = False
AOI_SOURCE = "data/aoi.geojson"   # local vector file or asset id (users/..., FAO/GAUL/2015/level1)

VALID_STATUS = ["Designated", "Established", "Inscribed"]
EXCLUDE_MARINE = True    # keep only terrestrial areas (MARINE == "0")
SCALE = 100

WDPA_ASSET = "WCMC/WDPA/current/polygons"
PA_SELECTORS = [
    "WDPAID", "NAME", "DESIG_ENG", "IUCN_CAT", "STATUS", "STATUS_YR", "REP_AREA", "area_in_aoi_km2",
]

PA_VIS = {"palette": ["2ca25f"]}
PA_OUTLINE_COLOR = "006d2c"


def protected_areas(geometry, valid_status=VALID_STATUS, exclude_marine=EXCLUDE_MARINE):
    pas = ee.FeatureCollection(WDPA_ASSET).filterBounds(geometry)
    if valid_status:
        pas = pas.filter(ee.Filter.inList("STATUS", list(valid_status)))
    if exclude_marine:
        pas = pas.filter(ee.Filter.eq("MARINE", "0"))
    return pas


def with_area_in_aoi(pas, geometry):
    def _area_in_aoi(feature):
        inside = feature.geometry().intersection(geometry, 1)
        return feature.set("area_in_aoi_km2", inside.area(1).divide(1e6))

    return pas.map(_area_in_aoi)


def protected_mask(pas, geometry):
    return ee.Image().byte().paint(pas, 1).selfMask().rename("protected").clip(geometry)


def protected_coverage(mask, geometry, scale=SCALE):
    """Protected km2 and total AOI km2, as an ee.Dictionary."""
    protected = area_sum(mask.unmask(0), geometry, scale, divisor=1e6).get("protected")
    total = area_sum(ee.Image.constant(1).rename("aoi"), geometry, scale, divisor=1e6).get("aoi")
    return ee.Dictionary({"protected_km2": protected, "aoi_km2": total})


def coverage_percent(protected_km2, aoi_km2):
    if not aoi_km2:
        return 0.0
    return 100.0 * float(protected_km2 or 0) / float(aoi_km2)


def iucn_area_groups(pas):
    """Server side: km2 and number of areas per IUCN category, as a list of groups."""
    reducer = ee.Reducer.sum().combine(reducer2=ee.Reducer.count(), sharedInputs=True)
    reduction = pas.reduceColumns(
        reducer=reducer.group(groupField=1, groupName="IUCN_CAT"),
        selectors=["area_in_aoi_km2", "IUCN_CAT"],
    )
    return groups_list(reduction)


def iucn_summary_frame(groups):
    """Fetched IUCN groups -> km2 inside the AOI and number of areas per category, largest first."""
    rows = [
        {
            "IUCN_CAT": g.get("IUCN_CAT") or "Not Reported",
            "n_areas": int(g.get("count", 0)),
            "area_km2": float(g.get("sum", 0)),
        }
        for g in groups
    ]
    df = pd.DataFrame(rows, columns=["IUCN_CAT", "n_areas", "area_km2"])
    if df.empty:
        return df
    # null categories and "Not Reported" end up in one row
    df = df.groupby("IUCN_CAT", as_index=False).agg(
        n_areas=("n_areas", "sum"), area_km2=("area_km2", "sum")
    )
    return df.sort_values("area_km2", ascending=False).reset_index(drop=True)


def run_wdpa_analysis(
    country_name=COUNTRY_NAME,
    use_custom_aoi=USE_CUSTOM_AOI,
    aoi_source=AOI_SOURCE,
    valid_status=VALID_STATUS,
    exclude_marine=EXCLUDE_MARINE,
    scale=SCALE,
    output_prefix=None,
    make_map=True,
    make_charts=True,
):
    initialize_gee()
    if output_prefix is None:
        output_prefix = f"WDPA_{country_name}"

    aoi = resolve_aoi(use_custom_aoi, country_name, aoi_source, "Custom AOI (imported)")
    output_prefix = f"{output_prefix}_{aoi.tag}"
    geometry = aoi.geometry

    print_banner("PROTECTED AREAS (WDPA) ANALYSIS", [
        f"AOI: {aoi.label}",
        f"Status: {', '.join(valid_status) if valid_status else 'any'}",
        f"Marine areas: {'excluded' if exclude_marine else 'included'}",
    ])

    print("[1/3] Protected areas inside the AOI...")
    pas = with_area_in_aoi(protected_areas(geometry, valid_status, exclude_marine), geometry)
    print(f"  Protected areas found: {pas.size().getInfo()}")

    print("\n[2/3] Protected coverage...")
    mask = protected_mask(pas, geometry)
    coverage = protected_coverage(mask, geometry, scale).getInfo()
    share = coverage_percent(coverage.get("protected_km2"), coverage.get("aoi_km2"))
    print(f"  Protected: {coverage.get('protected_km2') or 0:.1f} km2 of "
          f"{coverage.get('aoi_km2') or 0:.1f} km2 ({share:.1f}%)")

    if make_charts:
        from charts import plot_columns

        try:
            summary = iucn_summary_frame(iucn_area_groups(pas).getInfo())
        except ee.EEException as e:
            print(f"  Could not fetch the IUCN summary ({e}), skipping chart")
            summary = iucn_summary_frame([])
        if summary.empty:
            print("  No protected area inside the AOI, skipping chart")
        else:
            print(summary.to_string(index=False))
            plot_columns(
                summary["IUCN_CAT"].tolist(), summary["area_km2"].tolist(),
                title=f"Protected area per IUCN category in {aoi.label} (km2)",
                xlabel="IUCN category", ylabel="Area (km2)", color="#2ca25f",
                out_path=output_dir() / f"{output_prefix}_iucn_km2.png",
            )

    if make_map:
        from map_layers import create_analysis_map, add_ee_layer, save_map

        m = create_analysis_map(centroid_latlon(geometry), zoom_start=6)
        add_ee_layer(m, aoi_outline(aoi.collection), {}, aoi.label)
        add_ee_layer(m, mask, PA_VIS, "Protected (any designation)")
        add_ee_layer(m, aoi_outline(pas, color=PA_OUTLINE_COLOR, width=1), {}, "Protected area boundaries")
        save_map(m, output_dir() / f"{output_prefix}_map.html")

    print("\n[3/3] Queuing exports...")
    tasks = [
        export_table(pas, f"{output_prefix}_Protected_Areas", selectors=PA_SELECTORS),
        export_table(pas, f"{output_prefix}_Protected_Area_Boundaries", file_format="SHP"),
        export_image(mask, f"{output_prefix}_Protected_Mask", geometry, scale, crs="EPSG:4326"),
    ]

    print_banner("=== ALL EXPORTS QUEUED ===", [
        f"Output prefix: {output_prefix}",
        f"AOI: {aoi.label}",
        f"Task manager: {TASKS_URL}",
    ])
    return tasks


if __name__ == "__main__":
    run_wdpa_analysis()
