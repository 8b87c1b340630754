# elevation statistics for an AOI and its country from a global DEM
# 1. settings: country, AOI source, DEM dataset and output names
# 2. helpers: DEM loading (NASADEM, SRTM or ALOS), histogram, mean/min/max and percentiles
#    per AOI feature, slope and aspect
# 3. main execution: map, histogram chart, exports (rasters as cloud optimized GeoTIFF)
#
# SRTM and NASADEM only cover 60°N to 56°S, north of that switch DEM_DATASET to "ALOS"
#
# how to run: python src/dem_elevation.py

import ee

from gee_common import (
    initialize_gee,
    custom_aoi,
    aoi_outline,
    combined_reducer,
    percentile_reducer,
    reduce_regions_clean,
    export_image,
    export_table,
    centroid_latlon,
    output_dir,
    print_banner,
    LSIB_ASSET,
    MAX_PIXELS,
    TASKS_URL,
)

# USER SETTINGS
COUNTRY_NAME = "Spain"
AOI_SOURCE = "data/aoi.geojson"   # local vector file or asset id (users/..., FAO/GAUL/2015/level1)
DEM_DATASET = "NASADEM"
OUTPUT_PREFIX = "DEM_Elevation"
STATS_DESCRIPTION = "AOI stats elevation"
PERCENTILES_DESCRIPTION = "AOI percentiles elevation"

HIST_SCALE = 50
MIN_BUCKET_WIDTH = 50
SCALE = 30
PERCENTILES = [50, 95]

# key -> (asset id, elevation band, is image collection)
DEM_DATASETS = {
    "NASADEM": ("NASA/NASADEM_HGT/001", "elevation", False),
    "SRTM": ("USGS/SRTMGL1_003", "elevation", False),
    "ALOS": ("JAXA/ALOS/AW3D30/V3_2", "DSM", True),
}

DEM_VIS = {"min": 0, "max": 3000, "palette": ["blue", "green", "yellow", "orange", "red"]}


def load_dem(dataset=DEM_DATASET):
    """DEM as a single band image named "elevation"."""
    if dataset not in DEM_DATASETS:
        raise ValueError(f"Unknown DEM dataset {dataset!r}, choose one of {sorted(DEM_DATASETS)}")

    asset, band, is_collection = DEM_DATASETS[dataset]
    if is_collection:
        # ALOS is tiled and a mosaic has no projection (WGS84 1 degree by default), so slope
        # and aspect need the native tile projection set back on it
        tiles = ee.ImageCollection(asset).select(band)
        dem = tiles.mosaic().setDefaultProjection(tiles.first().select(0).projection())
    else:
        dem = ee.Image(asset).select(band)
    return dem.rename("elevation")


def country_boundary(country_name):
    return (
        ee.FeatureCollection(LSIB_ASSET)
        .filter(ee.Filter.eq("country_na", country_name))
        .geometry()
    )


def elevation_histogram(dem, geometry, scale=HIST_SCALE, min_bucket_width=MIN_BUCKET_WIDTH):
    return dem.reduceRegion(
        reducer=ee.Reducer.histogram(minBucketWidth=min_bucket_width),
        geometry=geometry,
        scale=scale,
        maxPixels=MAX_PIXELS,
        bestEffort=True,
    )


def elevation_stats(dem, collection, scale=SCALE):
    return reduce_regions_clean(dem, collection, combined_reducer(["mean", "min", "max"]), scale, "mean")


def elevation_percentiles(dem, collection, percentiles=PERCENTILES, scale=SCALE):
    first = f"p{percentiles[0]}"
    return reduce_regions_clean(dem, collection, percentile_reducer(percentiles), scale, first)


def terrain_layers(dem):
    return ee.Terrain.products(dem).select(["slope", "aspect"])


def run_dem_analysis(
    country_name=COUNTRY_NAME,
    aoi_source=AOI_SOURCE,
    dem_dataset=DEM_DATASET,
    output_prefix=OUTPUT_PREFIX,
    stats_description=STATS_DESCRIPTION,
    percentiles_description=PERCENTILES_DESCRIPTION,
    scale=SCALE,
    make_map=True,
    make_charts=True,
):
    if dem_dataset not in DEM_DATASETS:
        raise ValueError(f"Unknown DEM dataset {dem_dataset!r}, choose one of {sorted(DEM_DATASETS)}")

    initialize_gee()
    aoi = custom_aoi(aoi_source, "AOI")
    country = country_boundary(country_name)
    dem = load_dem(dem_dataset)

    print_banner("DEM ELEVATION ANALYSIS", [
        f"Country: {country_name}",
        f"Dataset: {dem_dataset} ({DEM_DATASETS[dem_dataset][0]})",
    ])

    dem_aoi = dem.clip(aoi.geometry)
    dem_country = dem.clip(country)

    print("[1/3] Elevation histogram...")
    histogram = elevation_histogram(dem_aoi, aoi.geometry)

    print("\n[2/3] Mean, min and max per AOI feature...")
    stats = elevation_stats(dem_aoi, aoi.collection, scale)

    print("\n[3/3] Percentiles per AOI feature...")
    percentiles = elevation_percentiles(dem_aoi, aoi.collection, scale=scale)

    if make_map:
        from map_layers import create_analysis_map, add_ee_layer, save_map

        m = create_analysis_map(centroid_latlon(aoi.geometry), zoom_start=6)
        add_ee_layer(m, aoi_outline(aoi.collection, width=3), {}, "AOI_boundary")
        add_ee_layer(m, dem_aoi, DEM_VIS, "AOI Elevation")
        add_ee_layer(m, dem_country, DEM_VIS, f"{country_name} DEM", shown=False)
        save_map(m, output_dir() / f"{output_prefix}_map.html")

    if make_charts:
        from charts import plot_histogram

        hist = histogram.getInfo().get("elevation")
        if hist:
            plot_histogram(
                hist,
                title=f"Histogram of Elevation in {country_name} AOI (meters)",
                xlabel="Elevation (m)",
                out_path=output_dir() / f"{output_prefix}_histogram.png",
            )
        else:
            print("  No elevation pixels inside the AOI, skipping histogram")

    print("\nQueuing exports...")
    tasks = [
        export_image(dem_aoi, f"{output_prefix}_AOI", aoi.geometry, scale,
                     crs="EPSG:4326", cloud_optimized=True),
        export_image(dem_country, f"{output_prefix}_{country_name}", country, scale,
                     crs="EPSG:4326", cloud_optimized=True),
        export_image(terrain_layers(dem_aoi), f"{output_prefix}_Terrain", aoi.geometry, scale,
                     crs="EPSG:4326", cloud_optimized=True),
        export_table(stats, stats_description, selectors=["mean", "min", "max"]),
        export_table(percentiles, percentiles_description,
                     selectors=[f"p{p}" for p in PERCENTILES]),
    ]

    print_banner(f"✓ {len(tasks)} export tasks submitted with prefix: {output_prefix}", [
        f"Task manager: {TASKS_URL}",
    ])
    return tasks


if __name__ == "__main__":
    run_dem_analysis()
