# shared building blocks for every analysis script in this folder:
# 1. earth engine initialization and project settings (from environment variables)
# 2. area of interest resolution: whole country (LSIB), admin units (GAUL) or a custom AOI
#    that can be an asset id, a local vector file or an ee object
# 3. reducers and grouped pixel-area sums used for the summary tables
# 4. export helpers that queue Drive or Cloud Storage tasks
# 5. small client side utilities (dataframes, banners, task cleanup)

import os
import re
import json
import unicodedata
from dataclasses import dataclass
from pathlib import Path

import ee
import pandas as pd

# project-wide settings, overridable from the environment
GEE_PROJECT = os.getenv("GEE_PROJECT")
EXPORT_FOLDER = os.getenv("GEE_EXPORT_FOLDER", "gee_exports")
EXPORT_BUCKET = os.getenv("GEE_BUCKET")
OUTPUT_DIR = Path(os.getenv("GEE_OUTPUT_DIR", "outputs"))

MAX_PIXELS = 1e13
TASKS_URL = "https://code.earthengine.google.com/tasks"

LSIB_ASSET = "USDOS/LSIB_SIMPLE/2017"
GAUL_ASSETS = {
    0: "FAO/GAUL/2015/level0",
    1: "FAO/GAUL/2015/level1",
    2: "FAO/GAUL/2015/level2",
}

AOI_COLOR = "FF4500"
MAX_DESCRIPTION_LENGTH = 100


def initialize_gee(project=GEE_PROJECT):
    """Initialize Google Earth Engine."""
    try:
        ee.Initialize(project=project)
        print("✓ GEE initialized successfully")
    except Exception:
        ee.Authenticate()
        ee.Initialize(project=project)
        print("✓ GEE authenticated and initialized")


def output_dir():
    """Local folder for charts and maps, created on demand."""
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    return OUTPUT_DIR


# names used in task descriptions and file prefixes, ASCII only (Côte d'Ivoire -> Cote_dIvoire)
def slugify_name(s):
    s = unicodedata.normalize("NFKD", str(s)).encode("ascii", "ignore").decode("ascii")
    s = re.sub(r"\s+", "_", s.strip())
    return re.sub(r"[^\w\-]", "", s, flags=re.ASCII)


def export_description(name):
    """Task descriptions only accept a limited charset and at most 100 characters."""
    return slugify_name(name)[:MAX_DESCRIPTION_LENGTH]


# AREA OF INTEREST

@dataclass
class AreaOfInterest:
    collection: object
    geometry: object
    label: str
    tag: str


def country_aoi(country_name):
    lsib = ee.FeatureCollection(LSIB_ASSET)
    collection = lsib.filter(ee.Filter.eq("country_na", country_name))
    return AreaOfInterest(
        collection=collection,
        geometry=collection.geometry(),
        label=f"{country_name} (entire country)",
        tag="Country",
    )


def admin_aoi(country_name, admin_level, admin1_names=(), admin2_names=()):
    """
    Admin units from FAO GAUL 2015.

    Level 0 is the whole country, level 1 regions/provinces, level 2
    municipalities/counties. Name lists narrow the selection; empty lists keep
    every unit of that level.
    """
    if admin_level not in GAUL_ASSETS:
        raise ValueError(f"admin_level must be 0, 1, or 2 (got {admin_level!r})")

    admin1_names = list(admin1_names)
    admin2_names = list(admin2_names)

    collection = ee.FeatureCollection(GAUL_ASSETS[admin_level]).filter(
        ee.Filter.eq("ADM0_NAME", country_name)
    )

    if admin_level == 0:
        label = f"{country_name} (Level 0)"
    elif admin_level == 1:
        if admin1_names:
            collection = collection.filter(ee.Filter.inList("ADM1_NAME", admin1_names))
            label = f"{country_name} (Level 1: {', '.join(admin1_names)})"
        else:
            label = f"{country_name} (All Level 1)"
    else:
        if admin1_names:
            collection = collection.filter(ee.Filter.inList("ADM1_NAME", admin1_names))
        if admin2_names:
            collection = collection.filter(ee.Filter.inList("ADM2_NAME", admin2_names))
            label = f"{country_name} (Level 2: {', '.join(admin2_names)})"
        else:
            label = f"{country_name} (All Level 2)"

    return AreaOfInterest(
        collection=collection,
        geometry=collection.geometry(),
        label=label,
        tag=f"AdminLevel{admin_level}",
    )


VECTOR_SUFFIXES = (".geojson", ".json", ".shp", ".gpkg", ".kml", ".zip")


def _is_asset_id(source):
    """Anything that is not an existing local file and has no vector file extension
    (projects/..., users/..., public tables like FAO/GAUL/2015/level1)."""
    path = Path(source)
    return not path.exists() and path.suffix.lower() not in VECTOR_SUFFIXES


def _read_vector_file(path):
    """Read a local vector file (GeoJSON, shapefile, GeoPackage) as ee features."""
    import geopandas as gpd

    path = Path(path)
    if not path.exists():
        raise ValueError(f"AOI file not found: {path}")

    gdf = gpd.read_file(path)
    if gdf.empty:
        raise ValueError(f"AOI file has no features: {path}")
    if gdf.crs is not None:
        gdf = gdf.to_crs("EPSG:4326")

    geojson = json.loads(gdf.to_json())
    return ee.FeatureCollection([ee.Feature(f) for f in geojson["features"]])


def custom_aoi(source, label="Custom AOI"):
    """
    Build an AOI from an asset id, a local vector file, an ee.FeatureCollection,
    an ee.Feature or an ee.Geometry.
    """
    if source is None:
        raise ValueError("use_custom_aoi is set but no AOI source was given")

    if isinstance(source, (str, Path)):
        if _is_asset_id(source):
            collection = ee.FeatureCollection(source)
        else:
            collection = _read_vector_file(source)
    elif isinstance(source, ee.FeatureCollection):
        collection = source
    elif isinstance(source, ee.Feature):
        collection = ee.FeatureCollection([source])
    elif isinstance(source, ee.Geometry):
        collection = ee.FeatureCollection([ee.Feature(source)])
    else:
        raise ValueError(f"Unsupported AOI source: {source!r}")

    return AreaOfInterest(
        collection=collection,
        geometry=collection.geometry(),
        label=label,
        tag="CustomAOI",
    )


def resolve_aoi(use_custom_aoi, country_name, custom_source=None, custom_label="Custom AOI"):
    if use_custom_aoi:
        aoi = custom_aoi(custom_source, custom_label)
        print(f"  Using custom AOI: {aoi.label}")
    else:
        aoi = country_aoi(country_name)
        print(f"  Using entire country: {country_name}")
    return aoi


def aoi_outline(collection, color=AOI_COLOR, width=2):
    """Outline-only style for drawing the AOI over other layers."""
    return collection.style(color=color, width=width, fillColor="FFFFFF00")


# REDUCERS

_REDUCERS = {
    "mean": lambda: ee.Reducer.mean(),
    "min": lambda: ee.Reducer.min(),
    "max": lambda: ee.Reducer.max(),
    "sum": lambda: ee.Reducer.sum(),
    "median": lambda: ee.Reducer.median(),
    "stdDev": lambda: ee.Reducer.stdDev(),
}


def combined_reducer(names=("mean", "min", "max")):
    """Combine simple reducers so one pass outputs e.g. mean, min and max."""
    names = list(names)
    unknown = [n for n in names if n not in _REDUCERS]
    if not names or unknown:
        raise ValueError(f"Unknown reducer(s): {unknown or names}")

    reducer = _REDUCERS[names[0]]()
    for name in names[1:]:
        reducer = reducer.combine(reducer2=_REDUCERS[name](), sharedInputs=True)
    return reducer


def percentile_reducer(percentiles=(50, 95)):
    return ee.Reducer.percentile(list(percentiles))


def reduce_regions_clean(image, collection, reducer, scale, not_null="mean"):
    """reduceRegions and drop features where the reducer found no pixels."""
    stats = image.reduceRegions(collection=collection, reducer=reducer, scale=scale)
    return stats.filter(ee.Filter.notNull([not_null]))


def add_centroid_coordinates(collection):
    def _with_centroid(feature):
        coords = feature.geometry().centroid(1).coordinates()
        return feature.set({"longitude": coords.get(0), "latitude": coords.get(1)})

    return collection.map(_with_centroid)


def grouped_area_sum(class_image, geometry, scale, group_name, area_image=None):
    """
    Sum pixel area per value of class_image.

    area_image defaults to ee.Image.pixelArea() (m2). The result is an
    ee.Dictionary with a "groups" list of {group_name: value, "sum": area}.
    """
    if area_image is None:
        area_image = ee.Image.pixelArea()

    return area_image.addBands(class_image).reduceRegion(
        reducer=ee.Reducer.sum().group(groupField=1, groupName=group_name),
        geometry=geometry,
        scale=scale,
        maxPixels=MAX_PIXELS,
        bestEffort=True,
        tileScale=16,
    )


def groups_list(reduction):
    """The "groups" list of a grouped reduction, or an empty list if there is none."""
    groups = ee.Dictionary(reduction).get("groups", ee.List([]))
    return ee.List(ee.Algorithms.If(groups, groups, ee.List([])))


def area_sum(image, geometry, scale, divisor=1):
    """Sum image * pixelArea over the geometry, divided by divisor (1e4 for ha, 1e6 for km2)."""
    return (
        image.multiply(ee.Image.pixelArea())
        .divide(divisor)
        .reduceRegion(
            reducer=ee.Reducer.sum(),
            geometry=geometry,
            scale=scale,
            maxPixels=MAX_PIXELS,
            bestEffort=True,
        )
    )


# EXPORTS

def export_image(image, description, region, scale, crs=None, cloud_optimized=False,
                 folder=EXPORT_FOLDER, bucket=EXPORT_BUCKET, start=True):
    """Export an ee.Image as GeoTIFF to Drive, or to Cloud Storage when a bucket is set."""
    name = export_description(description)
    params = dict(
        image=image,
        description=name,
        fileNamePrefix=name,
        region=region,
        scale=scale,
        maxPixels=MAX_PIXELS,
        fileFormat="GeoTIFF",
    )
    if crs:
        params["crs"] = crs
    if cloud_optimized:
        params["formatOptions"] = {"cloudOptimized": True}

    if bucket:
        task = ee.batch.Export.image.toCloudStorage(bucket=bucket, **params)
        target = f"gs://{bucket}"
    else:
        task = ee.batch.Export.image.toDrive(folder=folder, **params)
        target = f"Drive/{folder}"

    if start:
        task.start()
        print(f"  → Export started: {name} (scale={scale}m, {target})")
    return task


def export_table(collection, description, selectors=None, file_format="CSV",
                 folder=EXPORT_FOLDER, bucket=EXPORT_BUCKET, start=True):
    """Export an ee.FeatureCollection as CSV/SHP/GeoJSON to Drive or Cloud Storage."""
    name = export_description(description)
    params = dict(
        collection=collection,
        description=name,
        fileNamePrefix=name,
        fileFormat=file_format,
    )
    if selectors:
        params["selectors"] = list(selectors)

    if bucket:
        task = ee.batch.Export.table.toCloudStorage(bucket=bucket, **params)
        target = f"gs://{bucket}"
    else:
        task = ee.batch.Export.table.toDrive(folder=folder, **params)
        target = f"Drive/{folder}"

    if start:
        task.start()
        print(f"  → Export started: {name} ({file_format}, {target})")
    return task


def cancel_ready_tasks():
    """Cancel every task still waiting in the queue (READY). Returns how many were cancelled."""
    cancelled = 0
    for task in ee.batch.Task.list():
        if task.status()["state"] == "READY":
            task.cancel()
            cancelled += 1
    return cancelled


# CLIENT SIDE HELPERS

def features_to_dataframe(fc_info, columns=None):
    """Properties of a getInfo()'d FeatureCollection as a DataFrame (geometry dropped)."""
    rows = [f.get("properties") or {} for f in fc_info.get("features", [])]
    df = pd.DataFrame(rows)
    if columns is not None:
        df = df.reindex(columns=list(columns))
    return df


def centroid_latlon(geometry):
    """(lat, lon) of the geometry centroid, for centering maps."""
    lon, lat = geometry.centroid(1).coordinates().getInfo()
    return lat, lon


def print_banner(title, lines=()):
    print(f"\n{'='*60}")
    print(title)
    for line in lines:
        print(f"  {line}")
    print(f"{'='*60}\n")
