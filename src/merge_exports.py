"""
merge_exports.py
=================
Large GeoTIFF exports are split by Earth Engine into tiles named
<prefix>-0000000000-0000000000.tif. After downloading them from Drive (or
Cloud Storage) this script merges the tiles of every prefix into one GeoTIFF
and prints a quick summary of each band.

Usage: python src/merge_exports.py [downloads_dir] [out_dir]
"""

import re
import sys
from collections import defaultdict
from pathlib import Path

import numpy as np
import rasterio
from rasterio.merge import merge

DOWNLOAD_DIR = Path("data/exports")
MERGED_DIR = Path("data/merged")

TILE_PATTERN = re.compile(r"^(?P<prefix>.+)-(?P<row>\d{10})-(?P<col>\d{10})$")


def export_prefix(path):
    """Prefix of a (possibly tiled) export file name."""
    stem = Path(path).stem
    match = TILE_PATTERN.match(stem)
    return match.group("prefix") if match else stem


def find_export_groups(directory):
    """Group the .tif files of a folder by export prefix."""
    groups = defaultdict(list)
    for f in sorted(Path(directory).glob("*.tif")):
        groups[export_prefix(f)].append(f)
    return dict(groups)


def merge_export_tiles(file_list, out_path):
    """Merge the tiles of one export into a single GeoTIFF (a single tile is rewritten as is)."""
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    datasets = [rasterio.open(f) for f in sorted(file_list)]
    try:
        merged, transform = merge(datasets)
        profile = datasets[0].profile.copy()
        descriptions = datasets[0].descriptions
    finally:
        for ds in datasets:
            ds.close()

    profile.update({
        "driver": "GTiff",
        "height": merged.shape[1],
        "width": merged.shape[2],
        "transform": transform,
        "count": merged.shape[0],
    })
    # tiled exports are written as COG tiles, the merged file is a plain GeoTIFF
    for key in ("blockxsize", "blockysize", "tiled", "interleave"):
        profile.pop(key, None)

    with rasterio.open(out_path, "w", **profile) as dst:
        dst.write(merged)
        for i, desc in enumerate(descriptions, start=1):
            if desc:
                dst.set_band_description(i, desc)

    return out_path


def raster_summary(path):
    """min/max/mean and valid pixel count of each band, nodata and NaN ignored."""
    summary = []
    with rasterio.open(path) as src:
        for i in range(1, src.count + 1):
            band = src.read(i, masked=True).astype(np.float64)
            values = band.compressed()
            values = values[np.isfinite(values)]
            name = src.descriptions[i - 1] or f"band_{i}"
            if len(values) == 0:
                summary.append({"band": name, "valid": 0, "min": None, "max": None, "mean": None})
                continue
            summary.append({
                "band": name,
                "valid": int(len(values)),
                "min": float(values.min()),
                "max": float(values.max()),
                "mean": float(values.mean()),
            })
    return summary


def main(download_dir=DOWNLOAD_DIR, out_dir=MERGED_DIR):
    print("=" * 60)
    print("MERGING EARTH ENGINE EXPORTS")
    print("=" * 60)

    groups = find_export_groups(download_dir)
    if not groups:
        print(f"\nNo .tif files found in {download_dir}")
        return []

    merged_files = []
    for prefix, files in sorted(groups.items()):
        total_mb = sum(f.stat().st_size / 1e6 for f in files)
        print(f"\n{prefix}: {len(files)} tile(s), {total_mb:.1f} MB")
        out_path = merge_export_tiles(files, Path(out_dir) / f"{prefix}.tif")
        print(f"  → Merged: {out_path}")
        for band in raster_summary(out_path):
            if band["valid"] == 0:
                print(f"    {band['band']:20s} no valid pixels")
            else:
                print(f"    {band['band']:20s} min={band['min']:.3f} max={band['max']:.3f} "
                      f"mean={band['mean']:.3f} ({band['valid']} px)")
        merged_files.append(out_path)

    print(f"\n{'='*60}")
    print(f"DONE! {len(merged_files)} file(s) written to {out_dir}/")
    print(f"{'='*60}")
    return merged_files


if __name__ == "__main__":
    args = sys.argv[1:]
    main(*(Path(a) for a in args[:2]))
