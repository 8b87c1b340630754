import pytest

import dem_elevation as dem


def test_load_dem_unknown_dataset():
    with pytest.raises(ValueError, match="Unknown DEM dataset"):
        dem.load_dem("GTOPO")


def test_load_dem_alos_is_mosaicked(fake_ee):
    dem.load_dem("ALOS")
    fake_ee.ImageCollection.assert_called_once_with("JAXA/ALOS/AW3D30/V3_2")
    collection = fake_ee.ImageCollection.return_value
    collection.select.assert_called_once_with("DSM")
    tiles = collection.select.return_value
    native = tiles.first.return_value.select.return_value.projection.return_value
    tiles.first.return_value.select.assert_called_once_with(0)
    mosaic = tiles.mosaic.return_value
    mosaic.setDefaultProjection.assert_called_once_with(native)
    mosaic.setDefaultProjection.return_value.rename.assert_called_once_with("elevation")


def test_load_dem_nasadem(fake_ee):
    dem.load_dem("NASADEM")
    fake_ee.Image.assert_called_once_with("NASA/NASADEM_HGT/001")
    fake_ee.Image.return_value.select.assert_called_once_with("elevation")


def test_elevation_histogram_bucket_width(fake_ee):
    image = fake_ee.Image.return_value
    dem.elevation_histogram(image, "geom")
    fake_ee.Reducer.histogram.assert_called_once_with(minBucketWidth=50)
    assert image.reduceRegion.call_args.kwargs["scale"] == 50


def test_elevation_percentiles_drop_empty_rows(fake_ee):
    image = fake_ee.Image.return_value
    dem.elevation_percentiles(image, "fc")
    fake_ee.Reducer.percentile.assert_called_once_with([50, 95])
    fake_ee.Filter.notNull.assert_called_once_with(["p50"])


def test_run_rejects_unknown_dataset(fake_ee):
    with pytest.raises(ValueError):
        dem.run_dem_analysis(dem_dataset="ASTER", make_map=False, make_charts=False)
    fake_ee.Initialize.assert_not_called()


def test_run_exports_cloud_optimized_rasters(fake_ee):
    tasks = dem.run_dem_analysis(
        country_name="Spain", aoi_source="users/someone/aoi",
        make_map=False, make_charts=False,
    )
    assert len(tasks) == 5

    image_calls = fake_ee.batch.Export.image.toDrive.call_args_list
    assert [c.kwargs["description"] for c in image_calls] == [
        "DEM_Elevation_AOI", "DEM_Elevation_Spain", "DEM_Elevation_Terrain",
    ]
    for call in image_calls:
        assert call.kwargs["formatOptions"] == {"cloudOptimized": True}
        assert call.kwargs["crs"] == "EPSG:4326"

    table_calls = fake_ee.batch.Export.table.toDrive.call_args_list
    assert table_calls[0].kwargs["description"] == "AOI_stats_elevation"
    assert table_calls[1].kwargs["selectors"] == ["p50", "p95"]
