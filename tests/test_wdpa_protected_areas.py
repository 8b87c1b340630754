from unittest.mock import MagicMock

import pytest

import gee_common
import wdpa_protected_areas as wdpa


@pytest.mark.parametrize("protected, total, expected", [
    (25.0, 100.0, 25.0),
    (None, 100.0, 0.0),
    (10.0, 0, 0.0),
    (10.0, None, 0.0),
])
def test_coverage_percent(protected, total, expected):
    assert wdpa.coverage_percent(protected, total) == pytest.approx(expected)


def test_iucn_summary_frame_merges_missing_category():
    groups = [
        {"IUCN_CAT": "II", "sum": 150.0, "count": 2},
        {"IUCN_CAT": "V", "sum": 400.0, "count": 1},
        {"IUCN_CAT": None, "sum": 5.0, "count": 1},
        {"IUCN_CAT": "Not Reported", "sum": 20.0, "count": 3},
    ]
    df = wdpa.iucn_summary_frame(groups)

    assert df["IUCN_CAT"].tolist() == ["V", "II", "Not Reported"]
    assert df["n_areas"].tolist() == [1, 2, 4]
    assert df["area_km2"].tolist() == [400.0, 150.0, 25.0]


def test_iucn_summary_frame_empty():
    df = wdpa.iucn_summary_frame([])
    assert df.empty
    assert list(df.columns) == ["IUCN_CAT", "n_areas", "area_km2"]


def test_iucn_area_groups_reduces_columns_server_side(fake_ee):
    pas = MagicMock()
    wdpa.iucn_area_groups(pas)

    fake_ee.Reducer.sum.return_value.combine.assert_called_once_with(
        reducer2=fake_ee.Reducer.count.return_value, sharedInputs=True
    )
    combined = fake_ee.Reducer.sum.return_value.combine.return_value
    combined.group.assert_called_once_with(groupField=1, groupName="IUCN_CAT")
    kwargs = pas.reduceColumns.call_args.kwargs
    assert kwargs["selectors"] == ["area_in_aoi_km2", "IUCN_CAT"]
    pas.getInfo.assert_not_called()


def test_protected_areas_filters(fake_ee):
    wdpa.protected_areas("geom", ["Designated"], exclude_marine=True)
    fake_ee.FeatureCollection.assert_called_once_with(wdpa.WDPA_ASSET)
    fake_ee.Filter.inList.assert_called_once_with("STATUS", ["Designated"])
    fake_ee.Filter.eq.assert_called_once_with("MARINE", "0")


def test_protected_areas_keep_marine(fake_ee):
    wdpa.protected_areas("geom", [], exclude_marine=False)
    fake_ee.Filter.inList.assert_not_called()
    fake_ee.Filter.eq.assert_not_called()


def test_protected_coverage_counts_unprotected_pixels_as_zero(fake_ee):
    mask = MagicMock()
    wdpa.protected_coverage(mask, "geom", scale=100)

    mask.unmask.assert_called_once_with(0)
    mask.unmask.return_value.multiply.return_value.divide.assert_called_once_with(1e6)
    fake_ee.Image.constant.assert_called_once_with(1)
    fake_ee.Image.constant.return_value.rename.assert_called_once_with("aoi")
    assert set(fake_ee.Dictionary.call_args.args[0]) == {"protected_km2", "aoi_km2"}


def test_run_queues_exports(fake_ee):
    fake_ee.Dictionary.return_value.getInfo.return_value = {"protected_km2": 25.0, "aoi_km2": 100.0}

    tasks = wdpa.run_wdpa_analysis(country_name="Portugal", use_custom_aoi=False,
                                   make_map=False, make_charts=False)
    assert len(tasks) == 3

    tables = fake_ee.batch.Export.table.toDrive.call_args_list
    assert tables[0].kwargs["description"] == "WDPA_Portugal_Country_Protected_Areas"
    assert tables[0].kwargs["selectors"] == wdpa.PA_SELECTORS
    assert tables[1].kwargs["fileFormat"] == "SHP"
    image = fake_ee.batch.Export.image.toDrive.call_args.kwargs
    assert image["description"] == "WDPA_Portugal_Country_Protected_Mask"
    assert image["scale"] == 100


def test_run_draws_iucn_chart(fake_ee, monkeypatch, tmp_path):
    monkeypatch.setattr(gee_common, "OUTPUT_DIR", tmp_path)
    fake_ee.Dictionary.return_value.getInfo.return_value = {"protected_km2": 25.0, "aoi_km2": 100.0}
    fake_ee.List.return_value.getInfo.return_value = [
        {"IUCN_CAT": "II", "sum": 15.0, "count": 2},
        {"IUCN_CAT": "IV", "sum": 10.0, "count": 5},
    ]

    wdpa.run_wdpa_analysis(country_name="Portugal", use_custom_aoi=False, make_map=False)

    assert (tmp_path / "WDPA_Portugal_Country_iucn_km2.png").exists()


def test_run_still_exports_when_summary_fetch_fails(fake_ee, monkeypatch, tmp_path):
    monkeypatch.setattr(gee_common, "OUTPUT_DIR", tmp_path)
    fake_ee.EEException = type("EEException", (Exception,), {})
    fake_ee.Dictionary.return_value.getInfo.return_value = {"protected_km2": 0.0, "aoi_km2": 100.0}
    fake_ee.List.return_value.getInfo.side_effect = fake_ee.EEException(
        "Collection query aborted after accumulating over 5000 elements."
    )

    tasks = wdpa.run_wdpa_analysis(country_name="Portugal", use_custom_aoi=False, make_map=False)

    assert len(tasks) == 3
    assert not list(tmp_path.glob("*.png"))
