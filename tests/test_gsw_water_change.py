from unittest.mock import MagicMock

import pytest

import gsw_water_change as gsw


@pytest.mark.parametrize("value, expected", [
    (0, ("No Change", "#ffffff")),
    (1, ("Permanent Water", "#0000ff")),
    (10, ("Ephemeral Seasonal", "#c3c3c3")),
    (11, ("Unknown", "#999999")),
    (-1, ("Unknown", "#999999")),
    (None, ("Unknown", "#999999")),
])
def test_transition_class_lookup(value, expected):
    assert gsw.transition_class(value) == expected


def test_class_table_has_a_color_per_name():
    assert len(gsw.CLASS_NAMES) == len(gsw.CLASS_COLORS) == 11


def test_bin_label():
    assert gsw.bin_label(-100) == "-100 to -90"
    assert gsw.bin_label(90, 10) == "90 to 100"


def test_transition_summary_frame_converts_sorts_and_filters():
    groups = [
        {"transition_class_value": 1, "sum": 2e6},
        {"transition_class_value": 4, "sum": 5e6},
        {"transition_class_value": 0, "sum": 0},
        {"transition_class_value": 12, "sum": 1e6},
    ]
    df = gsw.transition_summary_frame(groups)

    assert df["transition_class_name"].tolist() == ["Seasonal Water", "Permanent Water", "Unknown"]
    assert df["area_km2"].tolist() == [5.0, 2.0, 1.0]
    assert df["transition_class_number"].tolist() == [4, 1, 12]
    assert gsw.pie_slice_colors(df) == ["#99d9ea", "#0000ff", "#999999"]


def test_transition_summary_frame_empty():
    df = gsw.transition_summary_frame([])
    assert df.empty
    assert "area_km2" in df.columns


def test_change_histogram_frame_sorted_by_bin():
    groups = [
        {"bin": 10, "sum": 0.5},
        {"bin": -100, "sum": 1.25},
        {"bin": 0, "sum": 3.0},
    ]
    df = gsw.change_histogram_frame(groups)
    assert df["bin"].tolist() == [-100, 0, 10]
    assert df["bin_label"].tolist() == ["-100 to -90", "0 to 10", "10 to 20"]
    assert df["area_km2"].tolist() == [1.25, 3.0, 0.5]


def test_water_mask_uses_threshold():
    occurrence = MagicMock()
    gsw.water_mask(occurrence)
    occurrence.gt.assert_called_once_with(90)
    occurrence.gt.return_value.selfMask.assert_called_once()


def test_change_bins_masks_invalid_values(fake_ee):
    change = MagicMock()
    gsw.change_bins(change, "geom", bin_width=10)
    change.gte.assert_called_once_with(-100)
    change.lte.assert_called_once_with(100)
    masked = change.clip.return_value.updateMask.return_value
    masked.divide.assert_called_once_with(10)
    masked.divide.return_value.floor.return_value.multiply.assert_called_once_with(10)


def test_run_custom_aoi_exports(fake_ee):
    tasks = gsw.run_gsw_analysis(
        use_custom_aoi=True, aoi_name="Inland bassin", aoi_source="users/someone/basin",
        make_map=False, make_charts=False,
    )
    assert len(tasks) == 5

    table = fake_ee.batch.Export.table.toDrive.call_args.kwargs
    assert table["description"] == "GSW_Inland_bassin_Transition_Summary_km2"
    assert table["selectors"] == ["transition_class_number", "transition_class_name", "area_km2"]

    images = [c.kwargs["description"] for c in fake_ee.batch.Export.image.toDrive.call_args_list]
    assert images == [
        "GSW_Inland_bassin_Water_Mask_gt90",
        "GSW_Inland_bassin_Water_Occurrence_1984_2021",
        "GSW_Inland_bassin_Change_Intensity_1984_2021",
        "GSW_Inland_bassin_Transition_Classes_1984_2021",
    ]


def test_run_country_prefix(fake_ee):
    gsw.run_gsw_analysis(use_custom_aoi=False, country_name="Costa Rica",
                         make_map=False, make_charts=False)
    table = fake_ee.batch.Export.table.toDrive.call_args.kwargs
    assert table["description"] == "GSW_Costa_Rica_Transition_Summary_km2"


def test_transition_feature_defaults_to_unknown(fake_ee):
    gsw.transition_feature({"transition_class_value": 4, "sum": 2e6})

    class_number = fake_ee.Number.return_value.toInt.return_value
    class_number.gte.assert_called_once_with(0)
    class_number.lte.assert_called_once_with(10)
    name_if, color_if = fake_ee.Algorithms.If.call_args_list
    assert name_if.args[2] == "Unknown"
    assert color_if.args[2] == "#999999"
    fake_ee.Dictionary.return_value.get.assert_any_call("sum", 0)
    fake_ee.Number.return_value.divide.assert_called_once_with(1e6)

    properties = fake_ee.Feature.call_args.args[1]
    assert set(properties) == {
        "transition_class_number", "transition_class_name", "transition_class_palette", "area_km2",
    }


def test_transition_areas_drop_empty_classes_and_sort(fake_ee):
    gsw.transition_areas(MagicMock(), "geom")

    fake_ee.List.return_value.map.assert_called_once_with(gsw.transition_feature)
    fake_ee.Filter.gt.assert_called_once_with("area_km2", 0)
    filtered = fake_ee.FeatureCollection.return_value.filter.return_value
    filtered.sort.assert_called_once_with("area_km2", False)


def test_change_area_histogram_features(fake_ee):
    gsw.change_area_histogram(MagicMock(), "geom", scale=100, bin_width=10)

    fake_ee.Image.pixelArea.return_value.divide.assert_called_once_with(1e6)
    fake_ee.FeatureCollection.return_value.sort.assert_called_once_with("bin")

    to_feature = fake_ee.List.return_value.map.call_args.args[0]
    to_feature({"bin": -20, "sum": 1.5})
    bin_number = fake_ee.Number.return_value.toInt.return_value
    bin_number.add.assert_called_once_with(10)
    bin_number.format.return_value.cat.assert_called_once_with(" to ")
    assert set(fake_ee.Feature.call_args.args[1]) == {"bin", "bin_label", "area_km2"}
