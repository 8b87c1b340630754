from unittest.mock import MagicMock

import pytest

import chirps_rainfall as cr
import gee_common


def _image_descriptions(fake):
    return [c.kwargs["description"] for c in fake.batch.Export.image.toDrive.call_args_list]


def test_stats_selectors_per_admin_level():
    values = ["longitude", "latitude", "mean", "min", "max", "sum"]
    assert cr.stats_selectors(0) == ["ADM0_NAME"] + values
    assert cr.stats_selectors(1) == ["ADM0_NAME", "ADM1_NAME"] + values
    assert cr.stats_selectors(2) == ["ADM0_NAME", "ADM1_NAME", "ADM2_NAME"] + values


def test_stats_selectors_custom_aoi_has_no_admin_columns():
    assert cr.stats_selectors(2, use_custom_aoi=True)[0] == "longitude"


@pytest.mark.parametrize("kwargs, message", [
    (dict(admin_level=4), "admin_level"),
    (dict(baseline_start_year=2016, baseline_end_year=2015), "Baseline start year"),
    (dict(doy_start=0), "Day of year"),
    (dict(doy_end=367), "Day of year"),
])
def test_validate_settings_errors(kwargs, message):
    settings = dict(admin_level=2, baseline_start_year=2000, baseline_end_year=2015,
                    doy_start=1, doy_end=365)
    settings.update(kwargs)
    with pytest.raises(ValueError, match=message):
        cr.validate_settings(**settings)


def test_seasonal_baseline_sums_every_baseline_year(fake_ee):
    chirps = MagicMock()
    cr.seasonal_baseline(chirps, 2000, 2004, 60, 151, "geom")

    fake_ee.Filter.dayOfYear.assert_called_once_with(60, 151)
    years = [c.args[0] for c in fake_ee.Filter.calendarRange.call_args_list]
    assert years == [2000, 2001, 2002, 2003, 2004]
    images = fake_ee.ImageCollection.fromImages.call_args.args[0]
    assert len(images) == 5
    fake_ee.ImageCollection.fromImages.return_value.mean.assert_called_once()


def test_rainfall_anomaly_masks_baseline_with_study():
    study = MagicMock()
    baseline = MagicMock()
    cr.rainfall_anomaly(study, baseline, "geom")
    baseline.updateMask.assert_called_once_with(study.mask.return_value)
    study.subtract.assert_called_once_with(baseline.updateMask.return_value)
    study.subtract.return_value.clip.assert_called_once_with("geom")


def test_run_rejects_bad_settings_before_touching_gee(fake_ee):
    with pytest.raises(ValueError):
        cr.run_chirps_analysis(admin_level=5)
    fake_ee.Initialize.assert_not_called()


def test_run_queues_rasters_and_tables(fake_ee):
    tasks = cr.run_chirps_analysis(
        country_name="Portugal", admin_level=2, admin2_names=["Odemira"],
        baseline_start_year=2000, baseline_end_year=2015,
        make_map=False, make_charts=False,
    )

    assert len(tasks) == 5
    assert _image_descriptions(fake_ee) == [
        "Rainfall_Portugal_AdminLevel2_StudyPeriod",
        "Rainfall_Portugal_AdminLevel2_Baseline_2000_2015",
        "Rainfall_Portugal_AdminLevel2_Anomaly",
    ]
    table_calls = fake_ee.batch.Export.table.toDrive.call_args_list
    assert table_calls[0].kwargs["description"] == "Rainfall_Portugal_AdminLevel2_Admin_Stats"
    assert table_calls[0].kwargs["selectors"] == cr.stats_selectors(2)
    assert table_calls[1].kwargs["fileFormat"] == "SHP"
    for call in fake_ee.batch.Export.image.toDrive.call_args_list:
        assert call.kwargs["scale"] == 250


def test_unit_name_column():
    assert cr.unit_name_column(0) == "ADM0_NAME"
    assert cr.unit_name_column(2) == "ADM2_NAME"
    assert cr.unit_name_column(2, use_custom_aoi=True) is None


def test_chart_values_fetches_columns_not_features(fake_ee):
    stats = MagicMock()
    cr.chart_values(stats, "ADM2_NAME")

    assert [c.args[0] for c in stats.aggregate_array.call_args_list] == ["mean", "ADM2_NAME"]
    assert set(fake_ee.Dictionary.call_args.args[0]) == {"mean", "name"}
    stats.getInfo.assert_not_called()


def test_chart_values_without_names(fake_ee):
    stats = MagicMock()
    cr.chart_values(stats, None)
    stats.aggregate_array.assert_called_once_with("mean")
    assert set(fake_ee.Dictionary.call_args.args[0]) == {"mean"}


def test_run_chart_for_admin_units(fake_ee, monkeypatch, tmp_path):
    monkeypatch.setattr(gee_common, "OUTPUT_DIR", tmp_path)
    fake_ee.Dictionary.return_value.getInfo.return_value = {"mean": [812.4], "name": ["Odemira"]}

    cr.run_chirps_analysis(country_name="Portugal", admin_level=2, admin2_names=["Odemira"],
                           make_map=False)

    assert (tmp_path / "Rainfall_Portugal_AdminLevel2_admin_mean.png").exists()


def test_run_chart_for_custom_aoi_numbers_the_units(fake_ee, monkeypatch, tmp_path):
    monkeypatch.setattr(gee_common, "OUTPUT_DIR", tmp_path)
    fake_ee.Dictionary.return_value.getInfo.return_value = {"mean": [410.0, 520.5]}
    plotted = {}

    def fake_plot_columns(labels, values, **kwargs):
        plotted.update(labels=labels, values=values)

    import charts
    monkeypatch.setattr(charts, "plot_columns", fake_plot_columns)

    cr.run_chirps_analysis(country_name="Portugal", use_custom_aoi=True,
                           custom_aoi_source="users/someone/farm", make_map=False)

    assert plotted == {"labels": [1, 2], "values": [410.0, 520.5]}


def test_run_exports_even_if_chart_fetch_fails(fake_ee, monkeypatch, tmp_path):
    monkeypatch.setattr(gee_common, "OUTPUT_DIR", tmp_path)
    fake_ee.EEException = type("EEException", (Exception,), {})
    fake_ee.Dictionary.return_value.getInfo.side_effect = fake_ee.EEException("Computation timed out.")

    tasks = cr.run_chirps_analysis(country_name="Portugal", admin_level=2, admin2_names=[],
                                   make_map=False)

    assert len(tasks) == 5
    assert not list(tmp_path.glob("*.png"))
