"""Tests for gap-aware daily series normalization."""

import pandas as pd
import pytest

from hydrosmith.objects.timeseries import ObservationPanel
from hydrosmith.primitives.series import OBSERVED_COL, complete_daily_grid, gap_runs
from hydrosmith.utils.errors import DataValidationError


@pytest.fixture
def two_site_panel():
    data = pd.DataFrame(
        {
            "site_no": ["01", "01", "02", "02", "02"],
            "station_nm": ["UPPER", "UPPER", "LOWER", "LOWER", "LOWER"],
            "date": pd.to_datetime(
                ["2020-01-01", "2020-01-05", "2020-01-03", "2020-01-04", "2020-01-07"]
            ),
            "value": [1.0, 5.0, 30.0, 40.0, 70.0],
        }
    )
    return ObservationPanel(data=data, metadata_cols=("station_nm",))


class TestCompleteDailyGrid:
    """Tests for complete_daily_grid."""

    def test_day_one_and_five_gives_five_rows(self, two_site_panel):
        """Test that a series observed on days 1 and 5 spans 5 rows."""
        daily = complete_daily_grid(two_site_panel)
        site = daily[daily["site_no"] == "01"]
        assert len(site) == 5
        assert site["date"].tolist() == list(pd.date_range("2020-01-01", "2020-01-05"))

    def test_values_not_invented(self, two_site_panel):
        """Test that inserted days have no value."""
        daily = complete_daily_grid(two_site_panel)
        site = daily[daily["site_no"] == "01"].reset_index(drop=True)
        assert site["value"].iloc[[0, 4]].tolist() == [1.0, 5.0]
        assert site["value"].iloc[1:4].isna().all()
        assert site[OBSERVED_COL].tolist() == [True, False, False, False, True]

    def test_metadata_forward_filled(self, two_site_panel):
        """Test that metadata is carried onto inserted days."""
        daily = complete_daily_grid(two_site_panel)
        site = daily[daily["site_no"] == "01"]
        assert (site["station_nm"] == "UPPER").all()

    def test_no_fill_across_sites(self, two_site_panel):
        """Test that each site keeps its own range and metadata."""
        daily = complete_daily_grid(two_site_panel)
        lower = daily[daily["site_no"] == "02"]
        assert lower["date"].min() == pd.Timestamp("2020-01-03")
        assert lower["date"].max() == pd.Timestamp("2020-01-07")
        assert len(lower) == 5
        assert (lower["station_nm"] == "LOWER").all()

    def test_contiguous_dates(self, two_site_panel):
        """Test that every series is a gap-free daily sequence."""
        daily = complete_daily_grid(two_site_panel)
        for _, group in daily.groupby("site_no"):
            steps = group["date"].diff().dropna().unique()
            assert list(steps) == [pd.Timedelta(days=1)]

    def test_columns_and_order(self, two_site_panel):
        """Test output columns and series order."""
        daily = complete_daily_grid(two_site_panel)
        assert list(daily.columns) == ["site_no", "station_nm", "date", "value", OBSERVED_COL]
        assert daily["site_no"].tolist() == ["01"] * 5 + ["02"] * 5

    def test_duplicate_days_raise(self):
        """Test that two rows for one site and day are rejected."""
        data = pd.DataFrame(
            {
                "site_no": ["01", "01"],
                "date": pd.to_datetime(["2020-01-01 00:00", "2020-01-01 12:00"]),
                "value": [1.0, 2.0],
            }
        )
        with pytest.raises(DataValidationError, match="share a series and day"):
            complete_daily_grid(ObservationPanel(data=data))

    def test_parameters_are_separate_series(self):
        """Test that each parameter of a site is expanded independently."""
        data = pd.DataFrame(
            {
                "site_no": ["01", "01", "01"],
                "parameter_cd": ["00060", "00060", "00010"],
                "date": pd.to_datetime(["2020-01-01", "2020-01-03", "2020-01-01"]),
                "value": [1.0, 3.0, 12.5],
            }
        )
        panel = ObservationPanel(data=data, parameter_col="parameter_cd")
        daily = complete_daily_grid(panel)
        counts = daily.groupby("parameter_cd").size().to_dict()
        assert counts == {"00010": 1, "00060": 3}

    def test_empty_panel(self):
        """Test that an empty panel yields an empty frame with columns."""
        data = pd.DataFrame(
            {"site_no": [], "date": pd.to_datetime([]), "value": []}
        )
        daily = complete_daily_grid(ObservationPanel(data=data))
        assert daily.empty
        assert OBSERVED_COL in daily.columns

    def test_input_unchanged(self, two_site_panel):
        """Test that the panel data is not modified."""
        before = two_site_panel.data.copy()
        complete_daily_grid(two_site_panel)
        pd.testing.assert_frame_equal(two_site_panel.data, before)


class TestGapRuns:
    """Tests for gap_runs."""

    def test_runs(self, two_site_panel):
        """Test one run per contiguous span of missing days."""
        daily = complete_daily_grid(two_site_panel)
        gaps = gap_runs(daily, ["site_no"])
        assert gaps["site_no"].tolist() == ["01", "02"]
        assert gaps["n_days"].tolist() == [3, 2]
        assert gaps.loc[0, "gap_start"] == pd.Timestamp("2020-01-02")
        assert gaps.loc[1, "gap_end"] == pd.Timestamp("2020-01-06")

    def test_requires_normalized_input(self, two_site_panel):
        """Test that raw observations are rejected."""
        with pytest.raises(DataValidationError, match="observed"):
            gap_runs(two_site_panel.data, ["site_no"])
