"""Tests for status formatting."""

import pytest

from code_ledger.core.status import StatusReport, format_detailed_time, format_time_string


class TestFormatTimeString:
    """Tests for the compact duration format."""

    @pytest.mark.parametrize(
        "seconds,expected",
        [(0, "0 sec"), (59, "59 sec"), (60, "1 min"), (3599, "59 min"), (3600, "1 h 0 min"), (3900, "1 h 5 min")],
    )
    def test_format(self, seconds, expected):
        assert format_time_string(seconds) == expected


class TestFormatDetailedTime:
    """Tests for the detailed duration format."""

    @pytest.mark.parametrize(
        "seconds,expected",
        [(5, "5 sec"), (65, "1 min 5 sec"), (7265, "2 h 1 min")],
    )
    def test_format(self, seconds, expected):
        assert format_detailed_time(seconds) == expected


class TestStatusReport:
    """Tests for StatusReport."""

    def test_totals(self):
        report = StatusReport(stored_seconds=3000, session_seconds=900, unsynced_count=0)
        assert report.total_seconds == 3900
        assert report.all_synced
        assert report.summary() == "1 h 5 min"

    def test_pending_summary(self):
        report = StatusReport(stored_seconds=30, session_seconds=0, unsynced_count=3)
        assert not report.all_synced
        assert report.summary() == "30 sec (3 pending)"
