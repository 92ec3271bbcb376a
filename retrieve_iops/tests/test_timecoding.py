"""
Tests for acquisition time lookup.
"""

import logging
from datetime import datetime, timezone

import numpy as np
import pytest

from retrieve_iops.timecoding import (
    LineTimeCoding,
    parse_product_time,
    scene_time_coding,
    to_mjd2000,
)


class TestMjd2000:
    """Tests for the MJD2000 conversion."""

    def test_epoch(self):
        assert to_mjd2000(datetime(2000, 1, 1, tzinfo=timezone.utc)) == 0.0

    def test_naive_is_utc(self):
        assert to_mjd2000(datetime(2000, 1, 2, 12)) == pytest.approx(1.5)

    def test_before_epoch(self):
        assert to_mjd2000(datetime(1999, 12, 31, tzinfo=timezone.utc)) == pytest.approx(-1.0)


class TestParseProductTime:
    """Tests for parse_product_time."""

    def test_product_format(self):
        parsed = parse_product_time("2016-07-04T10:30:00.500Z", "start_time")
        assert parsed == datetime(2016, 7, 4, 10, 30, 0, 500000, tzinfo=timezone.utc)

    def test_iso_format(self):
        parsed = parse_product_time("2016-07-04T10:30:00+00:00", "start_time")
        assert parsed == datetime(2016, 7, 4, 10, 30, tzinfo=timezone.utc)

    def test_datetime64(self):
        parsed = parse_product_time(np.datetime64("2016-07-04T10:30:00"), "start_time")
        assert parsed == datetime(2016, 7, 4, 10, 30, tzinfo=timezone.utc)

    def test_missing_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="retrieve_iops.timecoding"):
            assert parse_product_time(None, "PRODUCT_START_TIME") is None
        assert "Could not retrieve PRODUCT_START_TIME from metadata" in caplog.text

    def test_unparsable_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="retrieve_iops.timecoding"):
            assert parse_product_time("yesterday", "start_time") is None
        assert "start_time" in caplog.text


class TestLineTimeCoding:
    """Tests for LineTimeCoding."""

    def test_linear_by_row(self):
        coding = LineTimeCoding(10.0, 11.0, 4)
        assert coding.mjd(0) == pytest.approx(10.125)
        assert coding.mjd(3) == pytest.approx(10.875)
        assert np.all(np.diff(coding.mjd(np.arange(4))) > 0)

    def test_single_row(self):
        assert LineTimeCoding(10.0, 11.0, 1).mjd(0) == pytest.approx(10.0)

    def test_unknown(self):
        coding = LineTimeCoding(np.nan, np.nan, 3)
        assert not coding.known
        assert np.isnan(coding.mjd(1))


class TestSceneTimeCoding:
    """Tests for scene_time_coding."""

    def test_start_end(self, scene):
        coding = scene_time_coding(scene.attrs, 3)
        start = to_mjd2000(datetime(2016, 7, 4, 10, 30, tzinfo=timezone.utc))
        assert coding.known
        assert coding.start_mjd == pytest.approx(start)
        assert (coding.end_mjd - coding.start_mjd) * 86400.0 == pytest.approx(6.0)

    def test_product_metadata_fallback(self):
        attrs = {
            "PRODUCT_START_TIME": "2016-07-04T10:30:00.000Z",
            "PRODUCT_STOP_TIME": "2016-07-04T10:30:06.000Z",
        }
        coding = scene_time_coding(attrs, 3)
        assert coding.known
        assert coding.start == datetime(2016, 7, 4, 10, 30, tzinfo=timezone.utc)
        assert coding.end == datetime(2016, 7, 4, 10, 30, 6, tzinfo=timezone.utc)

    def test_missing_end_uses_start(self):
        coding = scene_time_coding({"start_time": "2016-07-04T10:30:00.000Z"}, 3)
        assert coding.end_mjd == coding.start_mjd

    def test_missing_start_gives_nan(self, caplog):
        with caplog.at_level(logging.WARNING, logger="retrieve_iops.timecoding"):
            coding = scene_time_coding({}, 3)
        assert not coding.known
        assert np.isnan(coding.mjd(0))
        assert "no acquisition time" in caplog.text
