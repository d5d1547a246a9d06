"""Tests for fix validation and boundary normalization of stored rows."""

import datetime
from types import SimpleNamespace

from fixes import (
    Fix,
    fix_from_row,
    is_valid,
    normalize_battery,
    normalize_device_info,
    prepare_fixes,
)
from tests.gps_test_fixtures import GPS_TRACE, as_fixes, make_fix

T0 = datetime.datetime(2024, 3, 14, 8, 0, 0)


def _row(**kwargs):
    values = {
        "latitude": 53.34,
        "longitude": -6.26,
        "timestamp": T0,
        "tracking_id": "van-07",
        "address": None,
        "battery_percent": None,
        "device_info": None,
    }
    values.update(kwargs)
    return SimpleNamespace(**values)


class TestIsValid:
    def test_numeric_coordinates(self):
        assert is_valid(_row())
        assert is_valid(_row(latitude=0, longitude=0))

    def test_missing_coordinates(self):
        assert not is_valid(_row(latitude=None))
        assert not is_valid(_row(longitude=None))
        assert not is_valid(None)

    def test_nan_coordinates(self):
        assert not is_valid(_row(latitude=float("nan")))

    def test_non_numeric_coordinates(self):
        assert not is_valid(_row(latitude="53.34"))
        assert not is_valid(_row(longitude=True))


class TestNormalizeDeviceInfo:
    def test_json_object_string(self):
        assert normalize_device_info('{"model": "Pixel 7"}') == {"model": "Pixel 7"}

    def test_dict_is_copied(self):
        raw = {"os": "iOS 17"}
        result = normalize_device_info(raw)
        assert result == raw
        assert result is not raw

    def test_bytes(self):
        assert normalize_device_info(b'{"os": "iOS"}') == {"os": "iOS"}

    def test_unreadable_payloads_become_none(self):
        assert normalize_device_info(None) is None
        assert normalize_device_info("") is None
        assert normalize_device_info("not json at all") is None
        assert normalize_device_info("[1, 2]") is None
        assert normalize_device_info("42") is None
        assert normalize_device_info(b"\xff\xfe") is None
        assert normalize_device_info(3.5) is None


class TestNormalizeBattery:
    def test_values(self):
        assert normalize_battery(87) == 87.0
        assert normalize_battery("55.5") == 55.5
        assert normalize_battery(None) is None
        assert normalize_battery("full") is None
        assert normalize_battery(float("nan")) is None
        assert normalize_battery(True) is None


class TestFixFromRow:
    def test_naive_timestamp_becomes_utc(self):
        fix = fix_from_row(_row())
        assert fix.timestamp == T0.replace(tzinfo=datetime.timezone.utc)

    def test_metadata_is_normalized(self):
        fix = fix_from_row(_row(address="", battery_percent="64", device_info='{"app": "2.1"}'))
        assert fix.address is None
        assert fix.battery_percent == 64.0
        assert fix.device_info == {"app": "2.1"}

    def test_invalid_row_is_dropped(self):
        assert fix_from_row(_row(latitude=None)) is None
        assert fix_from_row(_row(timestamp=None)) is None


class TestPrepareFixes:
    def test_drops_invalid_and_keeps_valid(self):
        good = make_fix(53.34, -6.26, T0)
        bad = Fix(latitude=float("nan"), longitude=-6.26, timestamp=good.timestamp)
        assert prepare_fixes([good, bad]) == [good]

    def test_sorts_by_timestamp(self):
        fixes = as_fixes(GPS_TRACE)
        assert prepare_fixes(list(reversed(fixes))) == fixes

    def test_equal_timestamps_keep_input_order(self):
        a = make_fix(53.34, -6.26, T0)
        b = make_fix(53.35, -6.27, T0)
        assert prepare_fixes([b, a]) == [b, a]

    def test_accepts_iterators(self):
        fixes = as_fixes(GPS_TRACE)
        assert prepare_fixes(iter(fixes)) == fixes

    def test_empty(self):
        assert prepare_fixes([]) == []
