from datetime import datetime, timezone

import pytest

from posledger.time_utils import parse_iso_datetime, parse_time_range, to_utc_z


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, None),
        ("   ", None),
        ("2026-03-01T12:30:00", datetime(2026, 3, 1, 12, 30)),
        ("2026-03-01T12:30:00Z", datetime(2026, 3, 1, 12, 30)),
        ("2026-03-01T14:30:00+02:00", datetime(2026, 3, 1, 12, 30)),
    ],
)
def test_parse_iso_datetime_folds_to_naive_utc(raw, expected):
    assert parse_iso_datetime(raw) == expected


def test_parse_iso_datetime_rejects_garbage():
    with pytest.raises(ValueError):
        parse_iso_datetime("next tuesday")


def test_time_range_open_bounds_and_inversion():
    assert parse_time_range(None, "2026-01-01T00:00:00Z") == (None, datetime(2026, 1, 1))
    assert parse_time_range("2026-01-01T00:00:00Z", "2026-01-01T00:00:00Z") == (
        datetime(2026, 1, 1),
        datetime(2026, 1, 1),
    )
    with pytest.raises(ValueError):
        parse_time_range("2026-02-01T00:00:00Z", "2026-01-01T00:00:00Z")


def test_to_utc_z():
    assert to_utc_z(None) is None
    assert to_utc_z(datetime(2026, 3, 1, 12, 30, 5, 999)) == "2026-03-01T12:30:05Z"
    aware = datetime(2026, 3, 1, 12, 30, tzinfo=timezone.utc)
    assert to_utc_z(aware) == "2026-03-01T12:30:00Z"
