from datetime import datetime, timedelta, timezone

import pytest

from checkin_app.utils import coerce_datetime, format_relative_time, start_of_day

NOW = datetime(2025, 10, 2, 12, 0, 0, tzinfo=timezone.utc)


def test_format_relative_time_minutes():
    timestamp = NOW - timedelta(minutes=30)
    assert format_relative_time(timestamp, now=NOW) == "30 minutes ago"


def test_format_relative_time_just_now():
    timestamp = NOW - timedelta(seconds=10)
    assert format_relative_time(timestamp, now=NOW) == "just now"


@pytest.mark.parametrize(
    "delta, expected",
    [
        (timedelta(minutes=1), "1 minute ago"),
        (timedelta(hours=1, minutes=5), "1 hour ago"),
        (timedelta(hours=5), "5 hours ago"),
        (timedelta(days=1, hours=2), "Yesterday"),
        (timedelta(days=4), "4 days ago"),
    ],
)
def test_format_relative_time_larger_spans(delta, expected):
    assert format_relative_time(NOW - delta, now=NOW) == expected


def test_format_relative_time_accepts_iso_strings():
    assert format_relative_time("2025-10-02T11:58:00Z", now=NOW) == "2 minutes ago"


def test_coerce_datetime_treats_naive_values_as_utc():
    assert coerce_datetime("2025-10-02 12:00:00") == NOW
    assert coerce_datetime(datetime(2025, 10, 2, 12, 0, 0)) == NOW


def test_coerce_datetime_rejects_garbage():
    with pytest.raises(ValueError):
        coerce_datetime("last tuesday")


def test_start_of_day_is_midnight_local():
    midnight = start_of_day(NOW)
    assert (midnight.hour, midnight.minute, midnight.second) == (0, 0, 0)
    assert midnight <= NOW
