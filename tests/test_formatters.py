from datetime import datetime, timedelta, timezone

import pytest

from edusync.client.formatters import format_date, get_relative_time, is_due_date_over, parse_timestamp

NOW = datetime(2025, 5, 18, 12, 0, 0, tzinfo=timezone.utc)


def iso(delta: timedelta) -> str:
    return (NOW + delta).strftime("%Y-%m-%dT%H:%M:%SZ")


def test_format_date_long_form_24h():
    assert format_date("2025-05-18T14:30:00Z", tz=timezone.utc) == "May 18, 2025, 14:30"
    assert format_date("2025-01-02T03:04:00+02:00", tz=timezone.utc) == "January 2, 2025, 01:04"


@pytest.mark.parametrize("value", [None, ""])
def test_format_date_empty(value):
    assert format_date(value) == "N/A"


def test_format_date_invalid():
    assert format_date("not a date") == "Invalid Date"


def test_parse_timestamp_accepts_space_separator():
    assert parse_timestamp("2025-05-18 14:30:00+00:00") == datetime(2025, 5, 18, 14, 30, tzinfo=timezone.utc)


def test_parse_timestamp_date_only_is_utc_midnight():
    assert parse_timestamp("2025-05-18") == datetime(2025, 5, 18, tzinfo=timezone.utc)


@pytest.mark.parametrize("delta, expected", [
    (timedelta(seconds=30), "due in 30 seconds"),
    (timedelta(minutes=5), "due in 5 minutes"),
    (timedelta(hours=3), "due in 3 hours"),
    (timedelta(days=3), "due in 3 days"),
    (timedelta(seconds=-10), "10 seconds overdue"),
    (timedelta(minutes=-59), "59 minutes overdue"),
    (timedelta(hours=-5), "5 hours overdue"),
    (timedelta(days=-2), "2 days overdue"),
])
def test_relative_time(delta, expected):
    assert get_relative_time(iso(delta), now=NOW) == expected


def test_relative_time_rounds_up_to_next_unit():
    # 59.5 minutes rounds to 60, which is reported in hours
    assert get_relative_time(iso(timedelta(minutes=59, seconds=30)), now=NOW) == "due in 1 hours"


def test_relative_time_far_future():
    assert get_relative_time("2099-01-01T00:00:00Z", now=NOW).startswith("due in ")
    assert get_relative_time("2099-01-01T00:00:00Z", now=NOW).endswith(" days")


def test_relative_time_empty_and_invalid():
    assert get_relative_time(None) == "No due date"
    assert get_relative_time("") == "No due date"
    assert get_relative_time("tomorrow-ish") == "Invalid Date"


def test_is_due_date_over_is_strict():
    assert is_due_date_over(iso(timedelta(0)), now=NOW) is False
    assert is_due_date_over(iso(timedelta(seconds=-1)), now=NOW) is True
    assert is_due_date_over(iso(timedelta(seconds=1)), now=NOW) is False


def test_is_due_date_over_without_due_date():
    assert is_due_date_over(None, now=NOW) is False
    assert is_due_date_over("garbage", now=NOW) is False
