from datetime import date, datetime, time

import pytest

from consultbot.timeutils import format_date, format_short_date, format_time, parse_time, week_monday


def test_format_date():
    assert format_date(date(2025, 6, 10)) == "вт, 10 июня"
    assert format_date(date(2025, 1, 5)) == "вс, 5 января"


def test_format_short_date():
    assert format_short_date(datetime(2025, 3, 2, 18, 30)) == "2 мар. 2025"


def test_format_time():
    assert format_time(time(9, 5)) == "09:05"


def test_parse_time():
    assert parse_time("10:00") == time(10, 0)
    assert parse_time("10:00:30") == time(10, 0, 30)
    with pytest.raises(ValueError):
        parse_time("10")
    with pytest.raises(ValueError):
        parse_time("25:00")


def test_week_monday():
    assert week_monday(date(2025, 6, 11)) == date(2025, 6, 9)
    assert week_monday(date(2025, 6, 9)) == date(2025, 6, 9)
    assert week_monday(date(2025, 6, 15)) == date(2025, 6, 9)
