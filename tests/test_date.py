from datetime import datetime, timezone

import pytest

from tourwatch.date import Date


def test_parse_matches_source_case():
    assert Date.parse("2025-03-30") == Date(2025, 3, 30)


def test_parse_accepts_bytes():
    assert Date.parse(b"2025-03-30") == Date(2025, 3, 30)


@pytest.mark.parametrize("text", ["2025-3-30", "2025-02-30", "garbage", "", "2025-03-30T00:00:00"])
def test_parse_rejects_invalid(text):
    with pytest.raises(ValueError):
        Date.parse(text)


def test_str_and_parse_round_trip():
    d = Date(2025, 3, 30)
    assert str(d) == "2025-03-30"
    assert Date.parse(str(d)) == d


def test_to_json_quotes_the_date():
    assert Date(2025, 3, 5).to_json() == '"2025-03-05"'


def test_to_datetime_is_utc_midnight():
    assert Date(2025, 3, 30).to_datetime() == datetime(2025, 3, 30, tzinfo=timezone.utc)


def test_from_datetime_drops_time():
    moment = datetime(2025, 3, 30, 17, 45, tzinfo=timezone.utc)
    assert Date.from_datetime(moment) == Date(2025, 3, 30)


def test_add_one_year():
    assert Date(2025, 3, 30).add(1, 0, 0) == Date(2026, 3, 30)


def test_add_normalises_month_overflow():
    assert Date(2025, 1, 31).add(0, 1, 0) == Date(2025, 3, 3)


def test_add_leap_day_plus_year():
    assert Date(2024, 2, 29).add(1, 0, 0) == Date(2025, 3, 1)


def test_add_days_across_year_end():
    assert Date(2025, 12, 31).add(0, 0, 1) == Date(2026, 1, 1)


def test_add_negative_months():
    assert Date(2025, 1, 15).add(0, -1, 0) == Date(2024, 12, 15)