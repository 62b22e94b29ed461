"""Tests for date/time resolution."""

from datetime import datetime

import pytest
from dateutil import tz

from chat_archive.parser.dates import (
    DAY_FIRST,
    MONTH_FIRST,
    from_epoch_ms,
    resolve_timestamp,
    split_date,
    split_time,
    to_epoch_ms,
    try_resolve_timestamp,
)


def test_first_field_over_12_is_day():
    assert split_date("25/03/2021") == (2021, 3, 25)


def test_first_field_over_12_wins_even_month_first():
    assert split_date("25/03/2021", MONTH_FIRST) == (2021, 3, 25)


def test_second_field_over_12_is_day():
    assert split_date("03/25/2021") == (2021, 3, 25)


def test_ambiguous_date_defaults_to_day_first():
    # Pinned: 03/04/2021 is the 3rd of April
    assert split_date("03/04/2021") == (2021, 4, 3)
    assert split_date("03/04/2021", DAY_FIRST) == (2021, 4, 3)


def test_ambiguous_date_month_first_policy():
    assert split_date("03/04/2021", MONTH_FIRST) == (2021, 3, 4)


@pytest.mark.parametrize("text", ["03.04.21", "03-04-21", "3/4/21"])
def test_two_digit_year_and_separators(text):
    assert split_date(text) == (2021, 4, 3)


def test_malformed_date():
    assert split_date("2021/04/03") is None
    assert split_date("yesterday") is None
    assert split_date("20/06/202") is None
    assert split_date("20/06/20211") is None


@pytest.mark.parametrize("text,expected", [
    ("14:30", (14, 30, 0)),
    ("14:30:15", (14, 30, 15)),
    ("2:30 PM", (14, 30, 0)),
    ("2:30 pm", (14, 30, 0)),
    ("12:05 AM", (0, 5, 0)),
    ("12:05 PM", (12, 5, 0)),
    ("11:59:59 am", (11, 59, 59)),
    ("9:05:07", (9, 5, 7)),
])
def test_split_time(text, expected):
    assert split_time(text) == expected


def test_split_time_malformed():
    assert split_time("noon") is None


def test_resolve_timestamp_is_local_time():
    instant = resolve_timestamp("20/06/2021", "14:30:00")
    assert instant == datetime(2021, 6, 20, 14, 30, 0, tzinfo=tz.tzlocal())


def test_invalid_calendar_date_is_none():
    assert try_resolve_timestamp("31/02/2021", "10:00") is None
    assert try_resolve_timestamp("20/06/2021", "25:00") is None


def test_resolve_falls_back_to_now():
    before = datetime.now(tz.tzlocal())
    instant = resolve_timestamp("31/02/2021", "10:00")
    after = datetime.now(tz.tzlocal())
    assert before <= instant <= after


def test_epoch_ms_conversion():
    instant = datetime(2021, 6, 20, 14, 30, 0, tzinfo=tz.tzlocal())
    ms = to_epoch_ms(instant)
    assert ms % 1000 == 0
    assert from_epoch_ms(ms) == instant
