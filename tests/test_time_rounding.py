"""Tests for time_rounding.py - calendar-aligned window boundaries."""

from datetime import datetime, time, timedelta

import pytest

from granularity import DAY, GRANULARITIES, HOUR, MONTH, WEEK
from time_rounding import end_of_current_day, start_of_current_day, window_start_for_granularity


def test_start_of_current_day(clock):
    assert start_of_current_day(clock=clock) == datetime(2023, 12, 25)
    assert start_of_current_day(DAY, clock) == datetime(2023, 12, 24)
    assert start_of_current_day(WEEK, clock) == datetime(2023, 12, 18)


def test_end_of_current_day(clock):
    assert end_of_current_day(clock) == datetime(2023, 12, 25, 23, 59, 59, 999000)


def test_hour_window_rolls(clock, now):
    assert window_start_for_granularity(HOUR, clock) == now - timedelta(hours=1)


def test_day_window_starts_today(clock):
    assert window_start_for_granularity(DAY, clock) == datetime(2023, 12, 25)


def test_longer_windows_start_a_full_period_back(clock):
    assert window_start_for_granularity(WEEK, clock) == datetime(2023, 12, 18)
    assert window_start_for_granularity(MONTH, clock) == datetime(2023, 11, 25)


def test_unknown_granularity_behaves_like_day(clock):
    assert window_start_for_granularity("fortnight", clock) == datetime(2023, 12, 25)


@pytest.mark.parametrize("symbol", list(GRANULARITIES))
@pytest.mark.parametrize("now", [
    datetime(2023, 12, 25, 15, 30),
    datetime(2024, 2, 29, 0, 0, 0, 1000),
    datetime(2024, 1, 1, 23, 59, 59),
])
def test_window_start_never_in_future_and_midnight_aligned(symbol, now):
    start = window_start_for_granularity(symbol, lambda: now)
    assert start <= now
    if symbol != "hour":
        assert start.time() == time(0, 0)
