"""
Tests for session.py - chart state and last-request-wins refreshing.

FakeBackend answers time_series() with canned responses; GatedBackend holds
each call until the test releases it so responses can be delivered out of
order.
"""

import asyncio
from datetime import datetime, timedelta

import pytest

from bucketing import GROUPED_BAR
from clock import to_epoch_ms
from search import SearchBackendError
from session import ChartSession, build_chart


def histogram(*buckets):
    return {"aggregations": {"date_histogram#2": {"buckets": list(buckets)}}}


def hourly_total(day_start, values):
    return histogram(*[
        {"key": to_epoch_ms(day_start + timedelta(hours=i)), "avg#1": {"value": v}}
        for i, v in enumerate(values)
    ])


class FakeBackend:
    def __init__(self, raw=None, names=None, error=None):
        self.raw = raw if raw is not None else histogram()
        self.names = names or {}
        self.error = error
        self.bodies = []

    async def time_series(self, body):
        self.bodies.append(body)
        if self.error is not None:
            raise self.error
        return self.raw, self.names


class GatedBackend:
    def __init__(self):
        self.calls = []

    async def time_series(self, body):
        gate = asyncio.Event()
        call = {"body": body, "gate": gate, "raw": None}
        self.calls.append(call)
        await gate.wait()
        return call["raw"], {}


class TestWindowState:
    def test_defaults_to_today(self, clock):
        session = ChartSession(FakeBackend(), clock=clock)

        window, body = session.snapshot()

        assert window.granularity == "day"
        assert window.start == datetime(2023, 12, 25)
        assert window.end == datetime(2023, 12, 25, 15, 30)
        assert window.label == "Dec 25, 23 - Dec 25, 23"
        assert window.next_disabled is True
        assert window.daylight is True
        assert body.daylight is True

    def test_set_granularity_resets_window(self, clock):
        session = ChartSession(FakeBackend(), clock=clock)
        session.step_back()

        session.set_granularity("week")

        assert session.start == datetime(2023, 12, 18)
        assert session.next_disabled is True

    def test_unknown_granularity_falls_back_to_day(self, clock):
        session = ChartSession(FakeBackend(), granularity="fortnight", clock=clock)

        assert session.granularity.symbol == "day"

    def test_stepping_updates_next_disabled(self, clock):
        session = ChartSession(FakeBackend(), clock=clock)

        session.step_back()
        session.step_back()
        assert session.start == datetime(2023, 12, 23)
        assert session.next_disabled is False

        session.step_forward()
        session.step_forward()
        assert session.start == datetime(2023, 12, 25)
        assert session.next_disabled is True

        result = session.step_forward()
        assert not result.moved
        assert session.start == datetime(2023, 12, 25)

    def test_future_start_falls_back_to_initial_window(self, clock, now):
        session = ChartSession(FakeBackend(), clock=clock)

        session.set_start(now + timedelta(days=3))
        window, body = session.snapshot()

        assert window.start == datetime(2023, 12, 25)
        assert window.next_disabled is True
        assert body.startDate < body.endDate

    def test_start_at_now_falls_back_to_initial_window(self, clock, now):
        session = ChartSession(FakeBackend(), granularity="hour", clock=clock)

        session.set_start(now)

        assert session.start == now - timedelta(hours=1)

    def test_past_start_is_kept(self, clock):
        session = ChartSession(FakeBackend(), clock=clock)

        session.set_start(datetime(2023, 12, 20))

        assert session.start == datetime(2023, 12, 20)
        assert session.next_disabled is False

    def test_grouped_bar_bucket_size(self, clock):
        session = ChartSession(FakeBackend(), granularity="month", chart_mode=GROUPED_BAR, clock=clock)

        window, body = session.snapshot()

        assert window.bucket_size == "4d" == body.bucketSize


class TestRefresh:
    def test_day_view_splits_day_and_night(self, clock):
        raw = hourly_total(datetime(2023, 12, 24), [float(i) for i in range(24)])
        session = ChartSession(FakeBackend(raw), clock=clock)
        session.step_back()

        chart = asyncio.run(session.refresh())

        assert chart is session.chart
        day, = chart.series
        night, = chart.night_series
        # 30m buckets always drop the trailing bucket
        assert len(day.points) + len(night.points) == 23
        assert all(6 <= p.date.hour < 20 for p in day.points)

    def test_week_view_is_a_single_series(self, clock):
        raw = hourly_total(datetime(2023, 12, 1), [1.0] * 48)
        session = ChartSession(FakeBackend(raw), granularity="week", clock=clock)

        chart = asyncio.run(session.refresh())

        assert len(chart.series) == 1
        assert chart.night_series == []

    def test_site_view_keeps_series_per_device(self, clock):
        raw = histogram(*[
            {"key": to_epoch_ms(datetime(2023, 12, 20) + timedelta(days=i)), "sterms#terms": {"buckets": [
                {"key": "d1", "avg#1": {"value": 1.0}},
                {"key": "d2", "avg#1": {"value": 2.0}},
            ]}}
            for i in range(3)
        ])
        backend = FakeBackend(raw, names={"d1": "East", "d2": "West"})
        session = ChartSession(backend, granularity="month", site_id="s1", clock=clock)

        chart = asyncio.run(session.refresh())

        assert [s.name for s in chart.series] == ["East", "West"]
        assert backend.bodies[0].siteId == "s1"

    def test_overview_condenses_stacked_response(self, clock):
        raw = histogram({"key": to_epoch_ms(datetime(2023, 12, 20)), "sterms#terms": {"buckets": [
            {"key": "d1", "avg#1": {"value": 1.0}},
            {"key": "d2", "avg#1": {"value": 2.0}},
        ]}}, {"key": to_epoch_ms(datetime(2023, 12, 21)), "sterms#terms": {"buckets": []}})
        session = ChartSession(FakeBackend(raw), granularity="month", clock=clock)

        chart = asyncio.run(session.refresh())

        total, = chart.series
        assert [p.value for p in total.points] == [3.0, None]

    def test_max_points_condenses(self, clock):
        raw = hourly_total(datetime(2023, 11, 1), [float(i) for i in range(60)])
        session = ChartSession(FakeBackend(raw), granularity="month", max_points=10, clock=clock)

        chart = asyncio.run(session.refresh())

        assert len(chart.series[0].points) <= 10

    def test_backend_error_keeps_previous_chart(self, clock):
        backend = FakeBackend(hourly_total(datetime(2023, 11, 1), [1.0, 2.0, 3.0]))
        session = ChartSession(backend, granularity="month", clock=clock)
        previous = asyncio.run(session.refresh())

        backend.error = SearchBackendError("down")
        with pytest.raises(SearchBackendError):
            asyncio.run(session.refresh())

        assert session.chart is previous


class TestLastRequestWins:
    def test_stale_response_discarded(self, clock):
        backend = GatedBackend()
        session = ChartSession(backend, clock=clock)

        async def scenario():
            first = asyncio.create_task(session.refresh())
            await asyncio.sleep(0)
            session.step_back()
            second = asyncio.create_task(session.refresh())
            await asyncio.sleep(0)

            old_call, new_call = backend.calls
            new_call["raw"] = hourly_total(datetime(2023, 12, 24), [5.0] * 4)
            new_call["gate"].set()
            second_result = await second

            old_call["raw"] = hourly_total(datetime(2023, 12, 25), [9.0] * 4)
            old_call["gate"].set()
            first_result = await first
            return first_result, second_result

        first_result, second_result = asyncio.run(scenario())

        assert first_result is None
        assert second_result is session.chart
        assert session.chart.window.start == datetime(2023, 12, 24)

    def test_stale_response_arriving_first_is_also_discarded(self, clock):
        backend = GatedBackend()
        session = ChartSession(backend, clock=clock)

        async def scenario():
            first = asyncio.create_task(session.refresh())
            await asyncio.sleep(0)
            session.set_granularity("week")
            second = asyncio.create_task(session.refresh())
            await asyncio.sleep(0)

            old_call, new_call = backend.calls
            old_call["raw"] = histogram()
            old_call["gate"].set()
            first_result = await first
            assert session.chart is None

            new_call["raw"] = histogram()
            new_call["gate"].set()
            return first_result, await second

        first_result, second_result = asyncio.run(scenario())

        assert first_result is None
        assert session.chart.window.granularity == "week"


def test_build_chart_is_pure(clock):
    session = ChartSession(FakeBackend(), granularity="hour", clock=clock)
    window, _ = session.snapshot()
    raw = hourly_total(datetime(2023, 12, 25, 12), [1.0, None, 3.0])

    assert build_chart(window, raw, clock=clock) == build_chart(window, raw, clock=clock)
