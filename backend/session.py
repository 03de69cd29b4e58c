"""
Per-viewer chart state.

A ChartSession holds the granularity, window start and chart mode a viewer has
selected, and turns them into backend queries and renderable series.

If the window changes while a query for the old window is still in flight,
the old response must not overwrite the newer selection: each refresh takes a
generation number, and a response is applied only if its generation is still
the latest one when it arrives (last request wins, not last response).
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from clock import Clock, system_clock
from diurnal import split_for_granularity
from granularity import DEFAULT_GRANULARITY, Granularity, GranularityLike, resolve_granularity
from labels import window_end, window_label
from navigator import StepResult, is_next_disabled, step_back, step_forward
from reshape import condense_stacked_total, condense_to_count, is_stacked, reshape_stacked, reshape_total
from schemas import ChartResponse, SearchBody, Series, WindowState
from search import overview_body
from time_rounding import window_start_for_granularity

logger = logging.getLogger(__name__)


def build_chart(
    window: WindowState,
    raw: Any,
    names: Optional[Dict[str, str]] = None,
    per_series: bool = False,
    max_points: Optional[int] = None,
    clock: Clock = system_clock,
) -> ChartResponse:
    """
    Turn a raw aggregation response into chart series for ``window``.

    Stacked responses stay one series per site/device when ``per_series`` is
    set and are summed into a single overall series otherwise. A single series
    on an hour/day window is split into day and night series.
    """
    if per_series and is_stacked(raw):
        series = reshape_stacked(raw, names, window.bucket_size, clock)
        night: List[Series] = []
    else:
        if is_stacked(raw):
            total = condense_stacked_total(raw, window.bucket_size, clock)
        else:
            total = reshape_total(raw, window.bucket_size, clock)
        day_series, night_series = split_for_granularity(total, window.granularity)
        series = [day_series]
        night = [night_series] if night_series.points else []

    if max_points:
        series = [condense_to_count(s, max_points) for s in series]
        night = [condense_to_count(s, max_points) for s in night]
    return ChartResponse(window=window, series=series, night_series=night)


class ChartSession:
    """Window state for one chart plus last-request-wins refreshing."""

    def __init__(
        self,
        backend,
        granularity: GranularityLike = DEFAULT_GRANULARITY,
        chart_mode: Optional[str] = None,
        site_id: Optional[str] = None,
        device_id: Optional[str] = None,
        max_points: Optional[int] = None,
        clock: Clock = system_clock,
    ):
        self.backend = backend
        self.clock = clock
        self.chart_mode = chart_mode
        self.site_id = site_id
        self.device_id = device_id
        self.max_points = max_points
        self.chart: Optional[ChartResponse] = None
        self._generation = 0
        self.set_granularity(granularity)

    def set_granularity(self, granularity: GranularityLike) -> Granularity:
        """Select a granularity and reset the window to its initial position."""
        self.granularity = resolve_granularity(granularity)
        self.set_start(window_start_for_granularity(self.granularity, self.clock))
        return self.granularity

    def set_start(self, start: datetime) -> None:
        """Move the window to an explicit start; a start not before now falls back to the initial window."""
        if start >= self.clock():
            logger.warning("Window start %s is in the future, using the initial %s window", start, self.granularity.name)
            start = window_start_for_granularity(self.granularity, self.clock)
        self.start = start
        self.next_disabled = is_next_disabled(start, self.granularity, self.clock)

    def set_chart_mode(self, chart_mode: Optional[str]) -> None:
        self.chart_mode = chart_mode

    def step_forward(self) -> StepResult:
        return self._apply(step_forward(self.start, self.granularity, self.clock))

    def step_back(self) -> StepResult:
        return self._apply(step_back(self.start, self.granularity, self.clock))

    def _apply(self, result: StepResult) -> StepResult:
        self.start = result.start
        self.next_disabled = result.next_disabled
        return result

    def query_body(self) -> SearchBody:
        return overview_body(
            self.start,
            self.granularity,
            chart_mode=self.chart_mode,
            site_id=self.site_id,
            device_id=self.device_id,
            clock=self.clock,
        )

    def snapshot(self) -> Tuple[WindowState, SearchBody]:
        """Current window state and the query body that would fetch it."""
        body = self.query_body()
        window = WindowState(
            granularity=self.granularity.symbol,
            start=self.start,
            end=window_end(self.start, self.granularity, self.clock),
            label=window_label(self.start, self.granularity, self.clock),
            next_disabled=self.next_disabled,
            bucket_size=body.bucketSize,
            daylight=body.daylight,
            chart_mode=self.chart_mode,
        )
        return window, body

    async def refresh(self) -> Optional[ChartResponse]:
        """
        Query the backend for the current window and apply the result.

        Returns:
            ChartResponse, or None when a newer refresh started while this one
            was waiting on the backend. Backend errors propagate and leave the
            previously applied chart in place.
        """
        self._generation += 1
        generation = self._generation
        window, body = self.snapshot()

        raw, names = await self.backend.time_series(body)

        if generation != self._generation:
            logger.info("Discarding stale response for window starting %s", window.start)
            return None

        self.chart = build_chart(
            window,
            raw,
            names,
            per_series=self.site_id is not None,
            max_points=self.max_points,
            clock=self.clock,
        )
        return self.chart
