"""
Window navigation: paging backward/forward through history.

The only externally visible states are "can step forward" and "cannot step
forward"; stepping backward is always allowed. Both the step itself and the
next-disabled look-ahead go through is_step_allowed() so the two rules stay
in lockstep.

DAY windows may advance onto a day that has started but not finished (the
partial "today" view). Every other step is accepted only when the window
after the candidate would still start in the past:

    now = 2023-12-25 15:30, DAY, start = 2023-12-24 00:00
    step_forward -> start = 2023-12-25 00:00, next_disabled = True
    step_forward -> unchanged (2023-12-26 00:00 is not < now)
"""
from datetime import datetime
from typing import NamedTuple

from clock import Clock, system_clock, to_epoch_ms, from_epoch_ms
from granularity import DAY, GranularityLike, resolve_granularity


class StepResult(NamedTuple):
    start: datetime
    next_disabled: bool
    moved: bool


def is_step_allowed(time_ms: int, delta_ms: int, now_ms: int) -> bool:
    """
    Legality of a window starting at ``time_ms`` reached by a ``delta_ms`` step.

    DAY steps need the candidate itself to be in the past; other steps need
    the candidate plus another step to be in the past.
    """
    return (delta_ms == DAY and time_ms < now_ms) or time_ms + delta_ms < now_ms


def step_window(current_start: datetime, delta_ms: int, clock: Clock = system_clock) -> StepResult:
    """
    Apply a signed step to the window start.

    Illegal steps leave the start untouched; this never raises. The returned
    next_disabled flag looks one window past the candidate, whether or not the
    step was applied.

    Args:
        current_start: Start of the currently displayed window
        delta_ms: Signed step in milliseconds (normally +/- a granularity)
        clock: Source of the current instant

    Returns:
        StepResult: new start, next-disabled flag, and whether the start moved
    """
    now_ms = to_epoch_ms(clock())
    candidate_ms = to_epoch_ms(current_start) + delta_ms

    moved = is_step_allowed(candidate_ms, delta_ms, now_ms)
    start = from_epoch_ms(candidate_ms) if moved else current_start

    end_of_candidate_ms = candidate_ms + abs(delta_ms)
    next_disabled = not is_step_allowed(end_of_candidate_ms, delta_ms, now_ms)

    return StepResult(start, next_disabled, moved)


def step_forward(current_start: datetime, granularity: GranularityLike, clock: Clock = system_clock) -> StepResult:
    return step_window(current_start, resolve_granularity(granularity).ms, clock)


def step_back(current_start: datetime, granularity: GranularityLike, clock: Clock = system_clock) -> StepResult:
    return step_window(current_start, -resolve_granularity(granularity).ms, clock)


def is_next_disabled(start: datetime, granularity: GranularityLike, clock: Clock = system_clock) -> bool:
    """Next-disabled state for a window that was selected rather than stepped to."""
    gran_ms = resolve_granularity(granularity).ms
    next_start_ms = to_epoch_ms(start) + gran_ms
    return not is_step_allowed(next_start_ms, gran_ms, to_epoch_ms(clock()))
