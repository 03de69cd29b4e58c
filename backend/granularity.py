import logging
from dataclasses import dataclass
from typing import Optional, Dict, Union

logger = logging.getLogger(__name__)

HOUR = 3_600_000
DAY = 86_400_000
WEEK = 604_800_000
MONTH = 2_592_000_000
YEAR = 31_536_000_000

@dataclass
class Granularity:
    symbol: str      # e.g. "hour", "day", "week"
    name: str        # e.g. "Hour", "Day"
    short_name: str  # e.g. "H", "D", "Wk"
    ms: int          # window length in milliseconds
    down: Optional['Granularity'] = None
    up: Optional['Granularity'] = None

    def __repr__(self):
        return f"<Granularity {self.symbol} ({self.ms} ms)>"

# Create granularity instances
hour = Granularity('hour', 'Hour', 'H', HOUR)

day = Granularity('day', 'Day', 'D', DAY, down=hour)
hour.up = day

week = Granularity('week', 'Week', 'Wk', WEEK, down=day)
day.up = week

month = Granularity('month', 'Month', 'Mo', MONTH, down=week)
week.up = month

year = Granularity('year', 'Year', 'Yr', YEAR, down=month)
month.up = year

# Create lookup dictionaries for easy access by symbol and by length
GRANULARITIES: Dict[str, Granularity] = {
    g.symbol: g for g in [hour, day, week, month, year]
}
GRANULARITIES_BY_MS: Dict[int, Granularity] = {
    g.ms: g for g in GRANULARITIES.values()
}

# Default granularity
DEFAULT_GRANULARITY = day

GranularityLike = Union[Granularity, str, int, None]


def resolve_granularity(value: GranularityLike) -> Granularity:
    """
    Map a granularity, symbol or millisecond count onto a known granularity.

    Values outside the enumeration fall back to DEFAULT_GRANULARITY (DAY)
    rather than producing an invalid window.
    """
    if isinstance(value, Granularity):
        return value
    if isinstance(value, str):
        gran = GRANULARITIES.get(value.strip().lower())
        if gran is None and value.strip().isdigit():
            gran = GRANULARITIES_BY_MS.get(int(value.strip()))
    elif isinstance(value, int) and not isinstance(value, bool):
        gran = GRANULARITIES_BY_MS.get(value)
    else:
        gran = None

    if gran is None:
        logger.warning("Unknown granularity %r, falling back to %s", value, DEFAULT_GRANULARITY.symbol)
        return DEFAULT_GRANULARITY
    return gran


def granularity_text(value: GranularityLike, short: bool = False) -> str:
    """Display text for a granularity selector ("Week" / "Wk")."""
    gran = resolve_granularity(value)
    return gran.short_name if short else gran.name
