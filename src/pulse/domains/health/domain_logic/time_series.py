"""Time-series preparation for biomarker charts.

Turns a reading history into a chartable series: calendar-day range
filtering in the display timezone, daily bucketing for cumulative metrics,
axis domains and ticks, and pixel projection for a fixed-size viewport.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from enum import Enum
from typing import Any

from pulse.domains.health.domain_logic.biomarker_models import (
    CUMULATIVE_TYPES,
    BiomarkerType,
    Reading,
    parse_type,
)

logger = logging.getLogger(__name__)

CHART_WIDTH = 520
CHART_HEIGHT = 260
CHART_PAD = 36
QUICK_RANGE_DAYS = (7, 30, 60, 90)


class ChartMode(str, Enum):
    BAR = "bar"
    LINE = "line"


@dataclass(frozen=True)
class ChartPoint:
    timestamp: datetime
    value: float

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp.isoformat(), "value": self.value}


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar-day range; either side may be open."""

    start: date | None = None
    end: date | None = None

    @property
    def is_open(self) -> bool:
        return self.start is None and self.end is None

    def contains(self, day: date) -> bool:
        if self.start is not None and day < self.start:
            return False
        if self.end is not None and day > self.end:
            return False
        return True


@dataclass(frozen=True)
class SeriesSummary:
    minimum: float | None = None
    maximum: float | None = None
    spread: float | None = None
    count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"min": self.minimum, "max": self.maximum, "spread": self.spread, "count": self.count}


@dataclass
class ChartSeries:
    biomarker_type: BiomarkerType | None
    mode: ChartMode
    points: list[ChartPoint] = field(default_factory=list)
    x_domain: tuple[datetime, datetime] | None = None
    y_domain: tuple[float, float] | None = None
    x_ticks: list[datetime] = field(default_factory=list)
    y_ticks: list[float] = field(default_factory=list)
    summary: SeriesSummary = field(default_factory=SeriesSummary)

    @property
    def has_data(self) -> bool:
        return bool(self.points)

    def to_dict(self) -> dict[str, Any]:
        if not self.has_data:
            return {
                "biomarker_type": self.biomarker_type.value if self.biomarker_type else None,
                "mode": self.mode.value,
                "has_data": False,
                "status": "no_data",
                "points": [],
            }
        return {
            "biomarker_type": self.biomarker_type.value if self.biomarker_type else None,
            "mode": self.mode.value,
            "has_data": True,
            "points": [p.to_dict() for p in self.points],
            "x_domain": [t.isoformat() for t in self.x_domain],
            "y_domain": list(self.y_domain),
            "x_ticks": [t.isoformat() for t in self.x_ticks],
            "y_ticks": self.y_ticks,
            "summary": self.summary.to_dict(),
        }


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------

def default_mode(biomarker_type: Any) -> ChartMode:
    """Cumulative metrics (steps, sleep) chart as bars; everything else as lines."""
    return ChartMode.BAR if parse_type(biomarker_type) in CUMULATIVE_TYPES else ChartMode.LINE


def local_day(ts: datetime, tz: tzinfo) -> date:
    return ts.astimezone(tz).date()


def filter_by_days(
    readings: list[Reading],
    date_range: DateRange | None,
    tz: tzinfo = timezone.utc,
) -> list[Reading]:
    """Keep readings whose local calendar day falls inside the range.

    Readings without a timestamp are dropped, since they cannot be placed on
    the time axis.
    """
    dated = [r for r in readings if r.recorded_at is not None]
    if date_range is None or date_range.is_open:
        return dated
    return [r for r in dated if date_range.contains(local_day(r.recorded_at, tz))]


def _point_value(reading: Reading) -> float:
    if reading.biomarker_type is BiomarkerType.STEPS:
        return float(round(reading.value))
    return reading.value


def line_points(readings: list[Reading]) -> list[ChartPoint]:
    points = [ChartPoint(r.recorded_at, _point_value(r)) for r in readings]
    return sorted(points, key=lambda p: p.timestamp)


def daily_buckets(readings: list[Reading], tz: tzinfo = timezone.utc) -> list[ChartPoint]:
    """Sum values per local calendar day; each bucket sits at local midnight."""
    totals: dict[date, float] = {}
    for r in readings:
        day = local_day(r.recorded_at, tz)
        totals[day] = totals.get(day, 0.0) + _point_value(r)
    return [
        ChartPoint(datetime.combine(day, time.min, tzinfo=tz), total)
        for day, total in sorted(totals.items())
    ]


def y_domain(mode: ChartMode, values: list[float]) -> tuple[float, float]:
    lo, hi = min(values), max(values)
    if mode is ChartMode.BAR:
        # Bars grow from a zero baseline.
        return 0.0, (hi * 1.1 if hi != 0 else 1.0)
    if lo == hi:
        return lo - 1, hi + 1
    pad = (hi - lo) * 0.05
    return lo - pad, hi + pad


def _ticks(lo: Any, hi: Any, count: int) -> list[Any]:
    if count >= 2:
        return [lo, lo + (hi - lo) / 2, hi]
    return [lo]


def summarize(points: list[ChartPoint]) -> SeriesSummary:
    if not points:
        return SeriesSummary()
    values = [p.value for p in points]
    lo, hi = min(values), max(values)
    return SeriesSummary(minimum=lo, maximum=hi, spread=hi - lo, count=len(values))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def prepare(
    readings: list[Reading],
    mode: ChartMode | str | None = None,
    date_range: DateRange | None = None,
    *,
    biomarker_type: Any = None,
    tz: tzinfo = timezone.utc,
) -> ChartSeries:
    """Build a chart series from a reading history.

    Args:
        readings: Readings of a single biomarker type, in any order.
        mode: ``bar`` or ``line``; defaults by type (bar for steps/sleep).
        date_range: Inclusive calendar-day filter, evaluated in ``tz``.
        biomarker_type: The charted type; inferred from the readings if omitted.
        tz: Display timezone for calendar days and daily buckets.

    Returns:
        A ChartSeries. An empty series (``has_data`` False) when nothing
        survives the filter.
    """
    kind = parse_type(biomarker_type)
    if kind is None and readings:
        kind = readings[0].biomarker_type
    chart_mode = ChartMode(mode) if mode else default_mode(kind)

    kept = filter_by_days(readings, date_range, tz)
    if not kept:
        logger.debug("No chartable readings for %s", kind.value if kind else "unknown type")
        return ChartSeries(biomarker_type=kind, mode=chart_mode)

    points = daily_buckets(kept, tz) if chart_mode is ChartMode.BAR else line_points(kept)
    xs = [p.timestamp for p in points]
    ys = [p.value for p in points]
    x_lo, x_hi = min(xs), max(xs)
    y_lo, y_hi = y_domain(chart_mode, ys)

    return ChartSeries(
        biomarker_type=kind,
        mode=chart_mode,
        points=points,
        x_domain=(x_lo, x_hi),
        y_domain=(y_lo, y_hi),
        x_ticks=_ticks(x_lo, x_hi, len(points)),
        y_ticks=_ticks(y_lo, y_hi, len(points)) if len(points) >= 2 else [ys[0]],
        summary=summarize(points),
    )


def project(
    series: ChartSeries,
    width: int = CHART_WIDTH,
    height: int = CHART_HEIGHT,
    pad: int = CHART_PAD,
) -> dict[str, Any]:
    """Map series points into pixel coordinates of a ``width`` x ``height`` viewport."""
    if not series.has_data:
        return {"width": width, "height": height, "points": []}

    x_lo, x_hi = (t.timestamp() for t in series.x_domain)
    y_lo, y_hi = series.y_domain
    x_span = (x_hi - x_lo) or 1
    y_span = (y_hi - y_lo) or 1

    def scale_x(ts: datetime) -> float:
        return pad + (ts.timestamp() - x_lo) / x_span * (width - pad * 2)

    def scale_y(v: float) -> float:
        return height - pad - (v - y_lo) / y_span * (height - pad * 2)

    projected: dict[str, Any] = {
        "width": width,
        "height": height,
        "points": [
            {"x": scale_x(p.timestamp), "y": scale_y(p.value), "value": p.value}
            for p in series.points
        ],
        "baseline_y": scale_y(0 if series.mode is ChartMode.BAR else y_lo),
    }
    if series.mode is ChartMode.BAR:
        spacing = (width - pad * 2) / max(len(series.points), 1)
        projected["bar_width"] = max(12, min(32, spacing * 0.5))
    return projected


def last_days_range(days: int, today: date) -> DateRange:
    """The inclusive range covering the last ``days`` calendar days, ending today."""
    if days < 1:
        raise ValueError("days must be at least 1")
    return DateRange(start=today - timedelta(days=days - 1), end=today)
