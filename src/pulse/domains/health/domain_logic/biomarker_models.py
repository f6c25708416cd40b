"""Biomarker domain models and constants shared by the interpretation layer."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Biomarker types
# ---------------------------------------------------------------------------

class BiomarkerType(str, Enum):
    HEART_RATE = "heart_rate"
    BLOOD_PRESSURE_SYSTOLIC = "blood_pressure_systolic"
    BLOOD_PRESSURE_DIASTOLIC = "blood_pressure_diastolic"
    GLUCOSE = "glucose"
    STEPS = "steps"
    SLEEP = "sleep"


# Canonical display order; also the ordering key of per-type output lists.
BIOMARKER_ORDER = [
    BiomarkerType.HEART_RATE,
    BiomarkerType.BLOOD_PRESSURE_SYSTOLIC,
    BiomarkerType.BLOOD_PRESSURE_DIASTOLIC,
    BiomarkerType.GLUCOSE,
    BiomarkerType.STEPS,
    BiomarkerType.SLEEP,
]

CANONICAL_UNITS = {
    BiomarkerType.HEART_RATE: "bpm",
    BiomarkerType.BLOOD_PRESSURE_SYSTOLIC: "mmHg",
    BiomarkerType.BLOOD_PRESSURE_DIASTOLIC: "mmHg",
    BiomarkerType.GLUCOSE: "mg/dL",
    BiomarkerType.STEPS: "steps",
    BiomarkerType.SLEEP: "hours",
}

DISPLAY_LABELS = {
    BiomarkerType.HEART_RATE: "Heart Rate",
    BiomarkerType.BLOOD_PRESSURE_SYSTOLIC: "Blood Pressure (Systolic)",
    BiomarkerType.BLOOD_PRESSURE_DIASTOLIC: "Blood Pressure (Diastolic)",
    BiomarkerType.GLUCOSE: "Glucose",
    BiomarkerType.STEPS: "Steps",
    BiomarkerType.SLEEP: "Sleep",
}

# Discrete/cumulative metrics are charted as daily bars.
CUMULATIVE_TYPES = frozenset({BiomarkerType.STEPS, BiomarkerType.SLEEP})


def normalize_type(name: Any) -> str:
    """Normalize a biomarker name: trimmed, lowercase, whitespace -> underscore."""
    if name is None:
        return ""
    if isinstance(name, BiomarkerType):
        return name.value
    return "_".join(str(name).strip().lower().split())


def parse_type(name: Any) -> BiomarkerType | None:
    """Return the BiomarkerType for a (loosely formatted) name, or None."""
    try:
        return BiomarkerType(normalize_type(name))
    except ValueError:
        return None


def to_number(val: Any) -> float | None:
    """Coerce to a finite float; None for missing, boolean, non-numeric or non-finite input."""
    if val is None or isinstance(val, bool):
        return None
    try:
        number = float(val)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


# ---------------------------------------------------------------------------
# Readings and ranges
# ---------------------------------------------------------------------------

class ReadingSource(str, Enum):
    MANUAL = "manual"
    DEVICE = "device"


@dataclass(frozen=True)
class Reading:
    """A single recorded biomarker measurement. Immutable once recorded."""

    biomarker_type: BiomarkerType
    value: float
    unit: str = ""
    recorded_at: datetime | None = None
    source: ReadingSource = ReadingSource.MANUAL
    device_id: str | None = None
    notes: str | None = None
    id: str | None = None


@dataclass(frozen=True)
class ReferenceRange:
    """Global default bounds for one biomarker type."""

    biomarker_type: BiomarkerType
    unit: str
    optimal: tuple[float, float]
    normal: tuple[float, float]
    critical_low: float | None = None
    critical_high: float | None = None


@dataclass(frozen=True)
class BiomarkerValue:
    """One current value of a normalized dashboard snapshot."""

    biomarker_type: BiomarkerType
    value: float
    unit: str = ""
    recorded_at: datetime | None = None


# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------

class ThresholdSource(str, Enum):
    PROVIDER = "provider"
    PATIENT = "patient"
    DEFAULT = "default"


@dataclass(frozen=True)
class ThresholdBounds:
    """Warning and critical bounds; any bound may be undefined."""

    warning_low: float | None = None
    warning_high: float | None = None
    critical_low: float | None = None
    critical_high: float | None = None

    def as_dict(self) -> dict[str, float | None]:
        return {
            "warning_low": self.warning_low,
            "warning_high": self.warning_high,
            "critical_low": self.critical_low,
            "critical_high": self.critical_high,
        }


@dataclass(frozen=True)
class ThresholdOverride:
    """A patient- or provider-authored replacement for the default threshold."""

    id: str
    biomarker_type: BiomarkerType
    set_by: ThresholdSource
    bounds: ThresholdBounds = field(default_factory=ThresholdBounds)


@dataclass(frozen=True)
class EffectiveThreshold:
    """The threshold set that applies after resolving overrides by priority."""

    biomarker_type: BiomarkerType
    warning_low: float | None = None
    warning_high: float | None = None
    critical_low: float | None = None
    critical_high: float | None = None

    @classmethod
    def from_bounds(cls, biomarker_type: BiomarkerType, bounds: ThresholdBounds) -> EffectiveThreshold:
        return cls(
            biomarker_type=biomarker_type,
            warning_low=bounds.warning_low,
            warning_high=bounds.warning_high,
            critical_low=bounds.critical_low,
            critical_high=bounds.critical_high,
        )

    @property
    def has_warning_band(self) -> bool:
        return self.warning_low is not None or self.warning_high is not None


@dataclass(frozen=True)
class ResolvedThreshold:
    """An effective threshold tagged with the tier it came from."""

    threshold: EffectiveThreshold
    source: ThresholdSource
    override_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "biomarker_type": self.threshold.biomarker_type.value,
            "source": self.source.value,
            "override_id": self.override_id,
            "warning_low": self.threshold.warning_low,
            "warning_high": self.threshold.warning_high,
            "critical_low": self.threshold.critical_low,
            "critical_high": self.threshold.critical_high,
        }


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

class BiomarkerStatus(str, Enum):
    CRITICAL_LOW = "critical_low"
    CRITICAL_HIGH = "critical_high"
    OPTIMAL = "optimal"
    NORMAL = "normal"
    HIGH = "high"
    LOW = "low"
    UNKNOWN = "unknown"


# Title-decoration severity: critical > elevated/low > optimal > normal > unclassified
STATUS_SEVERITY = {
    BiomarkerStatus.CRITICAL_LOW: 4,
    BiomarkerStatus.CRITICAL_HIGH: 4,
    BiomarkerStatus.HIGH: 3,
    BiomarkerStatus.LOW: 3,
    BiomarkerStatus.OPTIMAL: 2,
    BiomarkerStatus.NORMAL: 1,
    BiomarkerStatus.UNKNOWN: 0,
}


@dataclass(frozen=True)
class ClassificationBounds:
    """The bound set a classification is evaluated against."""

    critical_low: float | None = None
    critical_high: float | None = None
    optimal_low: float | None = None
    optimal_high: float | None = None
    normal_low: float | None = None
    normal_high: float | None = None


# ---------------------------------------------------------------------------
# Goals and recommendations
# ---------------------------------------------------------------------------

class GoalFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class Goal:
    text: str
    frequency: str = GoalFrequency.DAILY.value
    active: bool = True


@dataclass(frozen=True)
class GoalCompletion:
    completion_date: str  # YYYY-MM-DD
    goal_text: str
    status: str = "completed"


class RecommendationCategory(str, Enum):
    GOAL = "goal"
    BIOMARKER = "biomarker"
    OTHER = "other"


@dataclass
class Recommendation:
    """An advisory entry, either backend supplied or derived locally.

    Backend entries (``is_derived=False``) keep their backend id. Derived
    entries carry a content-based id so reloads produce the same id.
    """

    id: str
    title: str
    description: str
    category: RecommendationCategory
    is_derived: bool = False
    biomarker_type: str | None = None
    goal: str | None = None
    frequency: str | None = None
    status: BiomarkerStatus | None = None
    severity: int = 0
    created_at: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)
    # Id the backend knows this entry by; None for derived entries and for
    # backend entries that arrived without one.
    backend_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category.value,
            "is_derived": self.is_derived,
            "severity": self.severity,
        }
        if self.biomarker_type is not None:
            data["biomarker_type"] = self.biomarker_type
        if self.goal is not None:
            data["goal"] = self.goal
        if self.frequency is not None:
            data["frequency"] = self.frequency
        if self.status is not None:
            data["status"] = self.status.value
        if self.created_at is not None:
            data["created_at"] = self.created_at
        return data


@dataclass
class InsightView:
    """Merged, categorized recommendation list handed to the presentation layer."""

    goal: list[Recommendation] = field(default_factory=list)
    biomarker: list[Recommendation] = field(default_factory=list)
    other: list[Recommendation] = field(default_factory=list)

    def all(self) -> list[Recommendation]:
        return [*self.goal, *self.biomarker, *self.other]

    def find(self, recommendation_id: str) -> Recommendation | None:
        for rec in self.all():
            if rec.id == recommendation_id:
                return rec
        return None

    def without(self, recommendation_id: str) -> InsightView:
        """Return a copy with every entry carrying ``recommendation_id`` removed."""
        return InsightView(
            goal=[r for r in self.goal if r.id != recommendation_id],
            biomarker=[r for r in self.biomarker if r.id != recommendation_id],
            other=[r for r in self.other if r.id != recommendation_id],
        )

    def __len__(self) -> int:
        return len(self.goal) + len(self.biomarker) + len(self.other)

    def to_dict(self) -> dict[str, Any]:
        return {
            "goal": [r.to_dict() for r in self.goal],
            "biomarker": [r.to_dict() for r in self.biomarker],
            "other": [r.to_dict() for r in self.other],
            "total": len(self),
        }
