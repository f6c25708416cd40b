"""Shape-tolerant ingestion of backend payloads.

Backend responses arrive in several container shapes (bare arrays, arrays
wrapped in an object, objects keyed by biomarker type, legacy delimited
strings). Each payload is tagged with its shape once, dispatched to exactly
one adapter for that shape, and normalized into the canonical dataclasses.
Nothing past this module branches on shape.

Malformed or missing data never raises; it normalizes to an empty list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from pulse.domains.health.domain_logic.biomarker_models import (
    BiomarkerType,
    BiomarkerValue,
    CANONICAL_UNITS,
    Goal,
    GoalCompletion,
    GoalFrequency,
    Reading,
    ReadingSource,
    ThresholdBounds,
    ThresholdOverride,
    ThresholdSource,
    parse_type,
    to_number,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tagged payloads
# ---------------------------------------------------------------------------

class PayloadShape(str, Enum):
    EMPTY = "empty"
    ARRAY = "array"                  # [...]
    WRAPPED_ARRAY = "wrapped_array"  # {"<key>": [...]}
    KEYED = "keyed"                  # {"heart_rate": {...}, "glucose": {...}}
    DELIMITED_TEXT = "delimited_text"


@dataclass(frozen=True)
class TaggedPayload:
    shape: PayloadShape
    body: Any


def tag_payload(payload: Any, wrapper_keys: tuple[str, ...] = ()) -> TaggedPayload:
    """Tag a raw payload with its container shape."""
    if isinstance(payload, list):
        return TaggedPayload(PayloadShape.ARRAY, payload)
    if isinstance(payload, str):
        if payload.strip():
            return TaggedPayload(PayloadShape.DELIMITED_TEXT, payload)
        return TaggedPayload(PayloadShape.EMPTY, None)
    if isinstance(payload, dict):
        for key in wrapper_keys:
            if isinstance(payload.get(key), list):
                return TaggedPayload(PayloadShape.WRAPPED_ARRAY, payload[key])
        if payload:
            return TaggedPayload(PayloadShape.KEYED, payload)
    return TaggedPayload(PayloadShape.EMPTY, None)


def _dispatch(
    tagged: TaggedPayload,
    adapters: dict[PayloadShape, Callable[[Any], list]],
    what: str,
) -> list:
    adapter = adapters.get(tagged.shape)
    if adapter is None:
        if tagged.shape is not PayloadShape.EMPTY:
            logger.debug("Ignoring %s payload of shape %s", what, tagged.shape.value)
        return []
    return adapter(tagged.body)


def _dicts(items: list[Any]) -> list[dict[str, Any]]:
    return [item for item in items if isinstance(item, dict)]


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------

def parse_timestamp(value: Any) -> datetime | None:
    """Parse ISO 8601 strings, datetimes or epoch numbers into aware UTC datetimes."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------

def normalize_recommendations(payload: Any) -> list[dict[str, Any]]:
    """Active recommendations: an array, or ``{"recommendations": [...]}``."""
    tagged = tag_payload(payload, wrapper_keys=("recommendations",))
    return _dispatch(
        tagged,
        {
            PayloadShape.ARRAY: _dicts,
            PayloadShape.WRAPPED_ARRAY: _dicts,
        },
        "recommendations",
    )


# ---------------------------------------------------------------------------
# Profile: goals and restrictions
# ---------------------------------------------------------------------------

def _frequency(raw: Any) -> str:
    text = str(raw or GoalFrequency.DAILY.value).strip().lower()
    return text or GoalFrequency.DAILY.value


def _goals_from_array(items: list[Any]) -> list[Goal]:
    goals: list[Goal] = []
    for item in items:
        if isinstance(item, str):
            if item.strip():
                goals.append(Goal(text=item.strip()))
            continue
        if not isinstance(item, dict):
            continue
        text = str(item.get("goal") or item.get("goal_text") or "").strip()
        if not text:
            continue
        active = item.get("is_active", item.get("active", True))
        goals.append(Goal(text=text, frequency=_frequency(item.get("frequency")), active=bool(active)))
    return goals


def _goals_from_text(text: str) -> list[Goal]:
    # Legacy profiles store goals as a comma-separated string; cadence defaults to daily.
    return [Goal(text=part.strip()) for part in text.split(",") if part.strip()]


def normalize_goals(profile: Any) -> list[Goal]:
    """Goals from a profile: ``{goal, frequency}[]`` or a legacy comma-separated string."""
    raw = profile.get("health_goals") if isinstance(profile, dict) else None
    tagged = tag_payload(raw, wrapper_keys=("goals",))
    return _dispatch(
        tagged,
        {
            PayloadShape.ARRAY: _goals_from_array,
            PayloadShape.WRAPPED_ARRAY: _goals_from_array,
            PayloadShape.DELIMITED_TEXT: _goals_from_text,
        },
        "goals",
    )


def normalize_restrictions(profile: Any) -> list[str]:
    raw = profile.get("health_restrictions") if isinstance(profile, dict) else None
    tagged = tag_payload(raw)
    return _dispatch(
        tagged,
        {
            PayloadShape.ARRAY: lambda items: [str(i).strip() for i in items if str(i).strip()],
            PayloadShape.DELIMITED_TEXT: lambda text: [p.strip() for p in text.split(",") if p.strip()],
        },
        "restrictions",
    )


def normalize_completions(payload: Any) -> list[GoalCompletion]:
    """Goal completions: an array, or ``{"completions": [...]}``."""

    def _from_array(items: list[Any]) -> list[GoalCompletion]:
        return [
            GoalCompletion(
                completion_date=str(item.get("completion_date") or ""),
                goal_text=str(item.get("goal_text") or ""),
                status=str(item.get("status") or ""),
            )
            for item in _dicts(items)
            if item.get("goal_text")
        ]

    tagged = tag_payload(payload, wrapper_keys=("completions",))
    return _dispatch(
        tagged,
        {PayloadShape.ARRAY: _from_array, PayloadShape.WRAPPED_ARRAY: _from_array},
        "completions",
    )


# ---------------------------------------------------------------------------
# Biomarker dashboard snapshot
# ---------------------------------------------------------------------------

def _entry_value(entry: dict[str, Any]) -> float | None:
    for key in ("value", "avg", "current_value"):
        number = to_number(entry.get(key))
        if number is not None:
            return number
    return None


def _entry_timestamp(entry: dict[str, Any]) -> datetime | None:
    for key in ("recorded_at", "last_recorded", "timestamp"):
        ts = parse_timestamp(entry.get(key))
        if ts is not None:
            return ts
    return None


def _value_from_entry(biomarker_type: BiomarkerType, entry: Any) -> BiomarkerValue | None:
    if isinstance(entry, dict):
        value = _entry_value(entry)
        unit = str(entry.get("unit") or CANONICAL_UNITS[biomarker_type])
        recorded_at = _entry_timestamp(entry)
    else:
        value = to_number(entry)
        unit = CANONICAL_UNITS[biomarker_type]
        recorded_at = None
    if value is None:
        return None
    return BiomarkerValue(biomarker_type=biomarker_type, value=value, unit=unit, recorded_at=recorded_at)


def _dashboard_from_keyed(body: dict[str, Any]) -> list[BiomarkerValue]:
    values: list[BiomarkerValue] = []
    for key, entry in body.items():
        biomarker_type = parse_type(key)
        if biomarker_type is None:
            continue
        value = _value_from_entry(biomarker_type, entry)
        if value is not None:
            values.append(value)
    return values


def _dashboard_from_array(items: list[Any]) -> list[BiomarkerValue]:
    values: list[BiomarkerValue] = []
    for entry in _dicts(items):
        name = entry.get("type") or entry.get("name") or entry.get("biomarker_type")
        biomarker_type = parse_type(name)
        if biomarker_type is None:
            continue
        value = _value_from_entry(biomarker_type, entry)
        if value is not None:
            values.append(value)
    return values


def normalize_dashboard(payload: Any) -> list[BiomarkerValue]:
    """Dashboard snapshot: keyed by type, ``{"biomarkers": [...]}``, or an array."""
    tagged = tag_payload(payload, wrapper_keys=("biomarkers",))
    return _dispatch(
        tagged,
        {
            PayloadShape.KEYED: _dashboard_from_keyed,
            PayloadShape.WRAPPED_ARRAY: _dashboard_from_array,
            PayloadShape.ARRAY: _dashboard_from_array,
        },
        "dashboard",
    )


# ---------------------------------------------------------------------------
# Readings (history)
# ---------------------------------------------------------------------------

def _reading_from_dict(entry: dict[str, Any], fallback_type: BiomarkerType | None) -> Reading | None:
    biomarker_type = parse_type(entry.get("biomarker_type") or entry.get("type")) or fallback_type
    value = to_number(entry.get("value"))
    if biomarker_type is None or value is None:
        return None
    try:
        source = ReadingSource(str(entry.get("source") or "manual").lower())
    except ValueError:
        source = ReadingSource.MANUAL
    reading_id = entry.get("id")
    return Reading(
        biomarker_type=biomarker_type,
        value=value,
        unit=str(entry.get("unit") or CANONICAL_UNITS[biomarker_type]),
        recorded_at=parse_timestamp(entry.get("recorded_at")),
        source=source,
        device_id=entry.get("device_id"),
        notes=entry.get("notes") or None,
        id=str(reading_id) if reading_id is not None else None,
    )


def normalize_readings(payload: Any, biomarker_type: Any = None) -> list[Reading]:
    """Reading history: an array, or wrapped under ``readings``/``items``/``data``/``history``."""
    fallback = parse_type(biomarker_type) if biomarker_type is not None else None

    def _from_array(items: list[Any]) -> list[Reading]:
        readings = [_reading_from_dict(entry, fallback) for entry in _dicts(items)]
        return [r for r in readings if r is not None]

    tagged = tag_payload(payload, wrapper_keys=("readings", "items", "data", "history"))
    return _dispatch(
        tagged,
        {PayloadShape.ARRAY: _from_array, PayloadShape.WRAPPED_ARRAY: _from_array},
        "readings",
    )


# ---------------------------------------------------------------------------
# Threshold overrides
# ---------------------------------------------------------------------------

def _override_from_dict(entry: dict[str, Any]) -> ThresholdOverride | None:
    biomarker_type = parse_type(entry.get("biomarker_type"))
    role = str(entry.get("set_by_role") or entry.get("set_by") or entry.get("source") or "").lower()
    if biomarker_type is None or role not in (ThresholdSource.PATIENT.value, ThresholdSource.PROVIDER.value):
        return None
    override_id = entry.get("id") or entry.get("threshold_id")
    return ThresholdOverride(
        id=str(override_id) if override_id is not None else f"{role}-{biomarker_type.value}",
        biomarker_type=biomarker_type,
        set_by=ThresholdSource(role),
        bounds=ThresholdBounds(
            warning_low=to_number(entry.get("warning_low")),
            warning_high=to_number(entry.get("warning_high")),
            critical_low=to_number(entry.get("critical_low")),
            critical_high=to_number(entry.get("critical_high")),
        ),
    )


def normalize_thresholds(payload: Any) -> list[ThresholdOverride]:
    """Threshold rows (``my``/``effective`` reads); default-tier rows are skipped."""

    def _from_array(items: list[Any]) -> list[ThresholdOverride]:
        overrides = [_override_from_dict(entry) for entry in _dicts(items)]
        return [o for o in overrides if o is not None]

    tagged = tag_payload(payload, wrapper_keys=("thresholds",))
    return _dispatch(
        tagged,
        {PayloadShape.ARRAY: _from_array, PayloadShape.WRAPPED_ARRAY: _from_array},
        "thresholds",
    )
