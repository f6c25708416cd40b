"""Validation and wire payloads for manually entered biomarker readings.

A reading is checked before it reaches the backend: the type must be known,
the value numeric, finite and non-negative, and the timestamp not in the
future. The unit defaults to the canonical unit of the type. Blood pressure
is entered as a systolic/diastolic pair that shares one timestamp.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from pulse.domains.health.connectors.ingestion import parse_timestamp
from pulse.domains.health.domain_logic.biomarker_models import (
    CANONICAL_UNITS,
    BiomarkerType,
    Reading,
    ReadingSource,
    parse_type,
    to_number,
)

NOTES_MAX_LENGTH = 500

# Clock skew tolerated between the client and the server.
FUTURE_TOLERANCE = timedelta(minutes=5)


class ReadingValidationError(ValueError):
    """A manually entered reading was rejected before submission."""


def _value(raw: Any, label: str) -> float:
    number = to_number(raw)
    if number is None:
        raise ReadingValidationError(f"{label} must be a finite number")
    if number < 0:
        raise ReadingValidationError(f"{label} must not be negative")
    return number


def _recorded_at(raw: Any, now: datetime) -> datetime:
    if raw is None or raw == "":
        return now
    recorded = parse_timestamp(raw)
    if recorded is None:
        raise ReadingValidationError(f"recorded_at is not a valid ISO 8601 timestamp: {raw!r}")
    if recorded > now + FUTURE_TOLERANCE:
        raise ReadingValidationError("recorded_at must not be in the future")
    return recorded


def _notes(raw: str | None) -> str | None:
    text = (raw or "").strip()
    if len(text) > NOTES_MAX_LENGTH:
        raise ReadingValidationError(f"notes must be at most {NOTES_MAX_LENGTH} characters")
    return text or None


def build_reading(
    biomarker_type: Any,
    value: Any,
    *,
    unit: str | None = None,
    recorded_at: Any = None,
    source: ReadingSource | str = ReadingSource.MANUAL,
    device_id: str | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> Reading:
    """Validate one reading and fill in its defaults.

    Raises:
        ReadingValidationError: On an unknown type, a bad value or timestamp,
            an unknown source or over-long notes.
    """
    now = now or datetime.now(timezone.utc)
    key = parse_type(biomarker_type)
    if key is None:
        raise ReadingValidationError(f"Unknown biomarker type: {biomarker_type!r}")
    try:
        reading_source = ReadingSource(str(source).lower())
    except ValueError as exc:
        raise ReadingValidationError(f"Unknown reading source: {source!r}") from exc

    return Reading(
        biomarker_type=key,
        value=_value(value, "value"),
        unit=(unit or "").strip() or CANONICAL_UNITS[key],
        recorded_at=_recorded_at(recorded_at, now),
        source=reading_source,
        device_id=device_id or None,
        notes=_notes(notes),
    )


def build_blood_pressure(
    systolic: Any,
    diastolic: Any,
    *,
    recorded_at: Any = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> tuple[Reading, Reading]:
    """Validate a systolic/diastolic pair recorded at the same instant."""
    now = now or datetime.now(timezone.utc)
    stamp = _recorded_at(recorded_at, now)
    high = build_reading(BiomarkerType.BLOOD_PRESSURE_SYSTOLIC, systolic, recorded_at=stamp, notes=notes, now=now)
    low = build_reading(BiomarkerType.BLOOD_PRESSURE_DIASTOLIC, diastolic, recorded_at=stamp, notes=notes, now=now)
    if low.value >= high.value:
        raise ReadingValidationError("Diastolic pressure must be lower than systolic pressure")
    return high, low


def reading_payload(reading: Reading) -> dict[str, Any]:
    """Request body for the backend's reading insert."""
    payload: dict[str, Any] = {
        "biomarker_type": reading.biomarker_type.value,
        "value": reading.value,
        "unit": reading.unit,
        "source": reading.source.value,
        "recorded_at": reading.recorded_at.isoformat() if reading.recorded_at else None,
    }
    if reading.device_id:
        payload["device_id"] = reading.device_id
    if reading.notes:
        payload["notes"] = reading.notes
    return payload
