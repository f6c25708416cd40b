"""Tests for manual reading validation and payloads."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from pulse.domains.health.domain_logic.biomarker_models import BiomarkerType, ReadingSource
from pulse.domains.health.domain_logic.reading_entry import (
    ReadingValidationError,
    build_blood_pressure,
    build_reading,
    reading_payload,
)

NOW = datetime(2024, 1, 12, 15, 0, tzinfo=timezone.utc)


class TestBuildReading:
    def test_defaults(self):
        reading = build_reading("Glucose", "104", now=NOW)
        assert reading.biomarker_type is BiomarkerType.GLUCOSE
        assert reading.value == 104
        assert reading.unit == "mg/dL"
        assert reading.recorded_at == NOW
        assert reading.source is ReadingSource.MANUAL
        assert reading.notes is None

    def test_explicit_unit_and_timestamp(self):
        reading = build_reading("sleep", 7.5, unit="h", recorded_at="2024-01-11T22:00:00Z", now=NOW)
        assert reading.unit == "h"
        assert reading.recorded_at == datetime(2024, 1, 11, 22, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "abc", float("nan"), float("inf"), True, -1])
    def test_bad_values(self, value):
        with pytest.raises(ReadingValidationError):
            build_reading("heart_rate", value, now=NOW)

    def test_unknown_type(self):
        with pytest.raises(ReadingValidationError, match="Unknown biomarker type"):
            build_reading("cholesterol", 180, now=NOW)

    def test_bad_timestamp(self):
        with pytest.raises(ReadingValidationError, match="ISO 8601"):
            build_reading("steps", 500, recorded_at="yesterday", now=NOW)

    def test_future_timestamp(self):
        later = (NOW + timedelta(hours=2)).isoformat()
        with pytest.raises(ReadingValidationError, match="future"):
            build_reading("steps", 500, recorded_at=later, now=NOW)
        # Small clock skew is tolerated.
        build_reading("steps", 500, recorded_at=(NOW + timedelta(minutes=1)).isoformat(), now=NOW)

    def test_device_source(self):
        reading = build_reading("heart_rate", 61, source="device", device_id="watch-1", now=NOW)
        assert reading.source is ReadingSource.DEVICE
        assert reading_payload(reading)["device_id"] == "watch-1"

    def test_unknown_source(self):
        with pytest.raises(ReadingValidationError):
            build_reading("heart_rate", 61, source="import", now=NOW)

    def test_notes_trimmed_and_limited(self):
        assert build_reading("glucose", 90, notes="  after lunch ", now=NOW).notes == "after lunch"
        with pytest.raises(ReadingValidationError, match="500"):
            build_reading("glucose", 90, notes="x" * 501, now=NOW)


class TestBloodPressure:
    def test_pair_shares_timestamp(self):
        systolic, diastolic = build_blood_pressure(121, 79, now=NOW)
        assert systolic.biomarker_type is BiomarkerType.BLOOD_PRESSURE_SYSTOLIC
        assert diastolic.biomarker_type is BiomarkerType.BLOOD_PRESSURE_DIASTOLIC
        assert systolic.recorded_at == diastolic.recorded_at == NOW
        assert systolic.unit == diastolic.unit == "mmHg"

    def test_diastolic_must_be_lower(self):
        with pytest.raises(ReadingValidationError, match="lower than systolic"):
            build_blood_pressure(80, 80, now=NOW)


def test_payload_shape():
    reading = build_reading("glucose", 98, recorded_at="2024-01-12T08:00:00Z", notes="fasting", now=NOW)
    assert reading_payload(reading) == {
        "biomarker_type": "glucose",
        "value": 98,
        "unit": "mg/dL",
        "source": "manual",
        "recorded_at": "2024-01-12T08:00:00+00:00",
        "notes": "fasting",
    }
