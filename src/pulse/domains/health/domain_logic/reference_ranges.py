"""Reference range table: global default bounds per biomarker type."""

from __future__ import annotations

from typing import Any

from pulse.domains.health.domain_logic.biomarker_models import (
    BiomarkerType,
    ReferenceRange,
    parse_type,
)

REFERENCE_RANGES: dict[BiomarkerType, ReferenceRange] = {
    BiomarkerType.HEART_RATE: ReferenceRange(
        biomarker_type=BiomarkerType.HEART_RATE,
        unit="bpm",
        optimal=(60, 80),
        normal=(60, 100),
        critical_low=40,
        critical_high=120,
    ),
    BiomarkerType.BLOOD_PRESSURE_SYSTOLIC: ReferenceRange(
        biomarker_type=BiomarkerType.BLOOD_PRESSURE_SYSTOLIC,
        unit="mmHg",
        optimal=(90, 120),
        normal=(90, 140),
        critical_low=70,
        critical_high=180,
    ),
    BiomarkerType.BLOOD_PRESSURE_DIASTOLIC: ReferenceRange(
        biomarker_type=BiomarkerType.BLOOD_PRESSURE_DIASTOLIC,
        unit="mmHg",
        optimal=(60, 80),
        normal=(60, 90),
        critical_low=40,
        critical_high=120,
    ),
    BiomarkerType.GLUCOSE: ReferenceRange(
        biomarker_type=BiomarkerType.GLUCOSE,
        unit="mg/dL",
        optimal=(70, 100),
        normal=(70, 140),
        critical_low=54,
        critical_high=200,
    ),
    BiomarkerType.STEPS: ReferenceRange(
        biomarker_type=BiomarkerType.STEPS,
        unit="steps",
        optimal=(7000, 10000),
        normal=(5000, 15000),
        critical_low=0,
        critical_high=50000,
    ),
    BiomarkerType.SLEEP: ReferenceRange(
        biomarker_type=BiomarkerType.SLEEP,
        unit="hours",
        optimal=(7, 9),
        normal=(6, 10),
        critical_low=4,
        critical_high=14,
    ),
}


def range_for(biomarker_type: Any) -> ReferenceRange | None:
    """Look up the reference range for a type; None when the type is not known."""
    key = parse_type(biomarker_type)
    if key is None:
        return None
    return REFERENCE_RANGES.get(key)


def ranges_as_dicts() -> list[dict[str, Any]]:
    """Serialize the table in the shape the backend's ``/biomarkers/ranges`` uses."""
    return [
        {
            "biomarker_type": ref.biomarker_type.value,
            "unit": ref.unit,
            "optimal_min": ref.optimal[0],
            "optimal_max": ref.optimal[1],
            "normal_min": ref.normal[0],
            "normal_max": ref.normal[1],
            "critical_low": ref.critical_low,
            "critical_high": ref.critical_high,
        }
        for ref in REFERENCE_RANGES.values()
    ]
