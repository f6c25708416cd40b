"""Deterministic sample data for the in-memory backend.

Represents an ordinary adult patient: mostly optimal vitals, one elevated
systolic reading, a short step count, a few goals. Timestamps are laid out
relative to ``now`` so the dashboard always has recent values.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

# (type, unit, value per day for the last 7 days, oldest first)
_DAILY_SERIES = [
    ("heart_rate", "bpm", [72, 70, 75, 68, 71, 74, 72]),
    ("blood_pressure_systolic", "mmHg", [118, 121, 119, 124, 122, 126, 128]),
    ("blood_pressure_diastolic", "mmHg", [76, 78, 77, 79, 78, 80, 79]),
    ("glucose", "mg/dL", [92, 95, 88, 101, 97, 94, 96]),
    ("steps", "steps", [8200, 6400, 9100, 7300, 5800, 10400, 4300]),
    ("sleep", "hours", [7.2, 6.8, 7.5, 8.0, 6.5, 7.1, 7.4]),
]


def get_sample_readings(now: datetime | None = None) -> list[dict]:
    """One reading per type per day for the last week, ending an hour ago."""
    now = now or datetime.now(timezone.utc)
    readings = []
    for biomarker_type, unit, values in _DAILY_SERIES:
        for days_ago, value in zip(range(len(values) - 1, -1, -1), values):
            recorded_at = now - timedelta(days=days_ago, hours=1)
            readings.append({
                "id": f"r-{biomarker_type}-{days_ago}",
                "biomarker_type": biomarker_type,
                "value": value,
                "unit": unit,
                "recorded_at": recorded_at.isoformat(),
                "source": "device" if biomarker_type in ("steps", "sleep", "heart_rate") else "manual",
            })
    return readings


def get_sample_profile() -> dict:
    return {
        "first_name": "Sample",
        "last_name": "Patient",
        "health_goals": [
            {"goal": "Walk 30 minutes", "frequency": "daily"},
            {"goal": "Strength training", "frequency": "weekly"},
            {"goal": "Try a new vegetable", "frequency": "monthly"},
        ],
        "health_restrictions": ["Low sodium diet", "No high-impact exercise"],
    }


def get_sample_recommendations() -> list[dict]:
    return [
        {
            "id": "rec-101",
            "title": "Keep an eye on your blood pressure",
            "description": "Your systolic readings have crept up this week. Try reducing sodium.",
            "biomarker_type": "blood_pressure_systolic",
            "created_at": "2024-01-10T09:00:00Z",
        },
        {
            "id": "rec-102",
            "title": "Stay consistent with walking",
            "description": "A daily walk is one of the easiest ways to support heart health.",
            "goal": "Walk 30 minutes",
            "created_at": "2024-01-10T09:05:00Z",
        },
        {
            "id": "rec-103",
            "title": "Hydration reminder",
            "description": "Aim for 8 glasses of water a day.",
            "type": "lifestyle",
            "created_at": "2024-01-10T09:10:00Z",
        },
    ]


def get_sample_thresholds() -> list[dict]:
    return [
        {
            "id": "thr-provider-glucose",
            "biomarker_type": "glucose",
            "set_by_role": "provider",
            "warning_low": 75,
            "warning_high": 130,
            "critical_low": 60,
            "critical_high": 180,
        },
    ]


def get_sample_notes() -> list[dict]:
    return [
        {"id": "note-1", "title": "Follow-up", "content": "Recheck blood pressure in two weeks.", "is_read": False},
    ]
