"""Recommendation template bank — reads canned texts from YAML."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from pulse.domains.health.domain_logic.biomarker_models import (
    BiomarkerStatus,
    BiomarkerType,
)

logger = logging.getLogger(__name__)

TEMPLATE_PATH = Path(__file__).resolve().parent.parent / "templates" / "recommendations.yaml"

_BLOOD_PRESSURE = frozenset({
    BiomarkerType.BLOOD_PRESSURE_SYSTOLIC,
    BiomarkerType.BLOOD_PRESSURE_DIASTOLIC,
})


class TemplateError(Exception):
    """The template bank is missing or malformed."""


def format_number(value: Any) -> str:
    """Render a number the way readings are shown: 72.0 -> "72", 7.5 -> "7.5"."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass
class TemplateBank:
    """Goal cadence texts plus per-(status, type) biomarker texts."""

    goal_title: str
    cadence: dict[str, str]
    titles: dict[str, str]
    descriptions: dict[str, dict[str, str]] = field(default_factory=dict)
    version: str = ""

    def goal_description(self, frequency: str) -> str:
        return self.cadence.get(frequency, self.cadence["default"])

    def biomarker_title(self, status: BiomarkerStatus) -> str:
        return self.titles.get(status.value, self.titles[BiomarkerStatus.UNKNOWN.value])

    def biomarker_description(self, status: BiomarkerStatus, biomarker_type: BiomarkerType | None) -> str:
        by_type = self.descriptions.get(status.value) or self.descriptions[BiomarkerStatus.UNKNOWN.value]
        key = "default"
        if biomarker_type in _BLOOD_PRESSURE and "blood_pressure" in by_type:
            key = "blood_pressure"
        elif biomarker_type is not None and biomarker_type.value in by_type:
            key = biomarker_type.value
        return by_type[key]


def parse_template_bank(data: dict[str, Any]) -> TemplateBank:
    """Build a TemplateBank from the parsed YAML document."""
    try:
        goal = data["goal"]
        biomarker = data["biomarker"]
        bank = TemplateBank(
            goal_title=goal["title"],
            cadence={k: str(v).strip() for k, v in goal["cadence"].items()},
            titles=dict(biomarker["titles"]),
            descriptions={
                status: {k: " ".join(str(v).split()) for k, v in by_type.items()}
                for status, by_type in biomarker["descriptions"].items()
            },
            version=str(data.get("version", "")),
        )
    except (KeyError, TypeError, AttributeError) as exc:
        raise TemplateError(f"Malformed template bank: {exc}") from exc

    if "default" not in bank.cadence:
        raise TemplateError("Goal cadence templates need a 'default' entry")
    unknown = bank.descriptions.get(BiomarkerStatus.UNKNOWN.value, {})
    if BiomarkerStatus.UNKNOWN.value not in bank.titles or "default" not in unknown:
        raise TemplateError("Biomarker templates need an 'unknown' title and default description")
    return bank


def load_template_file(path: str | Path) -> TemplateBank:
    """Parse a YAML template file into a TemplateBank."""
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise TemplateError(f"Cannot read template bank {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TemplateError(f"Template bank {path} is not a mapping")

    bank = parse_template_bank(data)
    logger.info("Loaded recommendation templates from %s (v%s)", path.name, bank.version)
    return bank


@lru_cache(maxsize=1)
def default_templates() -> TemplateBank:
    """The packaged template bank, loaded once."""
    return load_template_file(TEMPLATE_PATH)
