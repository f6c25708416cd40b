"""Threshold resolution: provider override > patient override > reference default.

Exactly one tier wins in its entirety; fields are never merged across tiers.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pulse.domains.health.domain_logic.biomarker_models import (
    BiomarkerType,
    EffectiveThreshold,
    ReferenceRange,
    ResolvedThreshold,
    ThresholdBounds,
    ThresholdOverride,
    ThresholdSource,
    parse_type,
    to_number,
)
from pulse.domains.health.domain_logic.reference_ranges import range_for

logger = logging.getLogger(__name__)


class WarningPolicy(str, Enum):
    """How warning bounds are derived when no override exists."""

    ABSENT = "absent"            # warning bounds stay undefined
    FROM_NORMAL = "from_normal"  # warning bounds mirror the reference normal range


# ------------------------------------------------------------------
# Exceptions
# ------------------------------------------------------------------

class ThresholdError(Exception):
    """Base exception for threshold operations."""


class ThresholdValidationError(ThresholdError):
    """Submitted bounds are not numeric or not ordered."""


class ThresholdPermissionError(ThresholdError):
    """The acting user may not modify this override."""


# ------------------------------------------------------------------
# Resolution
# ------------------------------------------------------------------

@dataclass(frozen=True)
class OverrideSet:
    """The override candidates for one user and biomarker type."""

    provider: ThresholdOverride | None = None
    patient: ThresholdOverride | None = None


def derive_from_defaults(
    biomarker_type: BiomarkerType,
    defaults: ReferenceRange | None,
    policy: WarningPolicy = WarningPolicy.ABSENT,
) -> EffectiveThreshold:
    """Build the default-tier threshold from a reference range."""
    if defaults is None:
        return EffectiveThreshold(biomarker_type=biomarker_type)

    warning_low = warning_high = None
    if policy is WarningPolicy.FROM_NORMAL:
        warning_low, warning_high = defaults.normal

    return EffectiveThreshold(
        biomarker_type=biomarker_type,
        warning_low=warning_low,
        warning_high=warning_high,
        critical_low=defaults.critical_low,
        critical_high=defaults.critical_high,
    )


def resolve(
    biomarker_type: BiomarkerType,
    overrides: OverrideSet | dict[str, ThresholdOverride | None] | None = None,
    defaults: ReferenceRange | None = None,
    policy: WarningPolicy = WarningPolicy.ABSENT,
) -> ResolvedThreshold:
    """Resolve the effective threshold for one biomarker type.

    Args:
        biomarker_type: The biomarker being resolved.
        overrides: Provider/patient overrides, as an ``OverrideSet`` or a dict
            with optional ``provider`` / ``patient`` keys.
        defaults: Reference range; looked up from the table when omitted.
        policy: Warning-bound policy for the default tier.

    Returns:
        The winning threshold with its source tag.
    """
    if isinstance(overrides, dict):
        overrides = OverrideSet(
            provider=overrides.get("provider"),
            patient=overrides.get("patient"),
        )
    overrides = overrides or OverrideSet()

    for override, source in (
        (overrides.provider, ThresholdSource.PROVIDER),
        (overrides.patient, ThresholdSource.PATIENT),
    ):
        if override is not None:
            return ResolvedThreshold(
                threshold=EffectiveThreshold.from_bounds(biomarker_type, override.bounds),
                source=source,
                override_id=override.id,
            )

    if defaults is None:
        defaults = range_for(biomarker_type)
    return ResolvedThreshold(
        threshold=derive_from_defaults(biomarker_type, defaults, policy),
        source=ThresholdSource.DEFAULT,
    )


# ------------------------------------------------------------------
# Validation
# ------------------------------------------------------------------

_BOUND_FIELDS = ("warning_low", "warning_high", "critical_low", "critical_high")


def coerce_bounds(values: ThresholdBounds | dict[str, Any]) -> ThresholdBounds:
    """Turn a bounds mapping into validated ``ThresholdBounds``.

    Empty strings and None mean "undefined". Defined bounds must be finite
    and ordered critical_low <= warning_low <= warning_high <= critical_high.

    Raises:
        ThresholdValidationError: On non-numeric or mis-ordered bounds.
    """
    if isinstance(values, ThresholdBounds):
        values = values.as_dict()

    parsed: dict[str, float | None] = {}
    for name in _BOUND_FIELDS:
        raw = values.get(name)
        if raw is None or raw == "":
            parsed[name] = None
            continue
        number = to_number(raw)
        if number is None:
            raise ThresholdValidationError(f"{name} must be a finite number, got {raw!r}")
        parsed[name] = number

    ordered = [(name, parsed[name]) for name in ("critical_low", "warning_low", "warning_high", "critical_high")]
    defined = [(name, v) for name, v in ordered if v is not None]
    for (lo_name, lo), (hi_name, hi) in zip(defined, defined[1:]):
        if lo > hi:
            raise ThresholdValidationError(f"{lo_name} ({lo}) must not exceed {hi_name} ({hi})")

    return ThresholdBounds(**parsed)


# ------------------------------------------------------------------
# Override book (one user's overrides)
# ------------------------------------------------------------------

class OverrideBook:
    """In-memory index of one user's overrides, at most one per (type, set_by)."""

    def __init__(self, overrides: list[ThresholdOverride] | None = None) -> None:
        self._by_key: dict[tuple[BiomarkerType, ThresholdSource], ThresholdOverride] = {}
        for override in overrides or []:
            self.put(override)

    def put(self, override: ThresholdOverride) -> None:
        """Insert or replace the override for its (type, set_by) slot."""
        if override.set_by is ThresholdSource.DEFAULT:
            raise ValueError("Overrides must be set by 'patient' or 'provider'")
        self._by_key[(override.biomarker_type, override.set_by)] = override

    def get(self, biomarker_type: BiomarkerType, set_by: ThresholdSource) -> ThresholdOverride | None:
        return self._by_key.get((biomarker_type, set_by))

    def find(self, override_id: str) -> ThresholdOverride | None:
        for override in self._by_key.values():
            if override.id == override_id:
                return override
        return None

    def remove(self, override_id: str) -> ThresholdOverride | None:
        override = self.find(override_id)
        if override is not None:
            del self._by_key[(override.biomarker_type, override.set_by)]
        return override

    def overrides_for(self, biomarker_type: BiomarkerType) -> OverrideSet:
        return OverrideSet(
            provider=self.get(biomarker_type, ThresholdSource.PROVIDER),
            patient=self.get(biomarker_type, ThresholdSource.PATIENT),
        )

    def resolve(
        self,
        biomarker_type: BiomarkerType,
        policy: WarningPolicy = WarningPolicy.ABSENT,
    ) -> ResolvedThreshold:
        return resolve(biomarker_type, self.overrides_for(biomarker_type), policy=policy)

    def all(self) -> list[ThresholdOverride]:
        return list(self._by_key.values())

    def __len__(self) -> int:
        return len(self._by_key)


class PatientOverrideEditor:
    """Patient-side mutations over an ``OverrideBook``.

    Only the patient tier is writable. Provider overrides are read-only to
    the patient, so no provider operation is exposed and provider ids are
    refused.
    """

    def __init__(self, book: OverrideBook) -> None:
        self._book = book

    def set_override(
        self,
        biomarker_type: Any,
        bounds: ThresholdBounds | dict[str, Any],
        *,
        override_id: str | None = None,
    ) -> ThresholdOverride:
        """Create or replace the single patient override for ``biomarker_type``."""
        key = parse_type(biomarker_type)
        if key is None:
            raise ThresholdValidationError(f"Unknown biomarker type: {biomarker_type!r}")
        validated = coerce_bounds(bounds)

        existing = self._book.get(key, ThresholdSource.PATIENT)
        new_id = override_id or (existing.id if existing else str(uuid.uuid4()))
        override = ThresholdOverride(
            id=new_id,
            biomarker_type=key,
            set_by=ThresholdSource.PATIENT,
            bounds=validated,
        )
        self._book.put(override)
        logger.info("Patient threshold set for %s (override %s)", key.value, new_id)
        return override

    def delete_override(self, override_id: str) -> ThresholdOverride:
        """Remove a patient override so resolution falls back one tier."""
        override = self._book.find(override_id)
        if override is None:
            raise ThresholdError(f"No threshold override with id {override_id!r}")
        if override.set_by is not ThresholdSource.PATIENT:
            raise ThresholdPermissionError("Provider-set thresholds cannot be edited by the patient")
        self._book.remove(override_id)
        logger.info("Patient threshold %s removed for %s", override_id, override.biomarker_type.value)
        return override
