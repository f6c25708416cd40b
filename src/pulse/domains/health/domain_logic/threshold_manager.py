"""Backend-synchronized threshold state for one patient.

Overrides come from two reads: ``my thresholds`` (patient and provider rows
visible to the patient) and ``effective thresholds`` (which may report
overrides the first read omits). Resolution happens locally. Patient set and
reset are applied locally only after the backend confirms.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pulse.core.backend.client import BackendError
from pulse.domains.health.connectors import PulseBackend
from pulse.domains.health.connectors.ingestion import normalize_thresholds
from pulse.domains.health.domain_logic.biomarker_models import (
    BIOMARKER_ORDER,
    BiomarkerType,
    EffectiveThreshold,
    ResolvedThreshold,
    ThresholdBounds,
    ThresholdSource,
    parse_type,
)
from pulse.domains.health.domain_logic.threshold_resolver import (
    OverrideBook,
    OverrideSet,
    PatientOverrideEditor,
    ThresholdError,
    ThresholdValidationError,
    WarningPolicy,
    coerce_bounds,
)

logger = logging.getLogger(__name__)


class ThresholdSyncError(ThresholdError):
    """The backend failed to return or accept threshold data."""


class ThresholdManager:
    """Loads overrides from the backend and applies confirmed patient edits."""

    def __init__(self, backend: PulseBackend, *, policy: WarningPolicy = WarningPolicy.ABSENT) -> None:
        self._backend = backend
        self._policy = policy
        self._book = OverrideBook()
        self._editor = PatientOverrideEditor(self._book)
        self.loaded = False

    @property
    def policy(self) -> WarningPolicy:
        return self._policy

    async def load(self) -> list[ResolvedThreshold]:
        """Fetch both threshold reads and rebuild the override book."""
        try:
            mine, effective = await asyncio.gather(
                self._backend.get_my_thresholds(),
                self._backend.get_effective_thresholds(),
            )
        except BackendError as exc:
            logger.warning("Failed to load thresholds: %s", exc)
            raise ThresholdSyncError("Failed to load thresholds") from exc

        book = OverrideBook(normalize_thresholds(mine))
        for override in normalize_thresholds(effective):
            if book.get(override.biomarker_type, override.set_by) is None:
                book.put(override)

        self._book = book
        self._editor = PatientOverrideEditor(book)
        self.loaded = True
        logger.info("Loaded %d threshold overrides", len(book))
        return self.resolve_all()

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, biomarker_type: Any) -> ResolvedThreshold:
        key = self._require_type(biomarker_type)
        return self._book.resolve(key, self._policy)

    def resolve_all(self) -> list[ResolvedThreshold]:
        return [self._book.resolve(t, self._policy) for t in BIOMARKER_ORDER]

    def effective_map(self) -> dict[BiomarkerType, EffectiveThreshold]:
        return {r.threshold.biomarker_type: r.threshold for r in self.resolve_all()}

    def overrides(self, biomarker_type: Any) -> OverrideSet:
        return self._book.overrides_for(self._require_type(biomarker_type))

    # ------------------------------------------------------------------
    # Patient mutations
    # ------------------------------------------------------------------

    async def set_override(
        self,
        biomarker_type: Any,
        bounds: ThresholdBounds | dict[str, Any],
    ) -> ResolvedThreshold:
        """Create or replace the patient override once the backend accepts it."""
        key = self._require_type(biomarker_type)
        validated = coerce_bounds(bounds)
        payload = {"biomarker_type": key.value, **validated.as_dict()}

        try:
            confirmed = await self._backend.set_my_threshold(payload)
        except BackendError as exc:
            raise ThresholdSyncError(f"Failed to save threshold: {exc}") from exc

        confirmed_id = confirmed.get("id") if isinstance(confirmed, dict) else None
        if confirmed_id is None:
            # No id in the confirmation: re-read so a later reset targets the backend's row.
            logger.info("Threshold save for %s returned no id; reloading", key.value)
            await self.load()
            return self.resolve(key)

        self._editor.set_override(key, validated, override_id=str(confirmed_id))
        return self._book.resolve(key, self._policy)

    async def reset_override(self, biomarker_type: Any) -> ResolvedThreshold:
        """Delete the patient override so resolution falls back one tier."""
        key = self._require_type(biomarker_type)
        patient = self._book.get(key, ThresholdSource.PATIENT)
        if patient is None:
            raise ThresholdError(f"No patient threshold is set for {key.value}")

        try:
            await self._backend.delete_my_threshold(patient.id)
        except BackendError as exc:
            raise ThresholdSyncError(f"Failed to reset threshold: {exc}") from exc

        self._editor.delete_override(patient.id)
        return self._book.resolve(key, self._policy)

    @staticmethod
    def _require_type(biomarker_type: Any) -> BiomarkerType:
        key = parse_type(biomarker_type)
        if key is None:
            raise ThresholdValidationError(f"Unknown biomarker type: {biomarker_type!r}")
        return key
