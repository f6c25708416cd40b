"""Insight feed: loads, merges and mutates the patient's recommendation view.

Sources are fetched concurrently. Every load is stamped with a generation
number, and a load that completes after a newer one has started is
discarded. Mutations on backend entries change local state only after the
backend confirms; derived entries are handled locally.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo
from typing import TYPE_CHECKING, Any, Callable

from pulse.core.backend.client import BackendError
from pulse.domains.health.connectors import PulseBackend
from pulse.domains.health.connectors.ingestion import (
    normalize_completions,
    normalize_dashboard,
    normalize_goals,
    normalize_recommendations,
    normalize_restrictions,
)
from pulse.domains.health.domain_logic.biomarker_models import (
    BiomarkerValue,
    Goal,
    InsightView,
    Recommendation,
)
from pulse.domains.health.domain_logic.insight_synthesizer import (
    DEFAULT_SNAPSHOT_WINDOW_HOURS,
    synthesize,
)
from pulse.domains.health.domain_logic.recommendation_templates import TemplateBank

if TYPE_CHECKING:
    from pulse.domains.health.domain_logic.threshold_manager import ThresholdManager

logger = logging.getLogger(__name__)

FEEDBACK_OPTIONS = (
    "helpful",
    "not_helpful",
    "already_doing",
    "too_difficult",
    "not_applicable",
    "implemented",
)
DIFFICULTY_OPTIONS = ("easy", "moderate", "challenging")
NOTES_MAX_LENGTH = 500


class InsightError(Exception):
    """Base exception for insight feed operations."""


class InsightLoadError(InsightError):
    """A required source (recommendations, profile, completions) failed to load."""


class MutationError(InsightError):
    """A dismiss, feedback or goal completion action could not be applied."""


class FeedbackValidationError(InsightError):
    """Feedback values are outside the accepted vocabulary."""


@dataclass(frozen=True)
class Feedback:
    feedback: str
    difficulty_experienced: str | None = None
    notes: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"feedback": self.feedback}
        if self.difficulty_experienced:
            payload["difficulty_experienced"] = self.difficulty_experienced
        if self.notes:
            payload["notes"] = self.notes
        return payload


def build_feedback(
    feedback: str,
    difficulty: str | None = None,
    notes: str | None = None,
) -> Feedback:
    """Validate feedback fields; blank difficulty and notes are dropped."""
    if feedback not in FEEDBACK_OPTIONS:
        raise FeedbackValidationError(
            f"feedback must be one of {', '.join(FEEDBACK_OPTIONS)}; got {feedback!r}"
        )
    difficulty = difficulty or None
    if difficulty is not None and difficulty not in DIFFICULTY_OPTIONS:
        raise FeedbackValidationError(
            f"difficulty must be one of {', '.join(DIFFICULTY_OPTIONS)}; got {difficulty!r}"
        )
    notes = (notes or "").strip() or None
    if notes is not None and len(notes) > NOTES_MAX_LENGTH:
        raise FeedbackValidationError(f"notes must be at most {NOTES_MAX_LENGTH} characters")
    return Feedback(feedback=feedback, difficulty_experienced=difficulty, notes=notes)


class InsightFeed:
    """Stateful recommendation view for one patient session.

    Usage::

        feed = InsightFeed(backend, tz=ZoneInfo("America/Chicago"))
        view = await feed.load()
        await feed.dismiss("rec-101")
    """

    def __init__(
        self,
        backend: PulseBackend,
        *,
        window_hours: float = DEFAULT_SNAPSHOT_WINDOW_HOURS,
        tz: tzinfo = timezone.utc,
        templates: TemplateBank | None = None,
        threshold_manager: ThresholdManager | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._backend = backend
        self._window_hours = window_hours
        self._tz = tz
        self._templates = templates
        self._thresholds = threshold_manager
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._view = InsightView()
        self._generation = 0
        self._dismissed_local: set[str] = set()
        self._local_feedback: dict[str, Feedback] = {}
        self.snapshot_available = False
        # Health restrictions from the profile, shown alongside the recommendations.
        self.restrictions: list[str] = []
        self._goals: list[Goal] = []
        self.last_error: str | None = None

    @property
    def view(self) -> InsightView:
        return self._view

    @property
    def generation(self) -> int:
        return self._generation

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> InsightView:
        """Fetch every source concurrently and rebuild the view.

        Raises:
            InsightLoadError: When recommendations, profile or completions
                fail. The view is cleared.
        """
        self._generation += 1
        generation = self._generation

        try:
            recs_raw, profile, completions_raw, snapshot = await asyncio.gather(
                self._backend.get_active_recommendations(),
                self._backend.get_profile(),
                self._backend.get_goal_completions(),
                self._fetch_snapshot(),
            )
        except BackendError as exc:
            if generation != self._generation:
                logger.debug("Discarding failed load %d (superseded by %d)", generation, self._generation)
                return self._view
            logger.warning("Failed to load recommendations: %s", exc)
            self._view = InsightView()
            self.last_error = "Failed to load recommendations"
            raise InsightLoadError("Failed to load recommendations") from exc

        if generation != self._generation:
            logger.debug("Discarding stale load %d (superseded by %d)", generation, self._generation)
            return self._view

        now = self._clock()
        thresholds = None
        if self._thresholds is not None and self._thresholds.loaded:
            thresholds = self._thresholds.effective_map()

        goals = normalize_goals(profile)
        view = synthesize(
            goals=goals,
            completions=normalize_completions(completions_raw),
            snapshot=snapshot,
            backend=normalize_recommendations(recs_raw),
            thresholds=thresholds,
            today=now.astimezone(self._tz).date(),
            now=now,
            window_hours=self._window_hours,
            templates=self._templates,
        )
        for rec_id in self._dismissed_local:
            view = view.without(rec_id)

        self._view = view
        self.snapshot_available = snapshot is not None
        self.restrictions = normalize_restrictions(profile)
        self._goals = goals
        self.last_error = None
        logger.info("Loaded %d recommendations (generation %d)", len(view), generation)
        return view

    async def _fetch_snapshot(self) -> list[BiomarkerValue] | None:
        # Optional source: failure omits biomarker entries instead of failing the load.
        try:
            payload = await self._backend.get_biomarker_dashboard()
        except BackendError as exc:
            logger.warning("Biomarker snapshot unavailable, omitting biomarker insights: %s", exc)
            return None
        return normalize_dashboard(payload)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _require(self, recommendation_id: str) -> Recommendation:
        rec = self._view.find(recommendation_id)
        if rec is None:
            raise MutationError(f"No recommendation with id {recommendation_id!r} in the current view")
        return rec

    async def dismiss(self, recommendation_id: str) -> Recommendation:
        """Dismiss an entry.

        Derived entries, and backend entries that came without an id, are
        removed locally and stay dismissed for the rest of the session. Other
        backend entries are removed only after the backend confirms.
        """
        rec = self._require(recommendation_id)
        if rec.backend_id is None:
            self._dismissed_local.add(rec.id)
            self._view = self._view.without(rec.id)
            logger.info("Discarded local recommendation %s", rec.id)
            return rec

        try:
            await self._backend.dismiss_recommendation(rec.backend_id)
        except BackendError as exc:
            raise MutationError(f"Failed to dismiss recommendation: {exc}") from exc
        self._view = self._view.without(rec.id)
        logger.info("Dismissed recommendation %s", rec.id)
        return rec

    async def submit_feedback(
        self,
        recommendation_id: str,
        feedback: str,
        difficulty: str | None = None,
        notes: str | None = None,
    ) -> dict[str, Any]:
        """Record feedback; forwarded to the backend only for entries it knows by id."""
        entry = build_feedback(feedback, difficulty, notes)
        rec = self._require(recommendation_id)
        if rec.backend_id is None:
            self._local_feedback[rec.id] = entry
            return {"recommendation_id": rec.id, "forwarded": False, **entry.to_payload()}

        try:
            await self._backend.submit_feedback(rec.backend_id, entry.to_payload())
        except BackendError as exc:
            raise MutationError(f"Failed to submit feedback: {exc}") from exc
        logger.info("Feedback %r submitted for %s", entry.feedback, rec.id)
        return {"recommendation_id": rec.id, "forwarded": True, **entry.to_payload()}

    def local_feedback(self, recommendation_id: str) -> Feedback | None:
        return self._local_feedback.get(recommendation_id)

    async def set_goal_completed(
        self,
        goal_text: str,
        completed: bool = True,
        completion_date: str | None = None,
    ) -> dict[str, Any]:
        """Mark or unmark a profile goal as done, then reload the view.

        Args:
            goal_text: Text of a goal from the loaded profile.
            completed: False removes the completion record instead.
            completion_date: YYYY-MM-DD; today in the display timezone when omitted.

        Raises:
            MutationError: Unknown goal, malformed date or backend failure.
        """
        text = (goal_text or "").strip()
        goal = next((g for g in self._goals if g.text == text), None)
        if goal is None:
            raise MutationError(f"No goal {goal_text!r} in the loaded profile")
        if completion_date:
            try:
                day = date.fromisoformat(completion_date).isoformat()
            except ValueError as exc:
                raise MutationError(f"completion_date must be YYYY-MM-DD; got {completion_date!r}") from exc
        else:
            day = self._clock().astimezone(self._tz).date().isoformat()

        try:
            if completed:
                await self._backend.mark_goal_complete(goal.text, goal.frequency, day)
            else:
                await self._backend.unmark_goal_complete(goal.text, day)
        except BackendError as exc:
            action = "mark" if completed else "unmark"
            raise MutationError(f"Failed to {action} goal: {exc}") from exc
        logger.info("Goal %r %s for %s", goal.text, "completed" if completed else "reopened", day)

        try:
            await self.load()
        except InsightLoadError as exc:
            logger.warning("Goal updated but the view could not be refreshed: %s", exc)
        return {"goal": goal.text, "frequency": goal.frequency, "completed": completed, "completion_date": day}
