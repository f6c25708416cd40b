"""Tests for InsightFeed loading, stale-load handling and mutations."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from pulse.domains.health.connectors.memory_backend import InMemoryPulseBackend
from pulse.domains.health.domain_logic.biomarker_models import BiomarkerStatus
from pulse.domains.health.domain_logic.insight_feed import (
    FeedbackValidationError,
    InsightFeed,
    InsightLoadError,
    MutationError,
    build_feedback,
)
from pulse.domains.health.domain_logic.threshold_manager import ThresholdManager

NOW = datetime(2024, 1, 12, 15, 0, tzinfo=timezone.utc)


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _feed(backend, **kwargs):
    return InsightFeed(backend, clock=lambda: NOW, **kwargs)


class _GatedBackend(InMemoryPulseBackend):
    """Holds the first recommendations read until ``release`` is set."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.release = asyncio.Event()
        self._first = True

    async def get_active_recommendations(self):
        if self._first:
            self._first = False
            await self.release.wait()
            return [{"id": "stale-1", "title": "Stale"}]
        return await super().get_active_recommendations()


class TestLoad:
    def test_sample_view(self, memory_backend):
        view = _run(_feed(memory_backend).load())
        # 3 derived goals + backend goal rec-102
        assert [r.id for r in view.goal][-1] == "rec-102"
        assert len(view.goal) == 4
        # One derived entry per type; backend systolic rec-101 is a duplicate.
        assert len(view.biomarker) == 6
        assert all(r.is_derived for r in view.biomarker)
        assert [r.id for r in view.other] == ["rec-103"]

    def test_sources_fetched(self, memory_backend):
        _run(_feed(memory_backend).load())
        assert set(memory_backend.calls) == {
            "get_active_recommendations",
            "get_profile",
            "get_goal_completions",
            "get_biomarker_dashboard",
        }

    def test_completed_goal_not_derived(self):
        backend = InMemoryPulseBackend(
            completions=[{"completion_date": "2024-01-12", "goal_text": "Walk 30 minutes", "status": "completed"}],
            now=NOW,
        )
        view = _run(_feed(backend).load())
        assert "goal-Walk 30 minutes" not in [r.id for r in view.goal]

    def test_required_source_failure_clears_view(self, memory_backend):
        feed = _feed(memory_backend)
        _run(feed.load())
        memory_backend.failures.add("get_profile")
        with pytest.raises(InsightLoadError, match="Failed to load recommendations"):
            _run(feed.load())
        assert len(feed.view) == 0
        assert feed.last_error == "Failed to load recommendations"

    def test_snapshot_failure_omits_biomarkers(self):
        backend = InMemoryPulseBackend(failures={"get_biomarker_dashboard"}, now=NOW)
        feed = _feed(backend)
        view = _run(feed.load())
        assert feed.snapshot_available is False
        # Only the backend biomarker entry remains.
        assert [r.id for r in view.biomarker] == ["rec-101"]
        assert len(view.goal) == 4

    def test_empty_backend(self, empty_backend):
        view = _run(_feed(empty_backend).load())
        assert len(view) == 0

    def test_stale_load_discarded(self):
        backend = _GatedBackend(now=NOW)
        feed = _feed(backend)

        async def scenario():
            first = asyncio.ensure_future(feed.load())
            await asyncio.sleep(0)
            second = await feed.load()
            backend.release.set()
            stale = await first
            return second, stale

        second, stale = _run(scenario())
        assert feed.generation == 2
        ids = [r.id for r in feed.view.all()]
        assert "stale-1" not in ids
        assert "rec-103" in ids
        assert stale is feed.view
        assert second is feed.view

    def test_personal_thresholds_used_once_loaded(self):
        backend = InMemoryPulseBackend(
            dashboard={"glucose": {"value": 150, "recorded_at": "2024-01-12T14:00:00Z"}},
            thresholds=[],
            now=NOW,
        )
        manager = ThresholdManager(backend)
        feed = _feed(backend, threshold_manager=manager)

        before = _run(feed.load())
        assert before.biomarker[0].status is BiomarkerStatus.HIGH

        _run(manager.load())
        _run(manager.set_override("glucose", {"critical_high": 140}))
        after = _run(feed.load())
        assert after.biomarker[0].status is BiomarkerStatus.CRITICAL_HIGH

    def test_patient_edit_does_not_outrank_provider(self):
        backend = InMemoryPulseBackend(
            dashboard={"glucose": {"value": 150, "recorded_at": "2024-01-12T14:00:00Z"}},
            now=NOW,
        )
        manager = ThresholdManager(backend)
        _run(manager.load())
        _run(manager.set_override("glucose", {"critical_high": 140}))
        view = _run(_feed(backend, threshold_manager=manager).load())
        assert view.biomarker[0].status is BiomarkerStatus.HIGH

    def test_provider_critical_applies(self):
        backend = InMemoryPulseBackend(
            dashboard={"glucose": {"value": 185, "recorded_at": "2024-01-12T14:00:00Z"}},
            now=NOW,
        )
        manager = ThresholdManager(backend)
        _run(manager.load())
        view = _run(_feed(backend, threshold_manager=manager).load())
        assert view.biomarker[0].status is BiomarkerStatus.CRITICAL_HIGH
        assert view.biomarker[0].title.startswith("⚠️")


class TestDismiss:
    def test_backend_entry_removed_after_confirmation(self, memory_backend):
        feed = _feed(memory_backend)
        _run(feed.load())
        _run(feed.dismiss("rec-103"))
        assert feed.view.find("rec-103") is None
        assert memory_backend.dismissed == ["rec-103"]

    def test_backend_failure_keeps_entry(self, memory_backend):
        feed = _feed(memory_backend)
        _run(feed.load())
        memory_backend.failures.add("dismiss_recommendation")
        with pytest.raises(MutationError):
            _run(feed.dismiss("rec-103"))
        assert feed.view.find("rec-103") is not None

    def test_derived_entry_is_local_and_survives_reload(self, memory_backend):
        feed = _feed(memory_backend)
        _run(feed.load())
        _run(feed.dismiss("goal-Walk 30 minutes"))
        assert memory_backend.dismissed == []
        assert "dismiss_recommendation" not in memory_backend.calls
        view = _run(feed.load())
        assert view.find("goal-Walk 30 minutes") is None

    def test_unknown_id(self, memory_backend):
        feed = _feed(memory_backend)
        _run(feed.load())
        with pytest.raises(MutationError):
            _run(feed.dismiss("nope"))


class TestFeedback:
    def test_backend_feedback_forwarded(self, memory_backend):
        feed = _feed(memory_backend)
        _run(feed.load())
        result = _run(feed.submit_feedback("rec-103", "helpful", "easy", "  thanks  "))
        assert result["forwarded"] is True
        assert memory_backend.feedback == [
            ("rec-103", {"feedback": "helpful", "difficulty_experienced": "easy", "notes": "thanks"})
        ]

    def test_derived_feedback_kept_locally(self, memory_backend):
        feed = _feed(memory_backend)
        _run(feed.load())
        result = _run(feed.submit_feedback("goal-Strength training", "already_doing"))
        assert result == {
            "recommendation_id": "goal-Strength training",
            "forwarded": False,
            "feedback": "already_doing",
        }
        assert memory_backend.feedback == []
        assert feed.local_feedback("goal-Strength training").feedback == "already_doing"

    def test_feedback_failure(self, memory_backend):
        feed = _feed(memory_backend)
        _run(feed.load())
        memory_backend.failures.add("submit_feedback")
        with pytest.raises(MutationError):
            _run(feed.submit_feedback("rec-103", "helpful"))

    def test_validation(self):
        with pytest.raises(FeedbackValidationError):
            build_feedback("love_it")
        with pytest.raises(FeedbackValidationError):
            build_feedback("helpful", "impossible")
        with pytest.raises(FeedbackValidationError):
            build_feedback("helpful", notes="x" * 501)
        entry = build_feedback("not_applicable", "", "   ")
        assert entry.to_payload() == {"feedback": "not_applicable"}


class TestIdlessBackendEntries:
    def _backend(self):
        return InMemoryPulseBackend(
            recommendations=[
                {"title": "Drink water", "description": "Eight glasses a day"},
                {"title": "Stretch", "description": "Ten minutes after waking"},
            ],
            profile={},
            now=NOW,
        )

    def test_each_entry_gets_its_own_id(self):
        view = _run(_feed(self._backend()).load())
        ids = [r.id for r in view.other]
        assert len(set(ids)) == 2
        assert all(i.startswith("local-") for i in ids)

    def test_dismiss_removes_only_that_entry_locally(self):
        backend = self._backend()
        feed = _feed(backend)
        view = _run(feed.load())
        target = view.other[0]
        _run(feed.dismiss(target.id))
        assert [r.title for r in feed.view.other] == ["Stretch"]
        assert "dismiss_recommendation" not in backend.calls
        # Remembered for the session.
        _run(feed.load())
        assert [r.title for r in feed.view.other] == ["Stretch"]

    def test_feedback_kept_locally(self):
        backend = self._backend()
        feed = _feed(backend)
        view = _run(feed.load())
        result = _run(feed.submit_feedback(view.other[1].id, "helpful"))
        assert result["forwarded"] is False
        assert backend.feedback == []

    def test_empty_id_is_not_addressable(self):
        feed = _feed(self._backend())
        _run(feed.load())
        with pytest.raises(MutationError):
            _run(feed.dismiss(""))


class TestGoalCompletion:
    def test_mark_then_unmark_today(self, memory_backend):
        feed = _feed(memory_backend)
        _run(feed.load())
        result = _run(feed.set_goal_completed("Walk 30 minutes"))
        assert result == {
            "goal": "Walk 30 minutes",
            "frequency": "daily",
            "completed": True,
            "completion_date": "2024-01-12",
        }
        assert memory_backend.completions[0]["goal_frequency"] == "daily"
        assert feed.view.find("goal-Walk 30 minutes") is None

        _run(feed.set_goal_completed("Walk 30 minutes", completed=False))
        assert memory_backend.completions == []
        assert feed.view.find("goal-Walk 30 minutes") is not None

    def test_today_follows_display_timezone(self, memory_backend):
        late = datetime(2024, 1, 13, 2, 0, tzinfo=timezone.utc)
        feed = InsightFeed(memory_backend, clock=lambda: late, tz=ZoneInfo("America/Chicago"))
        _run(feed.load())
        result = _run(feed.set_goal_completed("Strength training"))
        assert result["completion_date"] == "2024-01-12"

    def test_past_date_leaves_today_untouched(self, memory_backend):
        feed = _feed(memory_backend)
        _run(feed.load())
        _run(feed.set_goal_completed("Walk 30 minutes", completion_date="2024-01-10"))
        assert feed.view.find("goal-Walk 30 minutes") is not None

    def test_unknown_goal(self, memory_backend):
        feed = _feed(memory_backend)
        _run(feed.load())
        with pytest.raises(MutationError, match="No goal"):
            _run(feed.set_goal_completed("Run a marathon"))
        assert "mark_goal_complete" not in memory_backend.calls

    def test_bad_date(self, memory_backend):
        feed = _feed(memory_backend)
        _run(feed.load())
        with pytest.raises(MutationError, match="YYYY-MM-DD"):
            _run(feed.set_goal_completed("Walk 30 minutes", completion_date="01/12/2024"))

    def test_backend_failure(self, memory_backend):
        feed = _feed(memory_backend)
        _run(feed.load())
        with pytest.raises(MutationError, match="unmark"):
            _run(feed.set_goal_completed("Walk 30 minutes", completed=False))
        assert feed.view.find("goal-Walk 30 minutes") is not None
