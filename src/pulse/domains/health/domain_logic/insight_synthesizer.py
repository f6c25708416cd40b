"""Insight synthesis: merge backend recommendations with locally derived ones.

Derived recommendations come from two sources:

* active goals not yet completed today, one entry each, worded by cadence;
* the current biomarker snapshot, one entry per type, worded by status.

Backend entries are categorized by an ordered rule list and merged after the
derived entries. Biomarker entries are deduplicated by normalized type so at
most one entry per type survives, whatever path produced it.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable

from pulse.domains.health.domain_logic.biomarker_models import (
    BIOMARKER_ORDER,
    DISPLAY_LABELS,
    STATUS_SEVERITY,
    BiomarkerType,
    BiomarkerValue,
    EffectiveThreshold,
    Goal,
    GoalCompletion,
    GoalFrequency,
    InsightView,
    Recommendation,
    RecommendationCategory,
    normalize_type,
)
from pulse.domains.health.domain_logic.classifier import classify_with_threshold
from pulse.domains.health.domain_logic.recommendation_templates import (
    TemplateBank,
    default_templates,
    format_number,
)
from pulse.domains.health.domain_logic.reference_ranges import range_for

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_WINDOW_HOURS = 24


# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------

def completed_today(completions: list[GoalCompletion], today: date) -> set[str]:
    """Goal texts with a ``completed`` record dated today."""
    stamp = today.isoformat()
    return {
        c.goal_text
        for c in completions
        if c.completion_date[:10] == stamp and c.status.lower() == "completed"
    }


def goals_due(goals: list[Goal], completions: list[GoalCompletion], today: date) -> list[Goal]:
    done = completed_today(completions, today)
    return [g for g in goals if g.active and g.text not in done]


def build_goal_recommendation(goal: Goal, templates: TemplateBank | None = None) -> Recommendation:
    templates = templates or default_templates()
    frequency = (goal.frequency or GoalFrequency.DAILY.value).lower()
    return Recommendation(
        id=f"goal-{goal.text}",
        title=templates.goal_title.format(goal=goal.text),
        description=templates.goal_description(frequency),
        category=RecommendationCategory.GOAL,
        is_derived=True,
        goal=goal.text,
        frequency=frequency,
    )


# ---------------------------------------------------------------------------
# Biomarkers
# ---------------------------------------------------------------------------

def _placeholders(
    value: BiomarkerValue,
    effective: EffectiveThreshold | None,
) -> dict[str, str]:
    ref = range_for(value.biomarker_type)
    optimal = ref.optimal if ref else (None, None)
    normal = ref.normal if ref else (None, None)
    critical_low = effective.critical_low if effective else (ref.critical_low if ref else None)
    critical_high = effective.critical_high if effective else (ref.critical_high if ref else None)
    return {
        "label": DISPLAY_LABELS.get(value.biomarker_type, value.biomarker_type.value),
        "name": value.biomarker_type.value.replace("_", " "),
        "value": format_number(value.value),
        "unit": f" {value.unit}" if value.unit else "",
        "optimal_low": format_number(optimal[0]),
        "optimal_high": format_number(optimal[1]),
        "normal_low": format_number(normal[0]),
        "normal_high": format_number(normal[1]),
        "critical_low": format_number(critical_low),
        "critical_high": format_number(critical_high),
    }


def build_biomarker_recommendation(
    value: BiomarkerValue,
    effective: EffectiveThreshold | None = None,
    templates: TemplateBank | None = None,
) -> Recommendation:
    """Classify one current value and word it from the template bank."""
    templates = templates or default_templates()
    status = classify_with_threshold(value.biomarker_type, value.value, effective)
    fields = _placeholders(value, effective)
    return Recommendation(
        id=f"bm-{value.biomarker_type.value}-{fields['value']}",
        title=templates.biomarker_title(status).format_map(fields),
        description=templates.biomarker_description(status, value.biomarker_type).format_map(fields),
        category=RecommendationCategory.BIOMARKER,
        is_derived=True,
        biomarker_type=value.biomarker_type.value,
        status=status,
        severity=STATUS_SEVERITY[status],
    )


def select_current_values(
    values: list[BiomarkerValue],
    now: datetime | None = None,
    window_hours: float = DEFAULT_SNAPSHOT_WINDOW_HOURS,
) -> list[BiomarkerValue]:
    """Pick one current value per biomarker type.

    The most recent value inside the trailing window wins. When the window
    holds nothing for a type, the most recent value of that type overall is
    used; undated values only take part in this fallback, and among undated
    values the first one seen is kept.
    """
    now = now or datetime.now(timezone.utc)
    window_start = now - timedelta(hours=window_hours)

    by_type: dict[BiomarkerType, list[BiomarkerValue]] = {}
    for v in values:
        by_type.setdefault(v.biomarker_type, []).append(v)

    selected: list[BiomarkerValue] = []
    for biomarker_type in BIOMARKER_ORDER:
        candidates = by_type.get(biomarker_type)
        if not candidates:
            continue
        dated = [v for v in candidates if v.recorded_at is not None]
        recent = [v for v in dated if window_start <= v.recorded_at <= now]
        if recent:
            selected.append(max(recent, key=lambda v: v.recorded_at))
        elif dated:
            selected.append(max(dated, key=lambda v: v.recorded_at))
        else:
            selected.append(candidates[0])
    return selected


# ---------------------------------------------------------------------------
# Backend entries
# ---------------------------------------------------------------------------

def _hint(raw: dict[str, Any]) -> str:
    for key in ("type", "category", "recommendation_type", "source"):
        if raw.get(key):
            return str(raw[key]).lower()
    return ""


CategoryRule = Callable[[dict[str, Any]], bool]

# First match wins.
CATEGORY_RULES: list[tuple[RecommendationCategory, CategoryRule]] = [
    (
        RecommendationCategory.BIOMARKER,
        lambda raw: bool(raw.get("biomarker") or raw.get("biomarker_type")) or "biomarker" in _hint(raw),
    ),
    (
        RecommendationCategory.GOAL,
        lambda raw: bool(raw.get("goal") or raw.get("goal_id")) or "goal" in _hint(raw),
    ),
]


def categorize_recommendation(raw: dict[str, Any]) -> RecommendationCategory:
    for category, rule in CATEGORY_RULES:
        if rule(raw):
            return category
    return RecommendationCategory.OTHER


def _backend_biomarker_type(raw: dict[str, Any]) -> str | None:
    candidate = raw.get("biomarker_type") or raw.get("biomarker")
    if isinstance(candidate, dict):
        candidate = candidate.get("type") or candidate.get("name") or candidate.get("biomarker_type")
    normalized = normalize_type(candidate)
    return normalized or None


def _content_id(category: RecommendationCategory, title: str, description: str) -> str:
    digest = hashlib.sha1(f"{category.value}\n{title}\n{description}".encode("utf-8")).hexdigest()
    return f"local-{digest[:12]}"


def recommendation_from_backend(raw: dict[str, Any]) -> Recommendation:
    """Convert one normalized backend entry.

    Entries without a backend id get a stable content-derived id so they can
    still be addressed in the view; they are never sent back to the backend.
    """
    category = categorize_recommendation(raw)
    rec_id = raw.get("id", raw.get("recommendation_id"))
    backend_id = str(rec_id) if rec_id not in (None, "") else None
    title = str(raw.get("title") or raw.get("recommendation_title") or "Recommendation")
    description = str(raw.get("description") or raw.get("content") or raw.get("recommendation_text") or "")
    goal = raw.get("goal")
    return Recommendation(
        id=backend_id or _content_id(category, title, description),
        title=title,
        description=description,
        category=category,
        is_derived=False,
        biomarker_type=_backend_biomarker_type(raw) if category is RecommendationCategory.BIOMARKER else None,
        goal=str(goal) if isinstance(goal, str) else None,
        frequency=raw.get("frequency"),
        created_at=raw.get("created_at"),
        raw=raw,
        backend_id=backend_id,
    )


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------

def _dedupe_by_id(entries: list[Recommendation]) -> list[Recommendation]:
    seen: set[str] = set()
    kept: list[Recommendation] = []
    for rec in entries:
        if rec.id and rec.id in seen:
            continue
        seen.add(rec.id)
        kept.append(rec)
    return kept


def _dedupe_by_type(entries: list[Recommendation]) -> list[Recommendation]:
    seen: set[str] = set()
    kept: list[Recommendation] = []
    for rec in entries:
        key = normalize_type(rec.biomarker_type)
        if key:
            if key in seen:
                logger.debug("Dropping duplicate biomarker entry %s for %s", rec.id, key)
                continue
            seen.add(key)
        kept.append(rec)
    return kept


def _unique_local_ids(entries: list[Recommendation]) -> list[Recommendation]:
    # Identical id-less entries would otherwise share one content id.
    counts: dict[str, int] = {}
    for rec in entries:
        if rec.backend_id is not None:
            continue
        counts[rec.id] = counts.get(rec.id, 0) + 1
        if counts[rec.id] > 1:
            rec.id = f"{rec.id}-{counts[rec.id]}"
    return entries


def merge(
    derived_goals: list[Recommendation],
    derived_biomarkers: list[Recommendation],
    backend: list[Recommendation],
) -> InsightView:
    """Merge derived entries ahead of backend entries, per category."""
    backend_goal = [r for r in backend if r.category is RecommendationCategory.GOAL]
    backend_bm = [r for r in backend if r.category is RecommendationCategory.BIOMARKER]
    other = [r for r in backend if r.category is RecommendationCategory.OTHER]
    return InsightView(
        goal=_dedupe_by_id([*derived_goals, *backend_goal]),
        biomarker=_dedupe_by_type([*derived_biomarkers, *backend_bm]),
        other=other,
    )


def synthesize(
    *,
    goals: list[Goal],
    completions: list[GoalCompletion],
    snapshot: list[BiomarkerValue] | None,
    backend: list[dict[str, Any]],
    thresholds: dict[BiomarkerType, EffectiveThreshold] | None = None,
    today: date | None = None,
    now: datetime | None = None,
    window_hours: float = DEFAULT_SNAPSHOT_WINDOW_HOURS,
    templates: TemplateBank | None = None,
) -> InsightView:
    """Build the merged insight view.

    Args:
        goals: Normalized profile goals.
        completions: Goal completion records.
        snapshot: Dashboard values, or None when the snapshot is unavailable
            (biomarker entries are then omitted).
        backend: Normalized backend recommendation dicts.
        thresholds: Effective threshold per type; reference defaults otherwise.
        today: The local calendar day used for completions.
        now: Reference instant for the snapshot window.
        window_hours: Length of the snapshot window.
        templates: Template bank; the packaged one when omitted.
    """
    now = now or datetime.now(timezone.utc)
    today = today or now.date()
    templates = templates or default_templates()
    thresholds = thresholds or {}

    derived_goals = [build_goal_recommendation(g, templates) for g in goals_due(goals, completions, today)]

    derived_bm: list[Recommendation] = []
    if snapshot is not None:
        for value in select_current_values(snapshot, now, window_hours):
            derived_bm.append(
                build_biomarker_recommendation(value, thresholds.get(value.biomarker_type), templates)
            )

    view = merge(derived_goals, derived_bm, _unique_local_ids([recommendation_from_backend(r) for r in backend]))
    logger.debug(
        "Synthesized %d goal, %d biomarker, %d other recommendations",
        len(view.goal), len(view.biomarker), len(view.other),
    )
    return view
