"""Deterministic biomarker classification against a layered threshold model.

Precedence is first-match-wins over ``CLASSIFICATION_RULES``. Ranges may abut
or overlap at their boundaries, so the order of the table is significant:

    1. critical_low   value <= critical_low
    2. critical_high  value >= critical_high
    3. optimal        optimal_low <= value <= optimal_high
    4. normal         normal_low <= value <= normal_high
    5. high           value > optimal_high
    6. low            value < optimal_low
    7. unknown        nothing matched

Classification never raises: missing, non-numeric or non-finite values and
unknown biomarker types resolve to ``unknown``.
"""

from __future__ import annotations

from typing import Any, Callable

from pulse.domains.health.domain_logic.biomarker_models import (
    BiomarkerStatus,
    ClassificationBounds,
    EffectiveThreshold,
    parse_type,
    to_number,
)
from pulse.domains.health.domain_logic.reference_ranges import range_for

Rule = Callable[[float, ClassificationBounds], bool]


def _critical_low(v: float, b: ClassificationBounds) -> bool:
    return b.critical_low is not None and v <= b.critical_low


def _critical_high(v: float, b: ClassificationBounds) -> bool:
    return b.critical_high is not None and v >= b.critical_high


def _optimal(v: float, b: ClassificationBounds) -> bool:
    return (
        b.optimal_low is not None
        and b.optimal_high is not None
        and b.optimal_low <= v <= b.optimal_high
    )


def _normal(v: float, b: ClassificationBounds) -> bool:
    return (
        b.normal_low is not None
        and b.normal_high is not None
        and b.normal_low <= v <= b.normal_high
    )


def _high(v: float, b: ClassificationBounds) -> bool:
    return b.optimal_high is not None and v > b.optimal_high


def _low(v: float, b: ClassificationBounds) -> bool:
    return b.optimal_low is not None and v < b.optimal_low


CLASSIFICATION_RULES: list[tuple[BiomarkerStatus, Rule]] = [
    (BiomarkerStatus.CRITICAL_LOW, _critical_low),
    (BiomarkerStatus.CRITICAL_HIGH, _critical_high),
    (BiomarkerStatus.OPTIMAL, _optimal),
    (BiomarkerStatus.NORMAL, _normal),
    (BiomarkerStatus.HIGH, _high),
    (BiomarkerStatus.LOW, _low),
]


def bounds_for(
    biomarker_type: Any,
    effective: EffectiveThreshold | None = None,
) -> ClassificationBounds | None:
    """Build classification bounds for a type.

    Critical bounds come from the effective threshold (the reference range
    when none is given) and the optimal band from the reference range. The
    normal band is the effective warning band when the threshold defines one,
    with an undefined side left open; otherwise it is the reference normal
    range.

    Returns None when the type has no reference range and no threshold.
    """
    ref = range_for(biomarker_type)
    if ref is None and effective is None:
        return None

    optimal_low, optimal_high = ref.optimal if ref else (None, None)
    normal_low, normal_high = ref.normal if ref else (None, None)

    if effective is None:
        return ClassificationBounds(
            critical_low=ref.critical_low,
            critical_high=ref.critical_high,
            optimal_low=optimal_low,
            optimal_high=optimal_high,
            normal_low=normal_low,
            normal_high=normal_high,
        )

    if effective.has_warning_band:
        normal_low = effective.warning_low if effective.warning_low is not None else float("-inf")
        normal_high = effective.warning_high if effective.warning_high is not None else float("inf")

    return ClassificationBounds(
        critical_low=effective.critical_low,
        critical_high=effective.critical_high,
        optimal_low=optimal_low,
        optimal_high=optimal_high,
        normal_low=normal_low,
        normal_high=normal_high,
    )


def classify(
    biomarker_type: Any,
    value: Any,
    bounds: ClassificationBounds | None = None,
) -> BiomarkerStatus:
    """Classify ``value`` for ``biomarker_type``.

    Args:
        biomarker_type: Biomarker type (enum or loosely formatted name).
        value: The measurement. Numeric strings are accepted.
        bounds: Bounds to evaluate against; defaults to the reference range.

    Returns:
        The first matching status, or ``unknown``.
    """
    number = to_number(value)
    if number is None:
        return BiomarkerStatus.UNKNOWN

    if bounds is None:
        if parse_type(biomarker_type) is None:
            return BiomarkerStatus.UNKNOWN
        bounds = bounds_for(biomarker_type)
        if bounds is None:
            return BiomarkerStatus.UNKNOWN

    for status, rule in CLASSIFICATION_RULES:
        if rule(number, bounds):
            return status
    return BiomarkerStatus.UNKNOWN


def classify_with_threshold(
    biomarker_type: Any,
    value: Any,
    effective: EffectiveThreshold | None,
) -> BiomarkerStatus:
    """Classify against an effective threshold layered over the reference range."""
    bounds = bounds_for(biomarker_type, effective)
    if bounds is None:
        return BiomarkerStatus.UNKNOWN
    return classify(biomarker_type, value, bounds)
