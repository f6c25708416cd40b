"""Tests for chart series preparation: range filtering, bucketing, domains and projection."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from pulse.domains.health.domain_logic.biomarker_models import BiomarkerType, Reading
from pulse.domains.health.domain_logic.time_series import (
    ChartMode,
    DateRange,
    daily_buckets,
    default_mode,
    filter_by_days,
    last_days_range,
    prepare,
    project,
    y_domain,
)

UTC = timezone.utc


def _reading(biomarker_type, value, ts):
    return Reading(biomarker_type=biomarker_type, value=value, recorded_at=ts)


def _utc(*args):
    return datetime(*args, tzinfo=UTC)


class TestModes:
    def test_cumulative_types_default_to_bars(self):
        assert default_mode("steps") is ChartMode.BAR
        assert default_mode(BiomarkerType.SLEEP) is ChartMode.BAR

    def test_other_types_default_to_lines(self):
        assert default_mode("heart_rate") is ChartMode.LINE
        assert default_mode(None) is ChartMode.LINE

    def test_explicit_mode_wins(self):
        readings = [_reading(BiomarkerType.STEPS, 100, _utc(2024, 1, 10, 9))]
        assert prepare(readings, "line").mode is ChartMode.LINE


class TestBuckets:
    def test_same_day_steps_sum_to_one_bar(self):
        readings = [
            _reading(BiomarkerType.STEPS, 3000, _utc(2024, 1, 10, 8)),
            _reading(BiomarkerType.STEPS, 4000, _utc(2024, 1, 10, 18)),
        ]
        series = prepare(readings, biomarker_type="steps")
        assert series.mode is ChartMode.BAR
        assert len(series.points) == 1
        assert series.points[0].value == 7000
        assert series.points[0].timestamp == _utc(2024, 1, 10)
        assert series.y_domain[0] == 0
        assert series.y_domain[1] == pytest.approx(7700)

    def test_buckets_follow_display_timezone(self):
        plus_five = timezone(timedelta(hours=5))
        # 21:00 UTC on the 10th is already the 11th at UTC+5.
        readings = [
            _reading(BiomarkerType.SLEEP, 3, _utc(2024, 1, 10, 12)),
            _reading(BiomarkerType.SLEEP, 4, _utc(2024, 1, 10, 21)),
        ]
        utc_points = daily_buckets(readings, UTC)
        local_points = daily_buckets(readings, plus_five)
        assert [p.value for p in utc_points] == [7]
        assert [p.value for p in local_points] == [3, 4]
        assert local_points[1].timestamp == datetime(2024, 1, 11, tzinfo=plus_five)

    def test_steps_rounded(self):
        readings = [_reading(BiomarkerType.STEPS, 1000.6, _utc(2024, 1, 10, 8))]
        assert prepare(readings).points[0].value == 1001


class TestDateFilter:
    def test_end_day_is_inclusive(self):
        readings = [
            _reading(BiomarkerType.GLUCOSE, 90, _utc(2024, 1, 12, 23, 59)),
            _reading(BiomarkerType.GLUCOSE, 95, _utc(2024, 1, 13, 0, 1)),
            _reading(BiomarkerType.GLUCOSE, 85, _utc(2024, 1, 9, 23, 0)),
        ]
        kept = filter_by_days(readings, DateRange(date(2024, 1, 10), date(2024, 1, 12)))
        assert [r.value for r in kept] == [90]

    def test_open_sides(self):
        readings = [
            _reading(BiomarkerType.GLUCOSE, 90, _utc(2024, 1, 1, 8)),
            _reading(BiomarkerType.GLUCOSE, 95, _utc(2024, 1, 20, 8)),
        ]
        assert len(filter_by_days(readings, DateRange(start=date(2024, 1, 10)))) == 1
        assert len(filter_by_days(readings, DateRange(end=date(2024, 1, 10)))) == 1
        assert len(filter_by_days(readings, DateRange())) == 2

    def test_undated_readings_dropped(self):
        readings = [_reading(BiomarkerType.GLUCOSE, 90, None)]
        assert filter_by_days(readings, None) == []

    def test_filter_uses_local_day(self):
        minus_five = timezone(timedelta(hours=-5))
        # 02:00 UTC on the 13th is still the 12th at UTC-5.
        readings = [_reading(BiomarkerType.GLUCOSE, 90, _utc(2024, 1, 13, 2))]
        day = DateRange(date(2024, 1, 12), date(2024, 1, 12))
        assert filter_by_days(readings, day, UTC) == []
        assert len(filter_by_days(readings, day, minus_five)) == 1


class TestDomains:
    def test_single_point_line(self):
        readings = [_reading(BiomarkerType.HEART_RATE, 72, _utc(2024, 1, 10, 8))]
        series = prepare(readings)
        assert series.y_domain == (71, 73)
        assert series.y_ticks == [72]
        assert len(series.x_ticks) == 1

    def test_line_padding(self):
        assert y_domain(ChartMode.LINE, [60, 80]) == pytest.approx((59, 81))

    def test_bar_all_zero(self):
        assert y_domain(ChartMode.BAR, [0, 0]) == (0.0, 1.0)

    def test_three_ticks_for_multiple_points(self):
        readings = [
            _reading(BiomarkerType.HEART_RATE, 60, _utc(2024, 1, 10, 8)),
            _reading(BiomarkerType.HEART_RATE, 80, _utc(2024, 1, 11, 8)),
        ]
        series = prepare(readings)
        assert len(series.y_ticks) == 3
        assert series.x_ticks[1] == _utc(2024, 1, 10, 20)

    def test_points_sorted_and_summarized(self):
        readings = [
            _reading(BiomarkerType.HEART_RATE, 80, _utc(2024, 1, 11, 8)),
            _reading(BiomarkerType.HEART_RATE, 60, _utc(2024, 1, 10, 8)),
        ]
        series = prepare(readings)
        assert [p.value for p in series.points] == [60, 80]
        assert series.summary.spread == 20
        assert series.summary.count == 2


class TestEmptyAndProjection:
    def test_no_data(self):
        series = prepare([], biomarker_type="glucose")
        assert not series.has_data
        data = series.to_dict()
        assert data["status"] == "no_data"
        assert data["biomarker_type"] == "glucose"

    def test_projection_within_viewport(self):
        readings = [
            _reading(BiomarkerType.HEART_RATE, 60, _utc(2024, 1, 10, 8)),
            _reading(BiomarkerType.HEART_RATE, 80, _utc(2024, 1, 11, 8)),
        ]
        out = project(prepare(readings))
        xs = [p["x"] for p in out["points"]]
        assert xs[0] == pytest.approx(36)
        assert xs[-1] == pytest.approx(520 - 36)
        assert all(36 <= p["y"] <= 260 - 36 for p in out["points"])
        assert "bar_width" not in out

    def test_bar_width_clamped(self):
        readings = [_reading(BiomarkerType.STEPS, 5000, _utc(2024, 1, 10, 8))]
        out = project(prepare(readings))
        assert out["bar_width"] == 32
        assert out["baseline_y"] == pytest.approx(260 - 36)

    def test_empty_projection(self):
        assert project(prepare([]))["points"] == []


class TestQuickRanges:
    def test_last_seven_days(self):
        r = last_days_range(7, date(2024, 1, 12))
        assert r == DateRange(date(2024, 1, 6), date(2024, 1, 12))

    def test_invalid_days(self):
        with pytest.raises(ValueError):
            last_days_range(0, date(2024, 1, 12))
