"""
Unit tests for the run rate calculator.
"""
import pytest
from datetime import date
from fitleague.services import run_rate_service


class TestAgeThresholds:
    """Tests for age tiering."""

    def test_unknown_age_uses_default_tier(self):
        assert run_rate_service.age_thresholds(None) == {
            "min_steps": 10000, "max_steps": 20000, "base_duration": 45
        }

    @pytest.mark.parametrize("age,expected_min", [(30, 10000), (65, 10000), (66, 5000), (75, 5000), (76, 3000)])
    def test_tier_boundaries_are_strictly_greater(self, age, expected_min):
        assert run_rate_service.age_thresholds(age)["min_steps"] == expected_min

    def test_calculate_age_before_birthday(self):
        assert run_rate_service.calculate_age(date(1990, 6, 15), date(2025, 6, 14)) == 34
        assert run_rate_service.calculate_age(date(1990, 6, 15), date(2025, 6, 15)) == 35

    def test_calculate_age_unknown(self):
        assert run_rate_service.calculate_age(None) is None


class TestCalculateRunRate:
    """Tests for the RR formula."""

    def test_rest_is_always_one(self):
        assert run_rate_service.calculate_run_rate("rest", "run", duration=500) == 1.0

    def test_steps_below_minimum_is_zero(self):
        assert run_rate_service.calculate_run_rate("workout", "steps", steps=9999) == 0.0

    def test_steps_at_minimum_is_one(self):
        assert run_rate_service.calculate_run_rate("workout", "steps", steps=10000) == 1.0

    def test_steps_at_maximum_is_two(self):
        assert run_rate_service.calculate_run_rate("workout", "steps", steps=20000) == 2.0

    def test_steps_above_maximum_is_capped(self):
        assert run_rate_service.calculate_run_rate("workout", "steps", steps=50000) == 2.0

    def test_steps_senior_tier(self):
        # 76 years old: 3000..6000
        assert run_rate_service.calculate_run_rate("workout", "steps", steps=4500, age=76) == 1.5

    @pytest.mark.parametrize("holes,expected", [(9, 1.0), (18, 2.0), (27, 2.0)])
    def test_golf(self, holes, expected):
        assert run_rate_service.calculate_run_rate("workout", "golf", holes=holes) == expected

    def test_run_uses_best_signal(self):
        # 45 min -> 1.0, 6 km -> 1.5
        assert run_rate_service.calculate_run_rate("workout", "run", duration=45, distance=6) == 1.5

    def test_run_distance_alone_suffices(self):
        assert run_rate_service.calculate_run_rate("workout", "Run", distance=4) == 1.0

    def test_cycling_distance_divisor(self):
        assert run_rate_service.calculate_run_rate("workout", "cycling", distance=15) == 1.5

    def test_other_workout_with_duration(self):
        assert run_rate_service.calculate_run_rate("workout", "yoga", duration=30, age=70) == 1.0

    def test_no_signal_falls_back_to_one(self):
        assert run_rate_service.calculate_run_rate("workout", "yoga") == 1.0

    @pytest.mark.parametrize("age", [None, 0, 20, 66, 90])
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"workout_type": "steps", "steps": 0},
            {"workout_type": "steps", "steps": 1_000_000},
            {"workout_type": "golf", "holes": 200},
            {"workout_type": "run", "duration": 1000, "distance": 500},
            {"workout_type": "cycling", "distance": -5},
            {"workout_type": "swim", "duration": 0},
        ],
    )
    def test_rr_always_within_bounds(self, age, kwargs):
        rr = run_rate_service.calculate_run_rate("workout", age=age, **kwargs)
        assert 0 <= rr <= 2.0


class TestPreviewRunRate:

    def test_preview_flags_low_effort(self):
        preview = run_rate_service.preview_run_rate("workout", "run", duration=20)
        assert preview["meets_minimum"] is False
        assert preview["thresholds"]["base_duration"] == 45

    def test_preview_rest(self):
        preview = run_rate_service.preview_run_rate("rest")
        assert preview["rr_value"] == 1.0
        assert preview["meets_minimum"] is True
