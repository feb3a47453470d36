"""
Run rate (RR) calculation.

Converts a logged activity into an effort multiplier in [0, 2.0] using
age-tiered thresholds. Rest days are always worth exactly 1.0.
"""

import logging
from datetime import date
from typing import Optional, Dict

from fitleague.utils.constants import (
    AGE_TIERS,
    DEFAULT_THRESHOLDS,
    RR_MAX,
    RR_MIN_WORKOUT,
    REST_DAY_RR,
    RUN_DISTANCE_DIVISOR,
    CYCLING_DISTANCE_DIVISOR,
    GOLF_HOLES_DIVISOR,
)

logger = logging.getLogger(__name__)

DISTANCE_DIVISORS = {
    "run": RUN_DISTANCE_DIVISOR,
    "cardio": RUN_DISTANCE_DIVISOR,
    "cycling": CYCLING_DISTANCE_DIVISOR,
}


def calculate_age(date_of_birth: Optional[date], today: Optional[date] = None) -> Optional[int]:
    """
    Age in whole years on ``today``.

    Returns:
        Age, or None when the date of birth is unknown
    """
    if date_of_birth is None:
        return None
    today = today or date.today()
    age = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def age_thresholds(age: Optional[int]) -> Dict[str, int]:
    """
    Thresholds for a member's age: ``min_steps``, ``max_steps``, ``base_duration``.

    Unknown age uses the default tier.
    """
    if age is not None:
        for older_than, thresholds in AGE_TIERS:
            if age > older_than:
                return dict(thresholds)
    return dict(DEFAULT_THRESHOLDS)


def _number(value) -> float:
    """Missing or non-positive metrics count as zero."""
    if value is None:
        return 0.0
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    return value if value > 0 else 0.0


def _steps_rr(steps: float, min_steps: int, max_steps: int) -> float:
    if steps < min_steps:
        return 0.0
    capped = min(steps, max_steps)
    return min(1 + (capped - min_steps) / (max_steps - min_steps), RR_MAX)


def calculate_run_rate(
    entry_type: str,
    workout_type: Optional[str] = None,
    duration: Optional[float] = None,
    distance: Optional[float] = None,
    steps: Optional[int] = None,
    holes: Optional[int] = None,
    age: Optional[int] = None,
) -> float:
    """
    Compute the RR value for a logged entry.

    Rules, first match wins:
        - rest: 1.0
        - steps: 0 below the age tier minimum, else scaled 1.0..2.0 up to the maximum
        - golf: holes / 9
        - run, cardio: best of duration / base_duration and distance / 4
        - cycling: best of duration / base_duration and distance / 10
        - anything else with a duration: duration / base_duration
        - no usable signal: 1.0

    The result is always within [0, 2.0]. Callers reject workouts below 1.0.

    Args:
        entry_type: "workout" or "rest"
        workout_type: Activity name (case-insensitive)
        duration: Minutes
        distance: Kilometres
        steps: Step count
        holes: Golf holes played
        age: Member age in years, or None

    Returns:
        RR value
    """
    if (entry_type or "").lower() == "rest":
        return REST_DAY_RR

    thresholds = age_thresholds(age)
    kind = (workout_type or "").strip().lower()

    if kind == "steps" and steps is not None:
        return _steps_rr(_number(steps), thresholds["min_steps"], thresholds["max_steps"])

    if kind == "golf" and holes is not None:
        return min(_number(holes) / GOLF_HOLES_DIVISOR, RR_MAX)

    if kind in DISTANCE_DIVISORS:
        rr_duration = _number(duration) / thresholds["base_duration"]
        rr_distance = _number(distance) / DISTANCE_DIVISORS[kind]
        return min(max(rr_duration, rr_distance), RR_MAX)

    if duration is not None:
        return min(_number(duration) / thresholds["base_duration"], RR_MAX)

    return 1.0


def meets_minimum(entry_type: str, rr_value: float) -> bool:
    """Rest days always qualify. Workouts need at least the baseline effort."""
    return (entry_type or "").lower() == "rest" or rr_value >= RR_MIN_WORKOUT


def preview_run_rate(
    entry_type: str,
    workout_type: Optional[str] = None,
    duration: Optional[float] = None,
    distance: Optional[float] = None,
    steps: Optional[int] = None,
    holes: Optional[int] = None,
    age: Optional[int] = None,
) -> Dict:
    """RR for a prospective entry, without storing anything."""
    rr_value = calculate_run_rate(entry_type, workout_type, duration, distance, steps, holes, age)
    return {
        "rr_value": round(rr_value, 4),
        "meets_minimum": meets_minimum(entry_type, rr_value),
        "min_rr": RR_MIN_WORKOUT,
        "max_rr": RR_MAX,
        "thresholds": age_thresholds(age),
    }
