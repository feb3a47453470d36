"""
Constants used across the league rules engine.
"""

# Run rate (RR) constants
RR_MAX = 2.0  # Upper bound for any computed RR value
RR_MIN_WORKOUT = 1.0  # Workouts must clear the baseline effort
REST_DAY_RR = 1.0

# Age-tiered thresholds, checked top to bottom (age strictly greater than the key)
AGE_TIERS = [
    (75, {"min_steps": 3000, "max_steps": 6000, "base_duration": 30}),
    (65, {"min_steps": 5000, "max_steps": 10000, "base_duration": 30}),
]
DEFAULT_THRESHOLDS = {"min_steps": 10000, "max_steps": 20000, "base_duration": 45}

# Distance (km) equivalent to one baseline unit of effort
RUN_DISTANCE_DIVISOR = 4
CYCLING_DISTANCE_DIVISOR = 10
GOLF_HOLES_DIVISOR = 9

# Review windows (hours)
CAPTAIN_REVIEW_WINDOW_HOURS = 48
AUTO_APPROVE_AFTER_HOURS = 48

# Days after the rejection day on which a rejected entry may still be re-uploaded
REUPLOAD_GRACE_DAYS = 1

# Rejected summary cache lifetime (seconds)
REJECTED_SUMMARY_TTL_SECONDS = 300

# Leaderboard
INDIVIDUAL_LEADERBOARD_LIMIT = 50
POINTS_PER_APPROVED_ENTRY = 1

# Pricing
DEFAULT_TAX_PERCENT = 18
