"""Centralized constants for cadence.

Algorithm defaults and session limits live here so every layer
imports from a single source of truth.
"""

# ---------- Time ----------
DEFAULT_TIMEZONE = "UTC"

# ---------- Learning ladders (minutes) ----------
DEFAULT_LEARNING_STEPS = (1, 10, 1440)
DEFAULT_RELEARNING_STEPS = (10, 1440)

# ---------- Intervals (days) ----------
DEFAULT_GRADUATING_INTERVAL = 1
DEFAULT_EASY_INTERVAL = 4
DEFAULT_MAX_INTERVAL = 36500

# ---------- Ease ----------
DEFAULT_STARTING_EASE = 2.5
DEFAULT_MINIMUM_EASE = 1.3
DEFAULT_EASY_BONUS = 1.3
DEFAULT_EASY_EASE_STEP = 0.15

# ---------- Interval modifiers ----------
DEFAULT_HARD_INTERVAL_FACTOR = 1.0
DEFAULT_EASY_INTERVAL_FACTOR = 1.3
DEFAULT_INTERVAL_MODIFIER = 1.0

# ---------- Lapses ----------
DEFAULT_LAPSE_RECOVERY_FACTOR = 0.2
DEFAULT_LAPSE_EASE_PENALTY = 0.2
DEFAULT_LEECH_THRESHOLD = 8

# ---------- Daily limits ----------
DEFAULT_NEW_CARDS_PER_DAY = 20
DEFAULT_MAX_REVIEWS_PER_DAY = 200

# ---------- Session ----------
UNDO_HISTORY_LIMIT = 20
ESTIMATED_SECONDS_PER_CARD = 30
