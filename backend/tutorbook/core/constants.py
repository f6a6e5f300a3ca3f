"""Application-wide constants for the Tutorbook platform."""

from __future__ import annotations

BRAND_NAME = "Tutorbook"

# Canonical weekday keys, Monday first to match date.weekday()
WEEKDAYS: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

# Recurring series lengths a student may choose
RECURRING_WEEK_OPTIONS: tuple[int, ...] = (1, 2, 4, 8)

# Lesson duration constraints (minutes)
DEFAULT_LESSON_MINUTES = 60
MIN_LESSON_MINUTES = 30
MAX_LESSON_MINUTES = 240

# Viewer timezone fallback
DEFAULT_TIMEZONE = "America/New_York"

# Wire formats
TIME_FORMAT = "%H:%M"
DATE_FORMAT = "%Y-%m-%d"

# User-facing messages
SELECT_DATE_AND_TIME_MESSAGE = "Please select a date and time"
SLOT_UNAVAILABLE_MESSAGE = "This time slot is not available"
SLOT_TAKEN_MESSAGE = "This time slot has already been booked"
AVAILABILITY_LOAD_FAILED_MESSAGE = "Could not load availability"
NETWORK_ERROR_MESSAGE = "Network error, please try again"

MAX_DISPUTE_REASON_LENGTH = 1000
MAX_MEETING_LINK_LENGTH = 500

# Conflicts listed back to the caller when a recurring series collides
MAX_REPORTED_CONFLICTS = 3
