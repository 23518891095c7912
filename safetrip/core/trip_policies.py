"""Trip, alert and safe zone policy constants."""

from __future__ import annotations

# Periodic check-in interval assigned to new trips (minutes)
DEFAULT_CHECKIN_INTERVAL_MIN = 30

# Reminder lead time before the trip deadline (minutes)
DEFAULT_REMINDER_MINUTES = 1
MIN_REMINDER_MINUTES = 1
MAX_REMINDER_MINUTES = 60

# Planned trip duration bounds (minutes): 1 min to 24 h
MIN_TRIP_DURATION_MIN = 1
MAX_TRIP_DURATION_MIN = 1440

# Community helpers are searched within this radius of the alert (meters)
COMMUNITY_HELP_RADIUS_M = 500

# Safe zone radius bounds (meters)
MIN_SAFE_ZONE_RADIUS_M = 50
MAX_SAFE_ZONE_RADIUS_M = 5000
DEFAULT_SAFE_ZONE_RADIUS_M = 100
