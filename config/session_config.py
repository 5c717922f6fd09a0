# config/session_config.py
"""
Session timeout constants shared by the server checkpoint and the client core.
All durations are in milliseconds unless the name says otherwise.
"""

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS

# Idle timeout: no pointer/keyboard/scroll/touch activity
IDLE_TIMEOUT_MS = {
    "admin": 15 * MINUTE_MS,
    "student": 30 * MINUTE_MS,
}

# Absolute timeout: max session length regardless of activity (None = no cap)
ABSOLUTE_TIMEOUT_MS = {
    "admin": 6 * HOUR_MS,
    "student": None,
}

# Persistent client storage keys
STORAGE_KEYS = {
    "LAST_ACTIVE_AT": "session_last_active_at",
    "SESSION_START_AT": "session_start_at",
    "USER_ROLE": "session_user_role",
}

# Cookie mirror read by the server checkpoint
COOKIE_LAST_ACTIVE_AT = "session_last_active_at"
COOKIE_SESSION_START_AT = "session_start_at"
COOKIE_MAX_AGE_SECONDS = 24 * 60 * 60
COOKIE_SAMESITE = "Lax"

ACTIVITY_EVENTS = (
    "mousemove",
    "keydown",
    "click",
    "scroll",
    "touchstart",
)

ACTIVITY_THROTTLE_MS = 1000
TIMEOUT_CHECK_INTERVAL_SECONDS = 10
EXAM_POLL_INTERVAL_SECONDS = 30
COUNTDOWN_INTERVAL_SECONDS = 1

# Banner turns urgent below this many seconds (display only)
EXAM_URGENT_SECONDS = 5 * 60

# Navigation surface
LOGIN_PATH = "/login"
EXAM_ROUTE_PREFIX = "/exam/"
LEGACY_EXAM_ROUTE_PREFIX = "/student/exam"
EXAM_PREPARE_PREFIX = "/exam/prepare/"

# Admin 2FA
ADMIN_2FA_COOKIE = "admin_2fa_verified"
ADMIN_2FA_EXPIRATION_SECONDS = 6 * 60 * 60
OTP_EXPIRATION_MINUTES = 5
OTP_LENGTH = 6
OTP_CLEANUP_INTERVAL_MINUTES = 30
