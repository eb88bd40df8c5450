"""Application-wide constants for the coaching portal backend."""

from __future__ import annotations

BRAND_NAME = "Coaching Portal"

API_TITLE = f"{BRAND_NAME} API"
API_DESCRIPTION = f"Backend API for {BRAND_NAME} private coaching sessions"
API_VERSION = "1.0.0"

# Request field limits
MAX_NOTES_LENGTH = 2000
MAX_ZOOM_LINK_LENGTH = 500

# Preference blob key gating private-session emails
PRIVATE_SESSION_ALERTS = "private_session_alerts"

# Portal paths linked from notification emails
PORTAL_PATHS = {
    "admin": "/portal/admin/private-sessions",
    "coach": "/portal/coach/private-sessions",
    "ta": "/portal/coach/private-sessions",
    "student": "/portal/student/private-sessions",
    "parent": "/portal/parent/private-sessions",
}
PARENT_PREFERENCES_PATH = "/portal/parent/preferences"
DEFAULT_PREFERENCES_PATH = "/portal/preferences"
