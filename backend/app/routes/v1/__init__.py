# backend/app/routes/v1/__init__.py
"""
API v1 Routes

Versioned API endpoints under /api/v1.
"""

from . import availability, health, private_sessions

__all__ = [
    "availability",
    "health",
    "private_sessions",
]
