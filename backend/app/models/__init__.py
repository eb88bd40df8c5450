"""
Database models for the coaching portal backend.

This module exports all SQLAlchemy models used in the application:
- Users and parent/student links (identity collaborator tables)
- Coach availability windows
- Private sessions
- Webhook event ledger
"""

from .availability import CoachAvailability
from .private_session import PaymentMethod, PrivateSession, SessionStatus
from .user import ParentStudentLink, User
from .webhook_event import WebhookEvent

__all__ = [
    "CoachAvailability",
    "ParentStudentLink",
    "PaymentMethod",
    "PrivateSession",
    "SessionStatus",
    "User",
    "WebhookEvent",
]
