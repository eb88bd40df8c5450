# backend/app/schemas/__init__.py
"""
Pydantic schemas for the private session API.
"""

from .private_session import (
    CheckoutResponse,
    PrivateSessionApprove,
    PrivateSessionCreate,
    PrivateSessionListResponse,
    PrivateSessionReject,
    PrivateSessionReschedule,
    PrivateSessionResponse,
)
from .webhook_responses import WebhookAckResponse

__all__ = [
    "CheckoutResponse",
    "PrivateSessionApprove",
    "PrivateSessionCreate",
    "PrivateSessionListResponse",
    "PrivateSessionReject",
    "PrivateSessionReschedule",
    "PrivateSessionResponse",
    "WebhookAckResponse",
]
