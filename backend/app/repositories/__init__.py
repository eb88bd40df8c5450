# backend/app/repositories/__init__.py
"""
Repository Pattern Implementation for the coaching portal.

This package provides the repository layer for data access,
separating business logic from database queries.

Key Components:
- BaseRepository: Foundation for all repositories with generic CRUD operations
- IRepository: Interface defining required methods for all repositories
- PrivateSessionRepository: Conditional status writes and visibility queries
- UserRepository: Profiles and parent/student links
- AvailabilityRepository: Coach availability windows
- WebhookEventRepository: Inbound webhook ledger

Usage:
    from app.repositories import PrivateSessionRepository

    repo = PrivateSessionRepository(db)
    matched = repo.compare_and_set(session_id, expected, target, updates)
"""

from .availability_repository import AvailabilityRepository
from .base_repository import BaseRepository, IRepository
from .private_session_repository import PrivateSessionRepository
from .user_repository import UserRepository
from .webhook_event_repository import WebhookEventRepository

__all__ = [
    "AvailabilityRepository",
    "BaseRepository",
    "IRepository",
    "PrivateSessionRepository",
    "UserRepository",
    "WebhookEventRepository",
]
