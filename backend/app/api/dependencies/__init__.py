# backend/app/api/dependencies/__init__.py
"""
Central export point for all dependencies.

This module re-exports all dependencies from submodules
for convenient access throughout the application.
"""

from .auth import get_current_user
from .database import get_db, get_session_factory
from .services import (
    get_availability_service,
    get_private_session_service,
    get_stripe_service,
)

__all__ = [
    # Auth
    "get_current_user",
    # Database
    "get_db",
    "get_session_factory",
    # Services
    "get_availability_service",
    "get_private_session_service",
    "get_stripe_service",
]
