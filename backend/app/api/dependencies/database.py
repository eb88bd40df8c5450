# backend/app/api/dependencies/database.py
"""
Database-related dependencies.
"""

from ...database import get_db, get_session_factory

__all__ = ["get_db", "get_session_factory"]
