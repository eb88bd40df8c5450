# backend/app/core/enums.py
"""
Core enums for the coaching portal.

Role names are shared by authentication, ownership checks and the
notification fan-out, so they live here rather than on a model.
"""

from enum import Enum


class RoleName(str, Enum):
    """Portal roles stored on ``users.role``."""

    ADMIN = "admin"
    COACH = "coach"
    TA = "ta"
    STUDENT = "student"
    PARENT = "parent"


COACH_SIDE_ROLES = frozenset({RoleName.ADMIN, RoleName.COACH, RoleName.TA})
