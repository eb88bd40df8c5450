# backend/app/models/user.py
"""
User model for the coaching portal.

Profiles are owned by the identity side of the portal; this backend reads
them to authorize actions and to address notifications.

Classes:
    User: Portal account with a single role
    ParentStudentLink: Parent to student relationship
"""

import logging

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    String,
    UniqueConstraint,
)
from sqlalchemy.sql import func
import ulid

from ..core.enums import RoleName
from ..database import Base

logger = logging.getLogger(__name__)

_ROLE_VALUES = ", ".join(f"'{role.value}'" for role in RoleName)


class User(Base):
    """
    Portal account.

    Attributes:
        id: ULID primary key
        email: Unique email address
        display_name: Name shown to other participants
        role: One of admin, coach, ta, student, parent
        timezone: IANA timezone used when rendering times for this user
        notification_preferences: Free-form preference blob (JSON)
        is_active: Whether the account may authenticate
    """

    __tablename__ = "users"
    __table_args__ = (CheckConstraint(f"role IN ({_ROLE_VALUES})", name="check_user_role"),)

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    email = Column(String, unique=True, index=True, nullable=False)
    display_name = Column(String(120), nullable=True)
    role = Column(String(20), nullable=False, index=True)
    timezone = Column(String(64), nullable=True)
    notification_preferences = Column(JSON, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    @property
    def role_name(self) -> RoleName:
        return RoleName(self.role)

    @property
    def is_admin(self) -> bool:
        return self.role == RoleName.ADMIN.value

    @property
    def name_or_email(self) -> str:
        return self.display_name or self.email

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.email} role={self.role}>"


class ParentStudentLink(Base):
    """A parent account linked to a student account."""

    __tablename__ = "parent_student_links"
    __table_args__ = (
        UniqueConstraint("parent_id", "student_id", name="uq_parent_student_links_pair"),
    )

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    parent_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    student_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<ParentStudentLink parent={self.parent_id} student={self.student_id}>"
