# backend/app/models/private_session.py
"""
Private session model for the coaching portal.

A private session is a one-off paid booking between one coach and one
student. The row stores its own schedule (copied from the availability
window at request time) plus an optional reschedule proposal, commercial
terms and audit stamps. Rows are never deleted; cancelled and completed
sessions stay for history and payroll.

Status is only written through the transition planner in
``app.domain.private_session_transitions`` and the conditional write in
``PrivateSessionRepository.compare_and_set``.
"""

from enum import Enum
import logging

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    Time,
)
from sqlalchemy.sql import func
import ulid

from ..database import Base

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    """Private session lifecycle statuses."""

    PENDING = "pending"
    COACH_ACCEPTED = "coach_accepted"
    RESCHEDULED_BY_COACH = "rescheduled_by_coach"
    RESCHEDULED_BY_STUDENT = "rescheduled_by_student"
    AWAITING_PAYMENT = "awaiting_payment"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.CANCELLED)


class PaymentMethod(str, Enum):
    """How a private session was paid."""

    CARD = "card"
    ETRANSFER = "etransfer"


_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in SessionStatus)
_PAYMENT_VALUES = ", ".join(f"'{p.value}'" for p in PaymentMethod)


class PrivateSession(Base):
    """Private coaching session request/booking."""

    __tablename__ = "private_sessions"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    # Parties
    coach_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    student_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    assistant_id = Column(String(26), ForeignKey("users.id"), nullable=True)
    availability_id = Column(
        String(26), ForeignKey("coach_availability.id"), nullable=True, index=True
    )

    # Requested schedule (authoritative while no proposal is pending)
    requested_date = Column(Date, nullable=False)
    requested_start_time = Column(Time, nullable=False)
    requested_end_time = Column(Time, nullable=False)
    timezone = Column(String(64), nullable=False)

    # Reschedule proposal
    proposed_date = Column(Date, nullable=True)
    proposed_start_time = Column(Time, nullable=True)
    proposed_end_time = Column(Time, nullable=True)
    proposed_by = Column(String(26), ForeignKey("users.id"), nullable=True)

    # Commercial terms
    price_cad = Column(Numeric(10, 2, asdecimal=False), nullable=True)
    payment_method = Column(String(20), nullable=True)
    zoom_link = Column(String(500), nullable=True)
    stripe_checkout_session_id = Column(String(255), nullable=True)

    status = Column(String(30), nullable=False, default=SessionStatus.PENDING.value, index=True)

    # Notes
    coach_notes = Column(Text, nullable=True)
    student_notes = Column(Text, nullable=True)

    # Audit
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(String(26), ForeignKey("users.id"), nullable=True)
    admin_approved_at = Column(DateTime(timezone=True), nullable=True)
    admin_approved_by = Column(String(26), ForeignKey("users.id"), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="check_private_session_status"),
        CheckConstraint(
            f"payment_method IS NULL OR payment_method IN ({_PAYMENT_VALUES})",
            name="check_private_session_payment_method",
        ),
        CheckConstraint(
            "requested_end_time > requested_start_time",
            name="check_private_session_time_order",
        ),
        CheckConstraint(
            "(proposed_date IS NULL AND proposed_start_time IS NULL "
            "AND proposed_end_time IS NULL AND proposed_by IS NULL) OR "
            "(proposed_date IS NOT NULL AND proposed_start_time IS NOT NULL "
            "AND proposed_end_time IS NOT NULL AND proposed_by IS NOT NULL)",
            name="check_private_session_proposal_complete",
        ),
        CheckConstraint(
            "price_cad IS NULL OR price_cad > 0", name="check_private_session_price_positive"
        ),
        Index("idx_private_sessions_availability_status", "availability_id", "status"),
    )

    @property
    def status_enum(self) -> SessionStatus:
        return SessionStatus(self.status)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<PrivateSession {self.id}: student={self.student_id}, "
            f"coach={self.coach_id}, date={self.requested_date}, "
            f"time={self.requested_start_time}-{self.requested_end_time}, status={self.status}>"
        )
