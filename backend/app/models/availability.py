# backend/app/models/availability.py
"""
Coach availability model for the coaching portal.

Coaches publish open windows; a student consumes a private window to
request a private session. The session copies the schedule, so the slot
only stays relevant for the deletion guard.

Classes:
    CoachAvailability: A published (date, start, end, timezone) window
"""

import logging

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Time,
)
from sqlalchemy.sql import func
import ulid

from ..database import Base

logger = logging.getLogger(__name__)


class CoachAvailability(Base):
    """Coach-published availability window."""

    __tablename__ = "coach_availability"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    coach_id = Column(String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    slot_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    timezone = Column(String(64), nullable=False)
    is_private = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="check_availability_time_order"),
        Index("idx_coach_availability_coach_date", "coach_id", "slot_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<CoachAvailability {self.id}: coach={self.coach_id}, date={self.slot_date}, "
            f"time={self.start_time}-{self.end_time}, private={self.is_private}>"
        )
