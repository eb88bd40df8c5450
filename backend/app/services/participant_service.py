# backend/app/services/participant_service.py
"""
Participant resolution for private sessions.

Builds read-only projections of everyone attached to a session (coach,
student, linked parents, optional assistant) with one relationship query
and one batched profile query.
"""

from dataclasses import dataclass
import logging
from typing import Any, Dict, Optional, Protocol, Tuple

from sqlalchemy.orm import Session

from ..core.enums import RoleName
from ..core.exceptions import NotFoundException
from ..models.user import User
from ..repositories.user_repository import UserRepository
from .base import BaseService

logger = logging.getLogger(__name__)


class SessionParties(Protocol):
    coach_id: str
    student_id: str
    assistant_id: Optional[str]


@dataclass(frozen=True)
class Participant:
    """Profile projection used for addressing and rendering notifications."""

    id: str
    display_name: str
    email: Optional[str]
    timezone: Optional[str]
    role: RoleName
    preferences: Any = None

    @classmethod
    def from_user(cls, user: User) -> "Participant":
        return cls(
            id=user.id,
            display_name=user.name_or_email,
            email=user.email,
            timezone=user.timezone,
            role=user.role_name,
            preferences=user.notification_preferences,
        )


@dataclass(frozen=True)
class SessionParticipants:
    coach: Participant
    student: Participant
    parents: Tuple[Participant, ...] = ()
    assistant: Optional[Participant] = None


class ParticipantService(BaseService):
    """Resolves the people attached to a session."""

    def __init__(self, db: Session, user_repository: Optional[UserRepository] = None):
        super().__init__(db)
        self.user_repository = user_repository or UserRepository(db)

    @BaseService.measure_operation("load_participants")
    def load_for_session(self, session: SessionParties) -> SessionParticipants:
        """
        Resolve coach, student, linked parents and assistant for ``session``.

        Raises:
            NotFoundException: If the coach or student profile is missing
        """
        parent_ids = self.user_repository.get_parent_ids_for_student(session.student_id)
        wanted = [session.coach_id, session.student_id, *parent_ids]
        if session.assistant_id:
            wanted.append(session.assistant_id)

        by_id: Dict[str, User] = {
            user.id: user for user in self.user_repository.get_many_by_ids(wanted)
        }

        coach = by_id.get(session.coach_id)
        if coach is None:
            raise NotFoundException(
                "Coach profile not found", details={"user_id": session.coach_id}
            )
        student = by_id.get(session.student_id)
        if student is None:
            raise NotFoundException(
                "Student profile not found", details={"user_id": session.student_id}
            )

        parents = tuple(
            Participant.from_user(by_id[parent_id])
            for parent_id in parent_ids
            if parent_id in by_id and by_id[parent_id].role == RoleName.PARENT.value
        )
        assistant = by_id.get(session.assistant_id) if session.assistant_id else None
        if session.assistant_id and assistant is None:
            self.logger.warning(
                "Assistant %s for coach %s has no profile; skipping",
                session.assistant_id,
                session.coach_id,
            )

        return SessionParticipants(
            coach=Participant.from_user(coach),
            student=Participant.from_user(student),
            parents=parents,
            assistant=Participant.from_user(assistant) if assistant else None,
        )
