# backend/app/repositories/availability_repository.py
"""Repository for coach availability windows."""

import logging

from sqlalchemy import delete, exists, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.availability import CoachAvailability
from ..models.private_session import PrivateSession, SessionStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class AvailabilityRepository(BaseRepository[CoachAvailability]):
    """Data access for ``coach_availability``."""

    def __init__(self, db: Session):
        super().__init__(db, CoachAvailability)

    def delete_unless_confirmed(self, availability_id: str) -> int:
        """
        Delete the slot only while no confirmed session references it.

        The check is part of the ``DELETE`` statement itself, so a session
        confirmed by a concurrent request keeps its slot.

        Returns:
            Number of rows deleted (0 or 1)
        """
        confirmed_reference = exists(
            select(PrivateSession.id).where(
                PrivateSession.availability_id == availability_id,
                PrivateSession.status == SessionStatus.CONFIRMED.value,
            )
        )
        stmt = delete(CoachAvailability).where(
            CoachAvailability.id == availability_id,
            ~confirmed_reference,
        )
        try:
            result = self.db.execute(stmt)
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to delete availability {availability_id}: {e}")
            raise RepositoryException(f"Failed to delete availability: {str(e)}")
        return int(result.rowcount or 0)
