# backend/app/repositories/private_session_repository.py
"""
Private session repository.

All status changes go through :meth:`PrivateSessionRepository.compare_and_set`,
a single ``UPDATE ... WHERE id = :id AND status = :expected``. The caller
reads ``rowcount``: 1 means this request won, 0 means another request
changed the row first. No row locks are taken.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.private_session import PrivateSession, SessionStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class PrivateSessionRepository(BaseRepository[PrivateSession]):
    """Data access for private sessions."""

    def __init__(self, db: Session):
        super().__init__(db, PrivateSession)

    def compare_and_set(
        self,
        session_id: str,
        expected_status: SessionStatus,
        target_status: SessionStatus,
        updates: Dict[str, Any],
        conditions: Optional[Dict[str, Any]] = None,
    ) -> int:
        """
        Conditionally move a session from ``expected_status`` to ``target_status``.

        ``conditions`` adds column equality checks to the ``WHERE`` clause.

        Returns:
            Number of rows changed (0 or 1)
        """
        values = dict(updates)
        values["status"] = target_status.value
        criteria = [
            PrivateSession.id == session_id,
            PrivateSession.status == expected_status.value,
        ]
        for column, value in (conditions or {}).items():
            criteria.append(getattr(PrivateSession, column) == value)
        stmt = (
            update(PrivateSession)
            .where(*criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
        except SQLAlchemyError as e:
            self.logger.error(f"Conditional update failed for private session {session_id}: {e}")
            raise RepositoryException(f"Failed to update private session: {str(e)}")

        matched = int(result.rowcount or 0)
        self.logger.debug(
            "compare_and_set %s %s -> %s matched=%s",
            session_id,
            expected_status.value,
            target_status.value,
            matched,
        )
        return matched

    def list_visible(
        self,
        *,
        coach_id: Optional[str] = None,
        assistant_id: Optional[str] = None,
        student_ids: Optional[Iterable[str]] = None,
        status: Optional[SessionStatus] = None,
        include_all: bool = False,
        limit: int = 200,
    ) -> List[PrivateSession]:
        """
        Sessions visible to a viewer, newest first.

        ``include_all`` is for administrators; otherwise at least one of the
        party filters must match.
        """
        query = self._build_query()
        if not include_all:
            clauses = []
            if coach_id:
                clauses.append(PrivateSession.coach_id == coach_id)
            if assistant_id:
                clauses.append(PrivateSession.assistant_id == assistant_id)
            ids = list(student_ids or [])
            if ids:
                clauses.append(PrivateSession.student_id.in_(ids))
            if not clauses:
                return []
            query = query.filter(or_(*clauses))
        if status is not None:
            query = query.filter(PrivateSession.status == status.value)
        query = query.order_by(
            PrivateSession.requested_date.desc(),
            PrivateSession.requested_start_time.desc(),
        ).limit(limit)
        return self._execute_query(query)

    def detach_availability(self, availability_id: str) -> int:
        """
        Clear the slot reference on sessions that are not confirmed.

        Confirmed sessions keep the reference so the slot delete that
        follows in the same transaction can see them.
        """
        stmt = (
            update(PrivateSession)
            .where(
                PrivateSession.availability_id == availability_id,
                PrivateSession.status != SessionStatus.CONFIRMED.value,
            )
            .values(availability_id=None)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to detach availability {availability_id}: {e}")
            raise RepositoryException(f"Failed to detach availability: {str(e)}")
        return int(result.rowcount or 0)
