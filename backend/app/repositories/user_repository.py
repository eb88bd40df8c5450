# backend/app/repositories/user_repository.py
"""
User repository.

Profile and parent/student relationship lookups used for authorization
and for assembling notification audiences.
"""

import logging
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.user import ParentStudentLink, User
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[User]):
    """Repository for portal accounts."""

    def __init__(self, db: Session):
        super().__init__(db, User)

    def get_active_by_id(self, user_id: str) -> Optional[User]:
        return self.find_one_by(id=user_id, is_active=True)

    def get_many_by_ids(self, user_ids: Iterable[str]) -> List[User]:
        """Batch lookup in one query; missing ids are simply absent from the result."""
        ids = sorted({user_id for user_id in user_ids if user_id})
        if not ids:
            return []
        return self._execute_query(self._build_query().filter(User.id.in_(ids)))

    def get_parent_ids_for_student(self, student_id: str) -> List[str]:
        try:
            rows = (
                self.db.query(ParentStudentLink.parent_id)
                .filter(ParentStudentLink.student_id == student_id)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading parents for student {student_id}: {str(e)}")
            raise RepositoryException(f"Failed to load parent links: {str(e)}")
        return [row[0] for row in rows]

    def get_student_ids_for_parent(self, parent_id: str) -> List[str]:
        try:
            rows = (
                self.db.query(ParentStudentLink.student_id)
                .filter(ParentStudentLink.parent_id == parent_id)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading students for parent {parent_id}: {str(e)}")
            raise RepositoryException(f"Failed to load parent links: {str(e)}")
        return [row[0] for row in rows]
