# backend/app/services/availability_service.py
"""
Availability slot maintenance.

Private sessions copy their schedule out of the slot at request time, so a
slot can be removed freely unless a confirmed session still relies on it.
"""

import logging

from sqlalchemy.orm import Session

from ..core.enums import RoleName
from ..core.exceptions import (
    AuthorizationException,
    ConflictException,
    NotFoundException,
    OwnershipException,
)
from ..models.user import User
from ..repositories.availability_repository import AvailabilityRepository
from ..repositories.private_session_repository import PrivateSessionRepository
from .base import BaseService

logger = logging.getLogger(__name__)


class AvailabilityService(BaseService):
    """Deletes availability slots without orphaning confirmed bookings."""

    def __init__(
        self,
        db: Session,
        repository: AvailabilityRepository | None = None,
        session_repository: PrivateSessionRepository | None = None,
    ):
        super().__init__(db)
        self.repository = repository or AvailabilityRepository(db)
        self.session_repository = session_repository or PrivateSessionRepository(db)

    @BaseService.measure_operation("delete_slot")
    def delete_slot(self, user: User, availability_id: str) -> None:
        """
        Delete a slot owned by ``user`` (or any slot, for administrators).

        Sessions in other statuses keep their copied schedule and lose only
        the slot reference.

        Raises:
            AuthorizationException: Caller is neither coach nor admin
            NotFoundException: Slot does not exist
            OwnershipException: Coach does not own the slot
            ConflictException: A confirmed session references the slot
        """
        role = user.role_name
        if role not in (RoleName.ADMIN, RoleName.COACH):
            raise AuthorizationException(
                f"{role.value} users cannot delete availability", details={"role": role.value}
            )

        slot = self.repository.get_by_id(availability_id)
        if slot is None:
            raise NotFoundException(
                "Availability slot not found", details={"availability_id": availability_id}
            )
        if role is RoleName.COACH and slot.coach_id != user.id:
            raise OwnershipException("Coaches can only delete their own availability")

        with self.transaction():
            detached = self.session_repository.detach_availability(availability_id)
            if self.repository.delete_unless_confirmed(availability_id) == 0:
                if not self.repository.exists(id=availability_id):
                    raise NotFoundException(
                        "Availability slot not found",
                        details={"availability_id": availability_id},
                    )
                raise ConflictException(
                    "availability has a confirmed private session",
                    code="AVAILABILITY_HAS_CONFIRMED_SESSION",
                    details={"availability_id": availability_id},
                )

        self.log_operation(
            "availability_deleted",
            availability_id=availability_id,
            detached_sessions=detached,
            actor_id=user.id,
        )
