# backend/app/services/private_session_service.py
"""
Private session workflow service.

Every mutating operation follows the same path:

1. load the row and map it onto a status variant
2. ask the transition planner for a plan (role, ownership, payload and
   source-status checks happen there)
3. apply the plan with one conditional write keyed on ``(id, expected_status)``
4. commit, then hand back a :class:`NotificationJob` for the caller to queue

A conditional write that matches no row means another request changed the
session first; that surfaces as ``StateConflictException`` and is never
retried here.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
import logging
from typing import Any, Callable, List, Optional

from sqlalchemy.orm import Session

from ..core.enums import RoleName
from ..core.exceptions import (
    NotFoundException,
    OwnershipException,
    StateConflictException,
    ValidationException,
)
from ..domain.private_session_state import Schedule, SessionState, state_from_row
from ..domain.private_session_transitions import (
    Actor,
    NotificationEvent,
    TransitionPlan,
    authorize_request,
    available_actions,
    plan_accept,
    plan_accept_reschedule,
    plan_admin_approve,
    plan_cancel,
    plan_card_checkout,
    plan_complete,
    plan_confirm_card_payment,
    plan_etransfer,
    plan_propose_reschedule,
    plan_reject,
)
from ..models.private_session import PrivateSession, SessionStatus
from ..models.user import User
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.availability_repository import AvailabilityRepository
from ..repositories.private_session_repository import PrivateSessionRepository
from ..repositories.user_repository import UserRepository
from .base import BaseService
from .private_session_notifier import NotificationJob
from .stripe_service import CheckoutResult, StripeService
from .timezone_service import TimezoneService

logger = logging.getLogger(__name__)

# Stripe webhooks act on behalf of the payer but carry no user
SYSTEM_ACTOR_ID = "system"

_ASSISTANT_ROLES = {RoleName.TA.value, RoleName.COACH.value}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TransitionResult:
    session: PrivateSession
    notification: Optional[NotificationJob] = None


@dataclass(frozen=True)
class PrivateSessionView:
    """A session as seen by one viewer."""

    session: PrivateSession
    when_text: str
    proposed_when_text: Optional[str]
    available_actions: List[str]


class PrivateSessionService(BaseService):
    """Orchestrates the private session state machine against the database."""

    def __init__(
        self,
        db: Session,
        repository: Optional[PrivateSessionRepository] = None,
        user_repository: Optional[UserRepository] = None,
        availability_repository: Optional[AvailabilityRepository] = None,
        stripe_service: Optional[StripeService] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        super().__init__(db)
        self.repository = repository or PrivateSessionRepository(db)
        self.user_repository = user_repository or UserRepository(db)
        self.availability_repository = availability_repository or AvailabilityRepository(db)
        self._stripe_service = stripe_service
        self.clock = clock

    @property
    def stripe_service(self) -> StripeService:
        if self._stripe_service is None:
            self._stripe_service = StripeService(self.db)
        return self._stripe_service

    # ------------------------------------------------------------------
    # Loading helpers
    # ------------------------------------------------------------------

    def actor_for(self, user: User) -> Actor:
        """Build the acting identity; parents get their linked students resolved now."""
        role = user.role_name
        linked: frozenset[str] = frozenset()
        if role is RoleName.PARENT:
            linked = frozenset(self.user_repository.get_student_ids_for_parent(user.id))
        return Actor(user_id=user.id, role=role, linked_student_ids=linked)

    def _load(self, session_id: str) -> tuple[PrivateSession, SessionState]:
        row = self.repository.get_by_id(session_id)
        if row is None:
            raise NotFoundException(
                "Private session not found", details={"session_id": session_id}
            )
        return row, state_from_row(row)

    def _job(
        self, plan: TransitionPlan, row: PrivateSession, user: Optional[User], notes: Optional[str]
    ) -> Optional[NotificationJob]:
        if plan.event is None:
            return None
        return NotificationJob(
            event=plan.event,
            session_id=row.id,
            actor_id=user.id if user else SYSTEM_ACTOR_ID,
            actor_role=user.role_name if user else RoleName.STUDENT,
            actor_name=user.name_or_email if user else "Card payment",
            notes=notes,
        )

    def _apply(
        self,
        row: PrivateSession,
        plan: TransitionPlan,
        user: Optional[User],
        notes: Optional[str] = None,
    ) -> TransitionResult:
        """Run ``plan`` as one conditional write and reload the row."""
        expected_status = plan.expected_status
        if expected_status is None:
            prometheus_metrics.record_transition(plan.action.value, "noop")
            return TransitionResult(session=row)

        with self.transaction():
            matched = self.repository.compare_and_set(
                row.id,
                expected_status,
                plan.target_status,
                plan.updates,
                conditions=plan.conditions or None,
            )
            if matched == 0:
                prometheus_metrics.record_transition(plan.action.value, "conflict")
                self.logger.info(
                    "Private session %s changed before %s could apply (expected %s)",
                    row.id,
                    plan.action.value,
                    expected_status.value,
                )
                raise StateConflictException(
                    details={"expected_status": expected_status.value}
                )

        prometheus_metrics.record_transition(plan.action.value, "applied")
        self.log_operation(
            "private_session_transition",
            session_id=row.id,
            action=plan.action.value,
            from_status=expected_status.value,
            to_status=plan.target_status.value,
            actor_id=user.id if user else SYSTEM_ACTOR_ID,
        )
        fresh = self.repository.get_fresh(row.id)
        return TransitionResult(session=fresh or row, notification=self._job(plan, row, user, notes))

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def view_for(self, user: User, row: PrivateSession, actor: Optional[Actor] = None) -> PrivateSessionView:
        actor = actor or self.actor_for(user)
        state = state_from_row(row)
        viewer_tz = user.timezone or TimezoneService.default_timezone()
        proposed = None
        if row.proposed_date is not None:
            proposed = TimezoneService.format_session_range(
                row.proposed_date,
                row.proposed_start_time,
                row.proposed_end_time,
                row.timezone,
                viewer_tz,
            )
        return PrivateSessionView(
            session=row,
            when_text=TimezoneService.format_session_range(
                row.requested_date,
                row.requested_start_time,
                row.requested_end_time,
                row.timezone,
                viewer_tz,
            ),
            proposed_when_text=proposed,
            available_actions=available_actions(state, actor, self.clock()),
        )

    @BaseService.measure_operation("get_session")
    def get_session_view(self, user: User, session_id: str) -> PrivateSessionView:
        row, state = self._load(session_id)
        actor = self.actor_for(user)
        if not actor.can_view(state):
            raise OwnershipException("Not allowed to view this session")
        return self.view_for(user, row, actor)

    @BaseService.measure_operation("list_sessions")
    def list_session_views(
        self, user: User, status: Optional[SessionStatus] = None, limit: int = 200
    ) -> List[PrivateSessionView]:
        actor = self.actor_for(user)
        role = actor.role
        rows = self.repository.list_visible(
            coach_id=user.id if role is RoleName.COACH else None,
            assistant_id=user.id if role is RoleName.TA else None,
            student_ids=(
                [user.id] if role is RoleName.STUDENT else sorted(actor.linked_student_ids)
            ),
            status=status,
            include_all=actor.is_admin,
            limit=limit,
        )
        return [self.view_for(user, row, actor) for row in rows]

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    @BaseService.measure_operation("request_session")
    def request_session(
        self,
        user: User,
        availability_id: str,
        student_id: Optional[str] = None,
        student_notes: Optional[str] = None,
    ) -> TransitionResult:
        """
        Create a pending session from a private availability slot.

        Raises:
            AuthorizationException: Caller is not a student or parent
            OwnershipException: Parent is not linked to ``student_id``
            NotFoundException: Slot does not exist
            ValidationException: Slot is not private or already in the past
        """
        actor = self.actor_for(user)
        if actor.role is RoleName.STUDENT:
            target_student = student_id or user.id
        elif student_id:
            target_student = student_id
        elif actor.role is RoleName.PARENT:
            raise ValidationException(
                "student_id is required when a parent requests a session", code="STUDENT_REQUIRED"
            )
        else:
            target_student = ""
        authorize_request(actor, target_student)

        slot = self.availability_repository.get_by_id(availability_id)
        if slot is None:
            raise NotFoundException(
                "Availability slot not found", details={"availability_id": availability_id}
            )
        if not slot.is_private:
            raise ValidationException(
                "availability is not open for private sessions", code="SLOT_NOT_PRIVATE"
            )
        if TimezoneService.is_past(slot.slot_date, slot.start_time, slot.timezone, self.clock()):
            raise ValidationException(
                "cannot request past availability slots", code="SLOT_IN_PAST"
            )

        with self.transaction():
            row = self.repository.create(
                coach_id=slot.coach_id,
                student_id=target_student,
                availability_id=slot.id,
                requested_date=slot.slot_date,
                requested_start_time=slot.start_time,
                requested_end_time=slot.end_time,
                timezone=slot.timezone,
                status=SessionStatus.PENDING.value,
                student_notes=student_notes or None,
            )

        prometheus_metrics.record_transition("request", "applied")
        self.log_operation(
            "private_session_requested", session_id=row.id, coach_id=row.coach_id, actor_id=user.id
        )
        job = NotificationJob(
            event=NotificationEvent.REQUESTED,
            session_id=row.id,
            actor_id=user.id,
            actor_role=actor.role,
            actor_name=user.name_or_email,
            notes=student_notes or None,
        )
        return TransitionResult(session=row, notification=job)

    # ------------------------------------------------------------------
    # Negotiation
    # ------------------------------------------------------------------

    @BaseService.measure_operation("accept")
    def accept(self, user: User, session_id: str) -> TransitionResult:
        row, state = self._load(session_id)
        plan = plan_accept(state, self.actor_for(user), self.clock())
        return self._apply(row, plan, user)

    @BaseService.measure_operation("reject")
    def reject(self, user: User, session_id: str, notes: Optional[str] = None) -> TransitionResult:
        row, state = self._load(session_id)
        plan = plan_reject(state, self.actor_for(user), self.clock(), notes=notes)
        return self._apply(row, plan, user, notes=notes)

    @BaseService.measure_operation("propose_reschedule")
    def propose_reschedule(
        self,
        user: User,
        session_id: str,
        proposed_date: date,
        proposed_start_time: time,
        proposed_end_time: time,
        notes: Optional[str] = None,
    ) -> TransitionResult:
        row, state = self._load(session_id)
        actor = self.actor_for(user)
        schedule = Schedule(proposed_date, proposed_start_time, proposed_end_time)
        plan = plan_propose_reschedule(state, actor, self.clock(), schedule, notes=notes)
        return self._apply(row, plan, user, notes=notes)

    @BaseService.measure_operation("accept_reschedule")
    def accept_reschedule(self, user: User, session_id: str) -> TransitionResult:
        row, state = self._load(session_id)
        plan = plan_accept_reschedule(state, self.actor_for(user), self.clock())
        return self._apply(row, plan, user)

    @BaseService.measure_operation("admin_approve")
    def admin_approve(
        self,
        user: User,
        session_id: str,
        price_cad: Any,
        zoom_link: Optional[str] = None,
        assistant_id: Optional[str] = None,
    ) -> TransitionResult:
        row, state = self._load(session_id)
        plan = plan_admin_approve(
            state,
            self.actor_for(user),
            self.clock(),
            price_cad,
            zoom_link=zoom_link,
            assistant_id=assistant_id,
        )
        if assistant_id is not None:
            assistant = self.user_repository.get_active_by_id(assistant_id)
            if assistant is None or assistant.role not in _ASSISTANT_ROLES:
                raise NotFoundException(
                    "Assistant not found", details={"assistant_id": assistant_id}
                )
        return self._apply(row, plan, user)

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    @BaseService.measure_operation("create_card_checkout")
    def create_card_checkout(self, user: User, session_id: str) -> CheckoutResult:
        """
        Start a hosted card checkout. The session status does not change.

        Raises:
            DownstreamServiceException: Stripe failure
        """
        row, state = self._load(session_id)
        actor = self.actor_for(user)
        plan = plan_card_checkout(state, actor, self.clock())
        prometheus_metrics.record_transition(plan.action.value, "noop")

        coach = self.user_repository.get_by_id(row.coach_id)
        coach_name = coach.name_or_email if coach else "Coach"
        payer_email = user.email
        if actor.role is RoleName.PARENT:
            student = self.user_repository.get_by_id(row.student_id)
            payer_email = student.email if student and student.email else user.email

        return self.stripe_service.create_private_session_checkout(
            row, coach_name=coach_name, payer_email=payer_email, payer_role=actor.role
        )

    @BaseService.measure_operation("pay_by_etransfer")
    def pay_by_etransfer(self, user: User, session_id: str) -> TransitionResult:
        row, state = self._load(session_id)
        plan = plan_etransfer(state, self.actor_for(user), self.clock())
        return self._apply(row, plan, user)

    @BaseService.measure_operation("confirm_card_payment")
    def confirm_card_payment(
        self,
        session_id: str,
        checkout_session_id: Optional[str] = None,
        paid_amount_cents: Optional[int] = None,
    ) -> TransitionResult:
        """Apply a verified ``checkout.session.completed`` event."""
        row, state = self._load(session_id)
        plan = plan_confirm_card_payment(
            state, self.clock(), checkout_session_id, paid_amount_cents
        )
        return self._apply(row, plan, None)

    # ------------------------------------------------------------------
    # Wrap-up
    # ------------------------------------------------------------------

    @BaseService.measure_operation("complete")
    def complete(self, user: User, session_id: str) -> TransitionResult:
        row, state = self._load(session_id)
        plan = plan_complete(state, self.actor_for(user), self.clock())
        return self._apply(row, plan, user)

    @BaseService.measure_operation("cancel")
    def cancel(self, user: User, session_id: str) -> TransitionResult:
        """Cancel; a second cancel of the same session is a no-op."""
        row, state = self._load(session_id)
        plan = plan_cancel(state, self.actor_for(user), self.clock())
        return self._apply(row, plan, user)
