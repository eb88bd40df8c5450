"""Transition planner for private sessions.

Every ``plan_*`` function is pure: it takes the current status variant,
the acting user and the action payload, and either raises a domain error
or returns a :class:`TransitionPlan`. Nothing here touches the database.
The plan names the status the row must still have when it is written;
``PrivateSessionRepository.compare_and_set`` turns that into
``UPDATE ... WHERE id = :id AND status = :expected``.

Checks run in a fixed order: role, then ownership, then payload, then
source status. A status mismatch in the snapshot is reported before any
write; a change made after the snapshot was read is caught by the
conditional write instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import math
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from app.core.enums import COACH_SIDE_ROLES, RoleName
from app.core.exceptions import (
    AuthorizationException,
    DomainException,
    OwnershipException,
    StateConflictException,
    ValidationException,
)
from app.models.private_session import PaymentMethod, SessionStatus

from .private_session_state import (
    AwaitingPaymentState,
    CancelledState,
    CoachAcceptedState,
    CompletedState,
    ConfirmedState,
    PendingState,
    Proposal,
    RescheduledByCoachState,
    RescheduledByStudentState,
    Schedule,
    SessionState,
    is_rescheduled,
)


class SessionAction(str, Enum):
    """Actions a caller can request on a private session."""

    REQUEST = "request"
    ACCEPT = "accept"
    REJECT = "reject"
    PROPOSE_RESCHEDULE = "reschedule"
    ACCEPT_RESCHEDULE = "accept_reschedule"
    ADMIN_APPROVE = "approve"
    PAY_BY_CARD = "checkout"
    PAY_BY_ETRANSFER = "etransfer"
    CONFIRM_CARD_PAYMENT = "confirm_card_payment"
    COMPLETE = "complete"
    CANCEL = "cancel"


class NotificationEvent(str, Enum):
    """What the notification fan-out should announce after a committed transition."""

    REQUESTED = "requested"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    RESCHEDULE_PROPOSED = "reschedule_proposed"
    RESCHEDULE_ACCEPTED = "reschedule_accepted"
    ADMIN_APPROVED = "admin_approved"
    PAYMENT_CONFIRMED = "payment_confirmed"
    ETRANSFER_SELECTED = "etransfer_selected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Side(str, Enum):
    """Negotiating side of a session."""

    COACH = "coach"
    STUDENT = "student"

    @property
    def other(self) -> "Side":
        return Side.STUDENT if self is Side.COACH else Side.COACH


def side_for_role(role: RoleName) -> Side:
    return Side.COACH if role in COACH_SIDE_ROLES else Side.STUDENT


@dataclass(frozen=True)
class Actor:
    """
    The authenticated user performing an action.

    ``linked_student_ids`` is filled from ``parent_student_links`` at call
    time for parents and left empty for every other role.
    """

    user_id: str
    role: RoleName
    linked_student_ids: FrozenSet[str] = frozenset()

    @property
    def is_admin(self) -> bool:
        return self.role is RoleName.ADMIN

    @property
    def side(self) -> Side:
        return side_for_role(self.role)

    def is_coach_owner(self, state: SessionState) -> bool:
        return self.role is RoleName.COACH and state.facts.coach_id == self.user_id

    def is_assistant(self, state: SessionState) -> bool:
        return self.role is RoleName.TA and state.facts.assistant_id == self.user_id

    def is_student_owner(self, state: SessionState) -> bool:
        return self.role is RoleName.STUDENT and state.facts.student_id == self.user_id

    def is_linked_parent(self, state: SessionState) -> bool:
        return self.role is RoleName.PARENT and state.facts.student_id in self.linked_student_ids

    def is_student_side_party(self, state: SessionState) -> bool:
        return self.is_student_owner(state) or self.is_linked_parent(state)

    def is_party(self, state: SessionState) -> bool:
        return (
            self.is_coach_owner(state)
            or self.is_assistant(state)
            or self.is_student_side_party(state)
        )

    def can_view(self, state: SessionState) -> bool:
        return self.is_admin or self.is_party(state)


@dataclass(frozen=True)
class TransitionPlan:
    """
    Outcome of planning an action.

    ``expected_status`` is ``None`` for plans that must not write
    (cancel of an already-cancelled session, card checkout creation).
    """

    action: SessionAction
    expected_status: Optional[SessionStatus]
    target_status: SessionStatus
    updates: Dict[str, Any] = field(default_factory=dict)
    event: Optional[NotificationEvent] = None
    # Extra column values the row must still hold when written
    conditions: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_noop(self) -> bool:
        return self.expected_status is None


# Role sets per action
_COACH_OR_ADMIN = frozenset({RoleName.ADMIN, RoleName.COACH})
_PAYERS = frozenset({RoleName.STUDENT, RoleName.PARENT})
_CANCELLERS = frozenset({RoleName.ADMIN, RoleName.COACH, RoleName.STUDENT})

_STUDENT_CANCELLABLE = frozenset(
    {
        SessionStatus.PENDING,
        SessionStatus.RESCHEDULED_BY_COACH,
        SessionStatus.RESCHEDULED_BY_STUDENT,
        SessionStatus.AWAITING_PAYMENT,
    }
)
_COACH_CANCELLABLE = frozenset(
    {
        SessionStatus.PENDING,
        SessionStatus.COACH_ACCEPTED,
        SessionStatus.RESCHEDULED_BY_COACH,
        SessionStatus.RESCHEDULED_BY_STUDENT,
    }
)

_CLEAR_PROPOSAL: Dict[str, Any] = {
    "proposed_date": None,
    "proposed_start_time": None,
    "proposed_end_time": None,
    "proposed_by": None,
}


def _require_role(actor: Actor, allowed: FrozenSet[RoleName], what: str) -> None:
    if actor.role not in allowed:
        raise AuthorizationException(
            f"{actor.role.value} users cannot {what}",
            details={"role": actor.role.value},
        )


def _promote(proposal: Proposal) -> Dict[str, Any]:
    updates = {
        "requested_date": proposal.schedule.session_date,
        "requested_start_time": proposal.schedule.start_time,
        "requested_end_time": proposal.schedule.end_time,
    }
    updates.update(_CLEAR_PROPOSAL)
    return updates


def _require_coach_owner_or_admin(state: SessionState, actor: Actor, what: str) -> None:
    _require_role(actor, _COACH_OR_ADMIN, what)
    if not actor.is_admin and not actor.is_coach_owner(state):
        raise OwnershipException(f"Only this session's coach can {what}")


def validate_price(price_cad: Any) -> float:
    """Return the price rounded to cents, or raise if it is not a positive finite number."""
    try:
        value = float(price_cad)
    except (TypeError, ValueError) as exc:
        raise ValidationException("price must be a number", code="INVALID_PRICE") from exc
    if not math.isfinite(value) or value <= 0:
        raise ValidationException("price must be a positive amount", code="INVALID_PRICE")
    return round(value, 2)


def _require_payable_price(state: SessionState) -> float:
    price = state.facts.price_cad
    if price is None:
        raise ValidationException(
            "session price has not been set by an administrator", code="PRICE_NOT_SET"
        )
    try:
        return validate_price(price)
    except ValidationException as exc:
        raise ValidationException(
            "session price is not a positive amount", code="PRICE_NOT_SET"
        ) from exc


def authorize_request(actor: Actor, student_id: str) -> None:
    """Only a student (for themself) or a parent linked to the student may request."""
    _require_role(actor, _PAYERS, "request private sessions")
    if actor.role is RoleName.STUDENT and student_id != actor.user_id:
        raise OwnershipException("Students can only request sessions for themselves")
    if actor.role is RoleName.PARENT and student_id not in actor.linked_student_ids:
        raise OwnershipException("Parents can only request sessions for a linked student")


def plan_accept(state: SessionState, actor: Actor, now: datetime) -> TransitionPlan:
    _require_coach_owner_or_admin(state, actor, "accept private sessions")
    if isinstance(state, PendingState):
        updates: Dict[str, Any] = {}
    elif isinstance(state, RescheduledByStudentState):
        updates = _promote(state.proposal)
    else:
        raise StateConflictException(
            "only pending or student-rescheduled sessions can be accepted",
            details={"status": state.status.value},
        )
    updates.update({"cancelled_at": None, "cancelled_by": None})
    return TransitionPlan(
        action=SessionAction.ACCEPT,
        expected_status=state.status,
        target_status=SessionStatus.COACH_ACCEPTED,
        updates=updates,
        event=NotificationEvent.ACCEPTED,
    )


def plan_reject(
    state: SessionState, actor: Actor, now: datetime, notes: Optional[str] = None
) -> TransitionPlan:
    _require_coach_owner_or_admin(state, actor, "reject private sessions")
    if not isinstance(
        state,
        (PendingState, CoachAcceptedState, RescheduledByCoachState, RescheduledByStudentState),
    ):
        raise StateConflictException(
            "only pending, accepted or rescheduled sessions can be rejected",
            details={"status": state.status.value},
        )
    updates: Dict[str, Any] = {"cancelled_at": now, "cancelled_by": actor.user_id}
    updates.update(_CLEAR_PROPOSAL)
    if notes:
        updates["coach_notes"] = notes
    return TransitionPlan(
        action=SessionAction.REJECT,
        expected_status=state.status,
        target_status=SessionStatus.CANCELLED,
        updates=updates,
        event=NotificationEvent.REJECTED,
    )


def plan_propose_reschedule(
    state: SessionState,
    actor: Actor,
    now: datetime,
    schedule: Schedule,
    notes: Optional[str] = None,
) -> TransitionPlan:
    if not actor.is_admin and not actor.is_party(state):
        raise OwnershipException("Only participants of this session can propose a new time")
    if not isinstance(
        state,
        (PendingState, CoachAcceptedState, RescheduledByCoachState, RescheduledByStudentState),
    ):
        raise StateConflictException(
            "only pending, accepted or rescheduled sessions can be rescheduled",
            details={"status": state.status.value},
        )
    side = actor.side
    target = (
        SessionStatus.RESCHEDULED_BY_COACH
        if side is Side.COACH
        else SessionStatus.RESCHEDULED_BY_STUDENT
    )
    updates: Dict[str, Any] = {
        "proposed_date": schedule.session_date,
        "proposed_start_time": schedule.start_time,
        "proposed_end_time": schedule.end_time,
        "proposed_by": actor.user_id,
    }
    if notes:
        updates["coach_notes" if side is Side.COACH else "student_notes"] = notes
    return TransitionPlan(
        action=SessionAction.PROPOSE_RESCHEDULE,
        expected_status=state.status,
        target_status=target,
        updates=updates,
        event=NotificationEvent.RESCHEDULE_PROPOSED,
    )


def plan_accept_reschedule(state: SessionState, actor: Actor, now: datetime) -> TransitionPlan:
    if not actor.is_admin and not actor.is_party(state):
        raise OwnershipException("Only participants of this session can accept a new time")
    if not isinstance(state, (RescheduledByCoachState, RescheduledByStudentState)):
        raise StateConflictException(
            "session has no reschedule proposal to accept",
            details={"status": state.status.value},
        )

    if not actor.is_admin:
        if state.proposal.proposed_by == actor.user_id:
            raise AuthorizationException("You cannot accept your own reschedule proposal")
        if isinstance(state, RescheduledByCoachState) and not actor.is_student_side_party(state):
            raise AuthorizationException(
                "Only the student or a linked parent can accept the coach's proposal"
            )
        if isinstance(state, RescheduledByStudentState) and not actor.is_coach_owner(state):
            raise AuthorizationException("Only the coach can accept the student's proposal")

    return TransitionPlan(
        action=SessionAction.ACCEPT_RESCHEDULE,
        expected_status=state.status,
        target_status=SessionStatus.COACH_ACCEPTED,
        updates=_promote(state.proposal),
        event=NotificationEvent.RESCHEDULE_ACCEPTED,
    )


def plan_admin_approve(
    state: SessionState,
    actor: Actor,
    now: datetime,
    price_cad: Any,
    zoom_link: Optional[str] = None,
    assistant_id: Optional[str] = None,
) -> TransitionPlan:
    _require_role(actor, frozenset({RoleName.ADMIN}), "approve private sessions")
    price = validate_price(price_cad)
    if not isinstance(state, (CoachAcceptedState, AwaitingPaymentState)):
        raise StateConflictException(
            "only coach-accepted sessions can be approved",
            details={"status": state.status.value},
        )
    updates: Dict[str, Any] = {
        "price_cad": price,
        "admin_approved_at": now,
        "admin_approved_by": actor.user_id,
    }
    if zoom_link is not None:
        updates["zoom_link"] = zoom_link
    if assistant_id is not None:
        updates["assistant_id"] = assistant_id
    return TransitionPlan(
        action=SessionAction.ADMIN_APPROVE,
        expected_status=state.status,
        target_status=SessionStatus.AWAITING_PAYMENT,
        updates=updates,
        event=NotificationEvent.ADMIN_APPROVED,
    )


def _check_payer(state: SessionState, actor: Actor) -> None:
    _require_role(actor, _PAYERS, "pay for private sessions")
    if not actor.is_student_side_party(state):
        raise OwnershipException("Only the student or a linked parent can pay for this session")
    _require_payable_price(state)
    if not isinstance(state, AwaitingPaymentState):
        raise StateConflictException(
            "session is not awaiting payment", details={"status": state.status.value}
        )


def plan_card_checkout(state: SessionState, actor: Actor, now: datetime) -> TransitionPlan:
    """Card checkout never writes; the webhook confirms payment later."""
    _check_payer(state, actor)
    return TransitionPlan(
        action=SessionAction.PAY_BY_CARD,
        expected_status=None,
        target_status=state.status,
    )


def plan_etransfer(state: SessionState, actor: Actor, now: datetime) -> TransitionPlan:
    _check_payer(state, actor)
    return TransitionPlan(
        action=SessionAction.PAY_BY_ETRANSFER,
        expected_status=SessionStatus.AWAITING_PAYMENT,
        target_status=SessionStatus.CONFIRMED,
        updates={"payment_method": PaymentMethod.ETRANSFER.value, "confirmed_at": now},
        event=NotificationEvent.ETRANSFER_SELECTED,
    )


def price_in_cents(price_cad: float) -> int:
    return int(round(price_cad * 100))


def plan_confirm_card_payment(
    state: SessionState,
    now: datetime,
    checkout_session_id: Optional[str],
    paid_amount_cents: Optional[int] = None,
) -> TransitionPlan:
    """
    Planned from a verified payment-processor event, not from a user.

    When ``paid_amount_cents`` is given it must match the current price; a
    checkout started before an administrator re-priced the session does not
    confirm it. The write is also conditioned on the price it was checked
    against.
    """
    price = _require_payable_price(state)
    if not isinstance(state, AwaitingPaymentState):
        raise StateConflictException(
            "session is not awaiting payment", details={"status": state.status.value}
        )
    if paid_amount_cents is not None and paid_amount_cents != price_in_cents(price):
        raise StateConflictException(
            "paid amount does not match the current session price",
            details={
                "paid_amount_cents": paid_amount_cents,
                "price_cents": price_in_cents(price),
            },
        )
    return TransitionPlan(
        action=SessionAction.CONFIRM_CARD_PAYMENT,
        expected_status=SessionStatus.AWAITING_PAYMENT,
        target_status=SessionStatus.CONFIRMED,
        updates={
            "payment_method": PaymentMethod.CARD.value,
            "confirmed_at": now,
            "stripe_checkout_session_id": checkout_session_id,
        },
        event=NotificationEvent.PAYMENT_CONFIRMED,
        conditions={"price_cad": state.facts.price_cad},
    )


def plan_complete(state: SessionState, actor: Actor, now: datetime) -> TransitionPlan:
    _require_coach_owner_or_admin(state, actor, "complete private sessions")
    if not isinstance(state, ConfirmedState):
        raise StateConflictException(
            "only confirmed sessions can be completed", details={"status": state.status.value}
        )
    return TransitionPlan(
        action=SessionAction.COMPLETE,
        expected_status=SessionStatus.CONFIRMED,
        target_status=SessionStatus.COMPLETED,
        updates={"completed_at": now},
        event=NotificationEvent.COMPLETED,
    )


def plan_cancel(state: SessionState, actor: Actor, now: datetime) -> TransitionPlan:
    _require_role(actor, _CANCELLERS, "cancel private sessions")
    if not actor.is_admin and not (actor.is_coach_owner(state) or actor.is_student_owner(state)):
        raise OwnershipException("Not allowed to cancel this session")

    if isinstance(state, CancelledState):
        return TransitionPlan(
            action=SessionAction.CANCEL,
            expected_status=None,
            target_status=SessionStatus.CANCELLED,
        )
    if isinstance(state, CompletedState):
        raise StateConflictException("completed sessions cannot be cancelled")

    if actor.role is RoleName.STUDENT and state.status not in _STUDENT_CANCELLABLE:
        raise StateConflictException(
            f"students cannot cancel a session that is {state.status.value}",
            details={"status": state.status.value},
        )
    if actor.role is RoleName.COACH and state.status not in _COACH_CANCELLABLE:
        raise StateConflictException(
            f"coaches cannot cancel a session that is {state.status.value}",
            details={"status": state.status.value},
        )

    updates: Dict[str, Any] = {"cancelled_at": now, "cancelled_by": actor.user_id}
    if is_rescheduled(state):
        updates.update(_CLEAR_PROPOSAL)
    return TransitionPlan(
        action=SessionAction.CANCEL,
        expected_status=state.status,
        target_status=SessionStatus.CANCELLED,
        updates=updates,
        event=NotificationEvent.CANCELLED,
    )


def available_actions(state: SessionState, actor: Actor, now: datetime) -> List[str]:
    """Actions the planner would currently allow ``actor`` to take."""
    attempts: Dict[SessionAction, Callable[[], TransitionPlan]] = {
        SessionAction.ACCEPT: lambda: plan_accept(state, actor, now),
        SessionAction.REJECT: lambda: plan_reject(state, actor, now),
        SessionAction.PROPOSE_RESCHEDULE: lambda: plan_propose_reschedule(
            state, actor, now, state.facts.schedule
        ),
        SessionAction.ACCEPT_RESCHEDULE: lambda: plan_accept_reschedule(state, actor, now),
        SessionAction.ADMIN_APPROVE: lambda: plan_admin_approve(
            state, actor, now, state.facts.price_cad or 1
        ),
        SessionAction.PAY_BY_CARD: lambda: plan_card_checkout(state, actor, now),
        SessionAction.PAY_BY_ETRANSFER: lambda: plan_etransfer(state, actor, now),
        SessionAction.COMPLETE: lambda: plan_complete(state, actor, now),
        SessionAction.CANCEL: lambda: plan_cancel(state, actor, now),
    }
    allowed: List[str] = []
    for action, attempt in attempts.items():
        try:
            plan = attempt()
        except DomainException:
            continue
        if action is SessionAction.CANCEL and plan.is_noop:
            continue
        allowed.append(action.value)
    return allowed


__all__ = [
    "Actor",
    "NotificationEvent",
    "SessionAction",
    "Side",
    "TransitionPlan",
    "authorize_request",
    "available_actions",
    "plan_accept",
    "plan_accept_reschedule",
    "plan_admin_approve",
    "plan_cancel",
    "plan_card_checkout",
    "plan_complete",
    "plan_confirm_card_payment",
    "plan_etransfer",
    "plan_propose_reschedule",
    "plan_reject",
    "price_in_cents",
    "side_for_role",
    "validate_price",
]
