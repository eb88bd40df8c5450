"""Typed status variants for private sessions.

Each persisted status maps to one frozen dataclass. Only the two
``Rescheduled*`` variants carry a :class:`Proposal`, so code holding a
``PendingState`` cannot read proposal fields and a half-filled proposal
never survives :func:`state_from_row`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from typing import Any, ClassVar, Optional, Union

from app.core.exceptions import ServiceException, ValidationException
from app.models.private_session import SessionStatus


@dataclass(frozen=True)
class Schedule:
    """A (date, start, end) triple interpreted in the session's timezone."""

    session_date: date
    start_time: time
    end_time: time

    def __post_init__(self) -> None:
        if self.end_time <= self.start_time:
            raise ValidationException(
                "end time must be after start time",
                code="INVALID_TIME_RANGE",
                details={
                    "start_time": self.start_time.isoformat(),
                    "end_time": self.end_time.isoformat(),
                },
            )


@dataclass(frozen=True)
class Proposal:
    """An alternate schedule awaiting the other party's acceptance."""

    schedule: Schedule
    proposed_by: str


@dataclass(frozen=True)
class SessionFacts:
    """Fields every variant shares."""

    session_id: str
    coach_id: str
    student_id: str
    assistant_id: Optional[str]
    schedule: Schedule
    timezone: str
    price_cad: Optional[float]


@dataclass(frozen=True)
class PendingState:
    status: ClassVar[SessionStatus] = SessionStatus.PENDING
    facts: SessionFacts


@dataclass(frozen=True)
class CoachAcceptedState:
    status: ClassVar[SessionStatus] = SessionStatus.COACH_ACCEPTED
    facts: SessionFacts


@dataclass(frozen=True)
class RescheduledByCoachState:
    status: ClassVar[SessionStatus] = SessionStatus.RESCHEDULED_BY_COACH
    facts: SessionFacts
    proposal: Proposal


@dataclass(frozen=True)
class RescheduledByStudentState:
    status: ClassVar[SessionStatus] = SessionStatus.RESCHEDULED_BY_STUDENT
    facts: SessionFacts
    proposal: Proposal


@dataclass(frozen=True)
class AwaitingPaymentState:
    status: ClassVar[SessionStatus] = SessionStatus.AWAITING_PAYMENT
    facts: SessionFacts


@dataclass(frozen=True)
class ConfirmedState:
    status: ClassVar[SessionStatus] = SessionStatus.CONFIRMED
    facts: SessionFacts


@dataclass(frozen=True)
class CompletedState:
    status: ClassVar[SessionStatus] = SessionStatus.COMPLETED
    facts: SessionFacts


@dataclass(frozen=True)
class CancelledState:
    status: ClassVar[SessionStatus] = SessionStatus.CANCELLED
    facts: SessionFacts


RescheduledState = Union[RescheduledByCoachState, RescheduledByStudentState]

SessionState = Union[
    PendingState,
    CoachAcceptedState,
    RescheduledByCoachState,
    RescheduledByStudentState,
    AwaitingPaymentState,
    ConfirmedState,
    CompletedState,
    CancelledState,
]

_PLAIN_VARIANTS = {
    SessionStatus.PENDING: PendingState,
    SessionStatus.COACH_ACCEPTED: CoachAcceptedState,
    SessionStatus.AWAITING_PAYMENT: AwaitingPaymentState,
    SessionStatus.CONFIRMED: ConfirmedState,
    SessionStatus.COMPLETED: CompletedState,
    SessionStatus.CANCELLED: CancelledState,
}

_PROPOSAL_VARIANTS = {
    SessionStatus.RESCHEDULED_BY_COACH: RescheduledByCoachState,
    SessionStatus.RESCHEDULED_BY_STUDENT: RescheduledByStudentState,
}


class InvalidSessionStateError(ServiceException):
    """Raised when a stored row cannot be mapped onto a status variant."""

    def __init__(self, session_id: str, reason: str) -> None:
        super().__init__(
            message=f"Private session {session_id} is in an invalid state: {reason}",
            code="INVALID_SESSION_STATE",
            details={"session_id": session_id},
        )


def _read_proposal(row: Any) -> Optional[Proposal]:
    fields = (
        row.proposed_date,
        row.proposed_start_time,
        row.proposed_end_time,
        row.proposed_by,
    )
    if all(value is None for value in fields):
        return None
    if any(value is None for value in fields):
        raise InvalidSessionStateError(row.id, "partial reschedule proposal")
    try:
        schedule = Schedule(row.proposed_date, row.proposed_start_time, row.proposed_end_time)
    except ValidationException as exc:
        raise InvalidSessionStateError(row.id, exc.message) from exc
    return Proposal(schedule=schedule, proposed_by=row.proposed_by)


def state_from_row(row: Any) -> SessionState:
    """Build the status variant for a ``PrivateSession`` row (or any object with its fields)."""
    try:
        status = SessionStatus(row.status)
    except ValueError as exc:
        raise InvalidSessionStateError(row.id, f"unknown status {row.status!r}") from exc

    facts = SessionFacts(
        session_id=row.id,
        coach_id=row.coach_id,
        student_id=row.student_id,
        assistant_id=row.assistant_id,
        schedule=Schedule(row.requested_date, row.requested_start_time, row.requested_end_time),
        timezone=row.timezone,
        price_cad=float(row.price_cad) if row.price_cad is not None else None,
    )
    proposal = _read_proposal(row)

    if status in _PROPOSAL_VARIANTS:
        if proposal is None:
            raise InvalidSessionStateError(row.id, f"{status.value} without a proposal")
        return _PROPOSAL_VARIANTS[status](facts=facts, proposal=proposal)

    if proposal is not None:
        raise InvalidSessionStateError(row.id, f"proposal stored on a {status.value} session")
    return _PLAIN_VARIANTS[status](facts=facts)


def is_rescheduled(state: SessionState) -> bool:
    return isinstance(state, (RescheduledByCoachState, RescheduledByStudentState))
