# backend/app/services/private_session_notifier.py
"""
Notification fan-out for private session transitions.

After a transition commits, the route queues a :class:`NotificationJob` on
FastAPI ``BackgroundTasks``. The job reloads the session, resolves every
participant in one batch, decides the audience for the event, applies each
recipient's preference gate, renders per-recipient content in that
recipient's timezone and hands the whole batch to the email provider in a
single call.

Delivery failures are logged and counted; they never change the outcome of
the transition that triggered them and are not retried.
"""

from dataclasses import dataclass
import logging
import re
import time
from typing import Any, Dict, FrozenSet, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import DEFAULT_PREFERENCES_PATH, PARENT_PREFERENCES_PATH, PORTAL_PATHS
from ..core.enums import RoleName
from ..core.exceptions import NotFoundException
from ..database import SessionFactory
from ..domain.private_session_transitions import NotificationEvent, Side, side_for_role
from ..models.private_session import PaymentMethod, PrivateSession
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.private_session_repository import PrivateSessionRepository
from . import notification_templates as templates
from .base import BaseService
from .email import OutgoingEmail, get_email_sender
from .notification_preference_service import private_session_alerts_enabled
from .notification_templates import NotificationTemplate
from .participant_service import Participant, ParticipantService, SessionParticipants
from .template_service import TemplateService
from .timezone_service import TimezoneService

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_BOTH_SIDES: FrozenSet[Side] = frozenset({Side.COACH, Side.STUDENT})

# Events whose audience is the non-acting side; an admin actor widens them to both sides
_COUNTERPARTY_EVENTS = {
    NotificationEvent.ACCEPTED: Side.STUDENT,
    NotificationEvent.REJECTED: Side.STUDENT,
    NotificationEvent.COMPLETED: Side.STUDENT,
}


@dataclass(frozen=True)
class NotificationJob:
    """Everything the fan-out needs besides what it reloads from the database."""

    event: NotificationEvent
    session_id: str
    actor_id: str
    actor_role: RoleName
    actor_name: str
    notes: Optional[str] = None


@dataclass(frozen=True)
class Recipient:
    participant: Participant
    side: Optional[Side]
    template: NotificationTemplate


def is_valid_email(value: Optional[str]) -> bool:
    return bool(value) and bool(_EMAIL_RE.match(value.strip()))  # type: ignore[union-attr]


def audience_for(participants: SessionParticipants, side: Side) -> List[Participant]:
    """
    Recipients for one side of a session.

    Student side is the student plus every linked parent; coach side is the
    coach plus the assistant when one is attached.
    """
    if side is Side.STUDENT:
        parents = [p for p in participants.parents if p.role is RoleName.PARENT]
        return [participants.student, *parents]
    members = [participants.coach]
    if participants.assistant is not None:
        members.append(participants.assistant)
    return members


def sides_for_event(event: NotificationEvent, actor_role: RoleName) -> FrozenSet[Side]:
    """Which sides hear about ``event`` when ``actor_role`` triggered it."""
    is_admin = actor_role is RoleName.ADMIN
    if event is NotificationEvent.REQUESTED:
        return frozenset({Side.COACH})
    if event in _COUNTERPARTY_EVENTS:
        return _BOTH_SIDES if is_admin else frozenset({_COUNTERPARTY_EVENTS[event]})
    if event is NotificationEvent.RESCHEDULE_PROPOSED:
        return _BOTH_SIDES if is_admin else frozenset({side_for_role(actor_role).other})
    return _BOTH_SIDES


def template_for(event: NotificationEvent, side: Side) -> NotificationTemplate:
    if event is NotificationEvent.REQUESTED:
        return templates.PRIVATE_SESSION_REQUESTED
    if event is NotificationEvent.ACCEPTED:
        return templates.PRIVATE_SESSION_COACH_ACCEPTED
    if event is NotificationEvent.REJECTED:
        return templates.PRIVATE_SESSION_DECLINED
    if event is NotificationEvent.RESCHEDULE_PROPOSED:
        return templates.PRIVATE_SESSION_RESCHEDULE_PROPOSED
    if event is NotificationEvent.RESCHEDULE_ACCEPTED:
        return templates.PRIVATE_SESSION_RESCHEDULE_ACCEPTED
    if event is NotificationEvent.ADMIN_APPROVED:
        if side is Side.STUDENT:
            return templates.PRIVATE_SESSION_APPROVED_STUDENT
        return templates.PRIVATE_SESSION_APPROVED_COACH
    if event is NotificationEvent.PAYMENT_CONFIRMED:
        return templates.PRIVATE_SESSION_CONFIRMED
    if event is NotificationEvent.ETRANSFER_SELECTED:
        if side is Side.STUDENT:
            return templates.PRIVATE_SESSION_ETRANSFER_INSTRUCTIONS
        return templates.PRIVATE_SESSION_CONFIRMED
    if event is NotificationEvent.COMPLETED:
        return templates.PRIVATE_SESSION_COMPLETED
    return templates.PRIVATE_SESSION_CANCELLED


def portal_url_for_role(role: RoleName) -> str:
    base = settings.portal_url.rstrip("/")
    return f"{base}{PORTAL_PATHS.get(role.value, PORTAL_PATHS['student'])}"


def preference_url_for_role(role: RoleName) -> str:
    base = settings.portal_url.rstrip("/")
    path = PARENT_PREFERENCES_PATH if role is RoleName.PARENT else DEFAULT_PREFERENCES_PATH
    return f"{base}{path}"


def management_recipients() -> List[str]:
    return [email.lower() for email in settings.management_email_list if is_valid_email(email)]


class PrivateSessionNotifier(BaseService):
    """Composes and sends the emails for one committed transition."""

    def __init__(
        self,
        db: Session,
        participant_service: Optional[ParticipantService] = None,
        template_service: Optional[TemplateService] = None,
        email_sender: Optional[Any] = None,
        repository: Optional[PrivateSessionRepository] = None,
    ):
        super().__init__(db)
        self.repository = repository or PrivateSessionRepository(db)
        self.participant_service = participant_service or ParticipantService(db)
        self.template_service = template_service or TemplateService(db)
        self.email_sender = email_sender or get_email_sender(db)

    def recipients_for(
        self, job: NotificationJob, participants: SessionParticipants
    ) -> List[Recipient]:
        """
        Resolve gated, de-duplicated recipients for ``job``.

        The canceller never receives their own cancellation notice. Recipients
        without a usable email address are skipped.
        """
        recipients: List[Recipient] = []
        seen: set[str] = set()
        for side in (Side.STUDENT, Side.COACH):
            if side not in sides_for_event(job.event, job.actor_role):
                continue
            template = template_for(job.event, side)
            for participant in audience_for(participants, side):
                if job.event is NotificationEvent.CANCELLED and participant.id == job.actor_id:
                    continue
                if not is_valid_email(participant.email):
                    continue
                key = participant.email.strip().lower()  # type: ignore[union-attr]
                if key in seen:
                    continue
                if template.preference_gated and not private_session_alerts_enabled(
                    participant.preferences
                ):
                    self.logger.debug(
                        "Skipping %s for %s: private session alerts disabled",
                        job.event.value,
                        participant.id,
                    )
                    continue
                seen.add(key)
                recipients.append(Recipient(participant=participant, side=side, template=template))
        return recipients

    def _when_text(
        self, session: PrivateSession, viewer_timezone: Optional[str], use_proposed: bool
    ) -> str:
        if use_proposed and session.proposed_date is not None:
            return TimezoneService.format_session_range(
                session.proposed_date,
                session.proposed_start_time,
                session.proposed_end_time,
                session.timezone,
                viewer_timezone,
            )
        return TimezoneService.format_session_range(
            session.requested_date,
            session.requested_start_time,
            session.requested_end_time,
            session.timezone,
            viewer_timezone,
        )

    def _base_context(
        self, job: NotificationJob, session: PrivateSession, participants: SessionParticipants
    ) -> Dict[str, Any]:
        method = session.payment_method
        return {
            "student_name": participants.student.display_name,
            "coach_name": participants.coach.display_name,
            "actor_name": job.actor_name,
            "notes": job.notes,
            "price_cad": session.price_cad,
            "zoom_link": session.zoom_link,
            "payment_method_label": "E-Transfer" if method == PaymentMethod.ETRANSFER.value else "Card",
            "etransfer_email": settings.etransfer_email,
        }

    def _render(self, template: NotificationTemplate, to: str, context: Dict[str, Any]) -> OutgoingEmail:
        context = dict(context, title=template.title, button_label=template.button_label)
        html = self.template_service.render_template(template.email_template, context)
        return {"to": to, "subject": template.subject(context), "html": html}

    def build_messages(
        self, job: NotificationJob, session: PrivateSession, participants: SessionParticipants
    ) -> List[OutgoingEmail]:
        base = self._base_context(job, session, participants)
        messages: List[OutgoingEmail] = []

        for recipient in self.recipients_for(job, participants):
            person = recipient.participant
            use_proposed = recipient.template.use_proposed_time
            context = dict(
                base,
                recipient_name=person.display_name,
                when_text=self._when_text(session, person.timezone, use_proposed),
                original_when_text=(
                    self._when_text(session, person.timezone, False) if use_proposed else None
                ),
                is_coach_version=recipient.side is Side.COACH,
                button_url=portal_url_for_role(person.role),
                preference_url=preference_url_for_role(person.role),
            )
            messages.append(self._render(recipient.template, person.email.strip().lower(), context))  # type: ignore[union-attr]

        if job.event is NotificationEvent.ETRANSFER_SELECTED:
            messages.extend(self._admin_notices(base, session))
        return messages

    def _admin_notices(self, base: Dict[str, Any], session: PrivateSession) -> List[OutgoingEmail]:
        template = templates.PRIVATE_SESSION_ETRANSFER_ADMIN_NOTICE
        context = dict(
            base,
            recipient_name=None,
            when_text=self._when_text(session, settings.default_timezone, False),
            button_url=portal_url_for_role(RoleName.ADMIN),
            preference_url=None,
        )
        return [self._render(template, email, context) for email in management_recipients()]

    @BaseService.measure_operation("notify")
    def notify(self, job: NotificationJob) -> int:
        """
        Send every email for ``job``.

        Returns:
            Number of messages handed to the provider

        Raises:
            NotFoundException: If the session or a required profile is gone
            DownstreamServiceException: If the provider rejects the batch
        """
        session = self.repository.get_by_id(job.session_id)
        if session is None:
            raise NotFoundException(
                "Private session not found", details={"session_id": job.session_id}
            )

        participants = self.participant_service.load_for_session(session)
        messages = self.build_messages(job, session, participants)
        if not messages:
            prometheus_metrics.record_notification_outcome(job.event.value, "skipped")
            self.log_operation("notification_skipped", event=job.event.value, session_id=session.id)
            return 0

        started = time.monotonic()
        sent = self.email_sender.send_batch(messages)
        prometheus_metrics.observe_notification_dispatch(job.event.value, time.monotonic() - started)
        prometheus_metrics.record_notification_outcome(job.event.value, "sent")
        self.log_operation(
            "notification_sent", event=job.event.value, session_id=session.id, count=sent
        )
        return sent


def dispatch_private_session_notification(
    job: NotificationJob, session_factory: SessionFactory
) -> None:
    """
    Background entry point.

    Opens its own database session because the request session is closed by
    the time background tasks run.
    """
    db = session_factory()
    try:
        PrivateSessionNotifier(db).notify(job)
    except Exception:
        logger.exception(
            "Private session notification failed: event=%s session=%s",
            job.event.value,
            job.session_id,
        )
        prometheus_metrics.record_notification_outcome(job.event.value, "failed")
    finally:
        db.close()

