from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Tuple

from .email_subjects import EmailSubject
from .template_registry import TemplateRegistry


@dataclass(frozen=True)
class NotificationTemplate:
    type: str
    title: str
    email_template: TemplateRegistry
    subject_builder: Callable[..., str]
    subject_fields: Tuple[str, ...] = ()
    button_label: str = "View Session"
    use_proposed_time: bool = False
    preference_gated: bool = True

    def subject(self, context: Mapping[str, Any]) -> str:
        return self.subject_builder(*(str(context.get(name) or "") for name in self.subject_fields))


PRIVATE_SESSION_REQUESTED = NotificationTemplate(
    type="private_session_requested",
    title="Private Session Requested",
    email_template=TemplateRegistry.PRIVATE_SESSION_REQUESTED,
    subject_builder=EmailSubject.private_session_requested,
    subject_fields=("student_name",),
    button_label="Open Portal",
)

PRIVATE_SESSION_COACH_ACCEPTED = NotificationTemplate(
    type="private_session_coach_accepted",
    title="Coach Accepted",
    email_template=TemplateRegistry.PRIVATE_SESSION_COACH_ACCEPTED,
    subject_builder=EmailSubject.private_session_coach_accepted,
)

PRIVATE_SESSION_DECLINED = NotificationTemplate(
    type="private_session_declined",
    title="Private Session Declined",
    email_template=TemplateRegistry.PRIVATE_SESSION_DECLINED,
    subject_builder=EmailSubject.private_session_declined,
)

PRIVATE_SESSION_RESCHEDULE_PROPOSED = NotificationTemplate(
    type="private_session_reschedule_proposed",
    title="New Time Proposed",
    email_template=TemplateRegistry.PRIVATE_SESSION_RESCHEDULE_PROPOSED,
    subject_builder=EmailSubject.private_session_reschedule_proposed,
    use_proposed_time=True,
)

PRIVATE_SESSION_RESCHEDULE_ACCEPTED = NotificationTemplate(
    type="private_session_reschedule_accepted",
    title="Reschedule Accepted",
    email_template=TemplateRegistry.PRIVATE_SESSION_RESCHEDULE_ACCEPTED,
    subject_builder=EmailSubject.private_session_reschedule_accepted,
)

PRIVATE_SESSION_APPROVED_STUDENT = NotificationTemplate(
    type="private_session_approved_student",
    title="Private Session Approved",
    email_template=TemplateRegistry.PRIVATE_SESSION_APPROVED_STUDENT,
    subject_builder=EmailSubject.private_session_approved_student,
    button_label="Complete Payment",
)

PRIVATE_SESSION_APPROVED_COACH = NotificationTemplate(
    type="private_session_approved_coach",
    title="Admin Approval Complete",
    email_template=TemplateRegistry.PRIVATE_SESSION_APPROVED_COACH,
    subject_builder=EmailSubject.private_session_approved_coach,
)

PRIVATE_SESSION_CONFIRMED = NotificationTemplate(
    type="private_session_confirmed",
    title="Private Session Confirmed",
    email_template=TemplateRegistry.PRIVATE_SESSION_CONFIRMED,
    subject_builder=EmailSubject.private_session_confirmed,
)

PRIVATE_SESSION_ETRANSFER_INSTRUCTIONS = NotificationTemplate(
    type="private_session_etransfer_instructions",
    title="E-Transfer Instructions",
    email_template=TemplateRegistry.PRIVATE_SESSION_ETRANSFER_INSTRUCTIONS,
    subject_builder=EmailSubject.private_session_etransfer_instructions,
)

# Sent to management addresses; never preference gated
PRIVATE_SESSION_ETRANSFER_ADMIN_NOTICE = NotificationTemplate(
    type="private_session_etransfer_admin_notice",
    title="Private Session E-Transfer Selected",
    email_template=TemplateRegistry.PRIVATE_SESSION_ETRANSFER_ADMIN_NOTICE,
    subject_builder=EmailSubject.private_session_etransfer_admin_notice,
    subject_fields=("student_name",),
    button_label="Open Admin Portal",
    preference_gated=False,
)

PRIVATE_SESSION_COMPLETED = NotificationTemplate(
    type="private_session_completed",
    title="Private Session Completed",
    email_template=TemplateRegistry.PRIVATE_SESSION_COMPLETED,
    subject_builder=EmailSubject.private_session_completed,
)

PRIVATE_SESSION_CANCELLED = NotificationTemplate(
    type="private_session_cancelled",
    title="Private Session Cancelled",
    email_template=TemplateRegistry.PRIVATE_SESSION_CANCELLED,
    subject_builder=EmailSubject.private_session_cancelled,
    button_label="Open Portal",
)
