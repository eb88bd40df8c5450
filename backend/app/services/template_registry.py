"""
Template registry for strongly-typed access to Jinja templates.

Use with TemplateService to avoid stringly-typed paths.
"""

from enum import Enum


class TemplateRegistry(str, Enum):
    # Private session negotiation
    PRIVATE_SESSION_REQUESTED = "email/private_sessions/requested.html"
    PRIVATE_SESSION_COACH_ACCEPTED = "email/private_sessions/coach_accepted.html"
    PRIVATE_SESSION_DECLINED = "email/private_sessions/declined.html"
    PRIVATE_SESSION_RESCHEDULE_PROPOSED = "email/private_sessions/reschedule_proposed.html"
    PRIVATE_SESSION_RESCHEDULE_ACCEPTED = "email/private_sessions/reschedule_accepted.html"

    # Approval and payment
    PRIVATE_SESSION_APPROVED_STUDENT = "email/private_sessions/approved_student.html"
    PRIVATE_SESSION_APPROVED_COACH = "email/private_sessions/approved_coach.html"
    PRIVATE_SESSION_CONFIRMED = "email/private_sessions/confirmed.html"
    PRIVATE_SESSION_ETRANSFER_INSTRUCTIONS = "email/private_sessions/etransfer_instructions.html"
    PRIVATE_SESSION_ETRANSFER_ADMIN_NOTICE = "email/private_sessions/etransfer_admin_notice.html"

    # Wrap-up
    PRIVATE_SESSION_COMPLETED = "email/private_sessions/completed.html"
    PRIVATE_SESSION_CANCELLED = "email/private_sessions/cancelled.html"
