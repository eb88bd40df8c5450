"""
Centralized email subject builders.

Keep subjects in code (not templates) for versioning and logging.
Bodies remain in Jinja templates.
"""


class EmailSubject:
    """Utility class with static builders for email subjects."""

    @staticmethod
    def private_session_requested(student_name: str) -> str:
        safe_name = student_name.strip() or "a student"
        return f"Private session request from {safe_name}"

    @staticmethod
    def private_session_coach_accepted() -> str:
        return "Coach accepted your private session request"

    @staticmethod
    def private_session_declined() -> str:
        return "Private session request declined"

    @staticmethod
    def private_session_reschedule_proposed() -> str:
        return "Private session reschedule proposed"

    @staticmethod
    def private_session_reschedule_accepted() -> str:
        return "Private session reschedule accepted"

    @staticmethod
    def private_session_approved_student() -> str:
        return "Private session approved - payment required"

    @staticmethod
    def private_session_approved_coach() -> str:
        return "Admin approved private session"

    @staticmethod
    def private_session_confirmed() -> str:
        return "Private session confirmed"

    @staticmethod
    def private_session_etransfer_instructions() -> str:
        return "E-Transfer instructions for your private session"

    @staticmethod
    def private_session_etransfer_admin_notice(student_name: str) -> str:
        return f"Private session e-transfer selected: {student_name}"

    @staticmethod
    def private_session_completed() -> str:
        return "Private session completed"

    @staticmethod
    def private_session_cancelled() -> str:
        return "Private session cancelled"
