"""Audience selection, gating and dispatch for private session emails."""

from unittest.mock import Mock, patch

import pytest

from app.core.enums import RoleName
from app.domain.private_session_transitions import NotificationEvent, Side
from app.models.private_session import SessionStatus
from app.services import notification_templates as templates
from app.services.private_session_notifier import (
    NotificationJob,
    PrivateSessionNotifier,
    audience_for,
    dispatch_private_session_notification,
    sides_for_event,
    template_for,
)
from app.services.participant_service import Participant, SessionParticipants


def _person(pid, role, email, preferences=None, tz="America/Vancouver"):
    return Participant(
        id=pid,
        display_name=pid.title(),
        email=email,
        timezone=tz,
        role=role,
        preferences=preferences,
    )


COACH = _person("coach", RoleName.COACH, "coach@example.com")
TA = _person("ta", RoleName.TA, "ta@example.com")
STUDENT = _person("student", RoleName.STUDENT, "student@example.com")
PARENT = _person("parent", RoleName.PARENT, "parent@example.com")


def _participants(**overrides) -> SessionParticipants:
    values = dict(coach=COACH, student=STUDENT, parents=(PARENT,), assistant=None)
    values.update(overrides)
    return SessionParticipants(**values)


def _job(event, actor=COACH, notes=None) -> NotificationJob:
    return NotificationJob(
        event=event,
        session_id="01J0000000000000000000000S",
        actor_id=actor.id,
        actor_role=actor.role,
        actor_name=actor.display_name,
        notes=notes,
    )


@pytest.fixture
def notifier() -> PrivateSessionNotifier:
    return PrivateSessionNotifier(
        Mock(),
        participant_service=Mock(),
        template_service=Mock(),
        email_sender=Mock(),
        repository=Mock(),
    )


def _addresses(recipients):
    return [r.participant.email for r in recipients]


class TestAudience:
    def test_student_side_includes_linked_parents(self):
        members = audience_for(_participants(), Side.STUDENT)
        assert [m.id for m in members] == ["student", "parent"]

    def test_coach_side_includes_assistant_when_attached(self):
        assert [m.id for m in audience_for(_participants(), Side.COACH)] == ["coach"]
        members = audience_for(_participants(assistant=TA), Side.COACH)
        assert [m.id for m in members] == ["coach", "ta"]


class TestSidesForEvent:
    @pytest.mark.parametrize(
        "event,role,expected",
        [
            (NotificationEvent.REQUESTED, RoleName.STUDENT, {Side.COACH}),
            (NotificationEvent.REQUESTED, RoleName.PARENT, {Side.COACH}),
            (NotificationEvent.ACCEPTED, RoleName.COACH, {Side.STUDENT}),
            (NotificationEvent.ACCEPTED, RoleName.ADMIN, {Side.STUDENT, Side.COACH}),
            (NotificationEvent.REJECTED, RoleName.COACH, {Side.STUDENT}),
            (NotificationEvent.COMPLETED, RoleName.COACH, {Side.STUDENT}),
            (NotificationEvent.RESCHEDULE_PROPOSED, RoleName.COACH, {Side.STUDENT}),
            (NotificationEvent.RESCHEDULE_PROPOSED, RoleName.TA, {Side.STUDENT}),
            (NotificationEvent.RESCHEDULE_PROPOSED, RoleName.PARENT, {Side.COACH}),
            (NotificationEvent.RESCHEDULE_PROPOSED, RoleName.ADMIN, {Side.STUDENT, Side.COACH}),
            (NotificationEvent.RESCHEDULE_ACCEPTED, RoleName.STUDENT, {Side.STUDENT, Side.COACH}),
            (NotificationEvent.ADMIN_APPROVED, RoleName.ADMIN, {Side.STUDENT, Side.COACH}),
            (NotificationEvent.PAYMENT_CONFIRMED, RoleName.STUDENT, {Side.STUDENT, Side.COACH}),
            (NotificationEvent.ETRANSFER_SELECTED, RoleName.PARENT, {Side.STUDENT, Side.COACH}),
            (NotificationEvent.CANCELLED, RoleName.STUDENT, {Side.STUDENT, Side.COACH}),
        ],
    )
    def test_sides(self, event, role, expected):
        assert sides_for_event(event, role) == frozenset(expected)

    def test_side_specific_templates(self):
        assert template_for(NotificationEvent.ADMIN_APPROVED, Side.STUDENT) is (
            templates.PRIVATE_SESSION_APPROVED_STUDENT
        )
        assert template_for(NotificationEvent.ADMIN_APPROVED, Side.COACH) is (
            templates.PRIVATE_SESSION_APPROVED_COACH
        )
        assert template_for(NotificationEvent.ETRANSFER_SELECTED, Side.STUDENT) is (
            templates.PRIVATE_SESSION_ETRANSFER_INSTRUCTIONS
        )
        assert template_for(NotificationEvent.ETRANSFER_SELECTED, Side.COACH) is (
            templates.PRIVATE_SESSION_CONFIRMED
        )


class TestRecipients:
    def test_accept_by_coach_reaches_student_and_parent(self, notifier):
        recipients = notifier.recipients_for(_job(NotificationEvent.ACCEPTED), _participants())
        assert _addresses(recipients) == ["student@example.com", "parent@example.com"]

    def test_canceller_is_excluded(self, notifier):
        job = _job(NotificationEvent.CANCELLED, actor=STUDENT)
        recipients = notifier.recipients_for(job, _participants(assistant=TA))
        assert _addresses(recipients) == [
            "parent@example.com",
            "coach@example.com",
            "ta@example.com",
        ]

    def test_duplicate_addresses_are_sent_once(self, notifier):
        twin = _person("twin", RoleName.PARENT, " Student@Example.com ")
        recipients = notifier.recipients_for(
            _job(NotificationEvent.COMPLETED), _participants(parents=(twin,))
        )
        assert _addresses(recipients) == ["student@example.com"]

    def test_opted_out_recipient_is_skipped(self, notifier):
        quiet_parent = _person(
            "parent", RoleName.PARENT, "parent@example.com", {"private_session_alerts": False}
        )
        recipients = notifier.recipients_for(
            _job(NotificationEvent.ACCEPTED), _participants(parents=(quiet_parent,))
        )
        assert _addresses(recipients) == ["student@example.com"]

    def test_malformed_preferences_fail_open(self, notifier):
        noisy_parent = _person("parent", RoleName.PARENT, "parent@example.com", ["oops"])
        recipients = notifier.recipients_for(
            _job(NotificationEvent.ACCEPTED), _participants(parents=(noisy_parent,))
        )
        assert "parent@example.com" in _addresses(recipients)

    def test_invalid_email_is_skipped(self, notifier):
        broken = _person("parent", RoleName.PARENT, "not-an-email")
        recipients = notifier.recipients_for(
            _job(NotificationEvent.ACCEPTED), _participants(parents=(broken,))
        )
        assert _addresses(recipients) == ["student@example.com"]


@pytest.mark.usefixtures("db")
class TestNotifyWithDatabase:
    def _notifier(self, db, sender):
        return PrivateSessionNotifier(db, email_sender=sender)

    def test_etransfer_sends_instructions_confirmation_and_admin_notice(
        self, db, coach, student, parent, make_session
    ):
        row = make_session(coach, student, SessionStatus.CONFIRMED, price_cad=80.0)
        row.payment_method = "etransfer"
        db.commit()
        sender = Mock()
        sender.send_batch.side_effect = lambda messages: len(messages)
        job = NotificationJob(
            event=NotificationEvent.ETRANSFER_SELECTED,
            session_id=row.id,
            actor_id=student.id,
            actor_role=RoleName.STUDENT,
            actor_name=student.name_or_email,
        )

        sent = self._notifier(db, sender).notify(job)

        messages = sender.send_batch.call_args.args[0]
        by_recipient = {m["to"]: m for m in messages}
        assert sent == 5
        assert sender.send_batch.call_count == 1
        assert set(by_recipient) == {
            "student@example.com",
            "parent@example.com",
            "coach@example.com",
            "ops@example.com",
            "finance@example.com",
        }
        assert by_recipient["student@example.com"]["subject"] == (
            "E-Transfer instructions for your private session"
        )
        assert by_recipient["coach@example.com"]["subject"] == "Private session confirmed"
        assert by_recipient["ops@example.com"]["subject"] == (
            "Private session e-transfer selected: Sam Student"
        )

    def test_times_render_in_each_recipients_timezone(self, db, coach, student, make_session):
        row = make_session(coach, student, SessionStatus.COACH_ACCEPTED)
        sender = Mock()
        sender.send_batch.side_effect = lambda messages: len(messages)
        job = NotificationJob(
            event=NotificationEvent.ACCEPTED,
            session_id=row.id,
            actor_id=coach.id,
            actor_role=RoleName.COACH,
            actor_name=coach.name_or_email,
        )

        self._notifier(db, sender).notify(job)

        (message,) = sender.send_batch.call_args.args[0]
        assert message["to"] == "student@example.com"
        assert "2026-01-06 19:00-20:00 EST" in message["html"]

    def test_everyone_opted_out_sends_nothing(self, db, coach, make_user, make_session):
        quiet = make_user(RoleName.STUDENT, preferences={"private_session_alerts": False})
        row = make_session(coach, quiet, SessionStatus.COACH_ACCEPTED)
        sender = Mock()
        job = NotificationJob(
            event=NotificationEvent.ACCEPTED,
            session_id=row.id,
            actor_id=coach.id,
            actor_role=RoleName.COACH,
            actor_name=coach.name_or_email,
        )

        assert self._notifier(db, sender).notify(job) == 0
        sender.send_batch.assert_not_called()


class TestDispatch:
    def test_failures_are_logged_and_swallowed(self):
        job = _job(NotificationEvent.ACCEPTED)
        db = Mock()
        session_factory = Mock(return_value=db)
        with patch(
            "app.services.private_session_notifier.PrivateSessionNotifier.notify",
            side_effect=RuntimeError("provider down"),
        ) as notify, patch(
            "app.services.private_session_notifier.prometheus_metrics"
        ) as metrics:
            dispatch_private_session_notification(job, session_factory)

        notify.assert_called_once_with(job)
        metrics.record_notification_outcome.assert_called_once_with("accepted", "failed")
        db.close.assert_called_once()
