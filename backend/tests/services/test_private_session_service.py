"""
Workflow tests for PrivateSessionService against a real (in-memory) database.

Payment processor calls are replaced with mocks; the clock is pinned so
timestamps and past-slot checks are deterministic.
"""

from datetime import date, time
from unittest.mock import Mock, patch

import pytest

from app.core.enums import RoleName
from app.core.exceptions import (
    AuthorizationException,
    NotFoundException,
    OwnershipException,
    StateConflictException,
    ValidationException,
)
from app.domain.private_session_transitions import NotificationEvent
from app.models.private_session import PaymentMethod, PrivateSession, SessionStatus
from app.services.private_session_service import SYSTEM_ACTOR_ID, PrivateSessionService
from app.services.stripe_service import CheckoutResult


@pytest.fixture
def stripe_service() -> Mock:
    mock = Mock()
    mock.create_private_session_checkout.return_value = CheckoutResult(
        checkout_url="https://checkout.stripe.test/c/pay/cs_test_123",
        checkout_session_id="cs_test_123",
    )
    return mock


@pytest.fixture
def service(db, stripe_service, fixed_now) -> PrivateSessionService:
    return PrivateSessionService(db, stripe_service=stripe_service, clock=lambda: fixed_now)


def _status(db, session_id: str) -> str:
    db.expire_all()
    return db.get(PrivateSession, session_id).status


class TestFullWorkflow:
    def test_request_to_completion(self, db, service, admin, coach, student, make_slot):
        slot = make_slot(coach)

        requested = service.request_session(student, slot.id, student_notes="Exam prep")
        session_id = requested.session.id
        assert requested.session.status == SessionStatus.PENDING.value
        assert requested.session.requested_date == slot.slot_date
        assert requested.session.availability_id == slot.id
        assert requested.notification.event is NotificationEvent.REQUESTED
        assert requested.notification.actor_role is RoleName.STUDENT

        accepted = service.accept(coach, session_id)
        assert accepted.session.status == SessionStatus.COACH_ACCEPTED.value
        assert accepted.notification.event is NotificationEvent.ACCEPTED

        approved = service.admin_approve(admin, session_id, 80)
        assert approved.session.status == SessionStatus.AWAITING_PAYMENT.value
        assert approved.session.price_cad == 80.0
        assert approved.session.admin_approved_by == admin.id

        paid = service.pay_by_etransfer(student, session_id)
        assert paid.session.status == SessionStatus.CONFIRMED.value
        assert paid.session.payment_method == PaymentMethod.ETRANSFER.value
        assert paid.notification.event is NotificationEvent.ETRANSFER_SELECTED

        completed = service.complete(coach, session_id)
        assert completed.session.status == SessionStatus.COMPLETED.value
        assert completed.session.completed_at is not None

        with pytest.raises(StateConflictException) as exc_info:
            service.complete(coach, session_id)
        assert exc_info.value.message == "only confirmed sessions can be completed"
        assert _status(db, session_id) == SessionStatus.COMPLETED.value


class TestRequest:
    def test_parent_requests_for_linked_student(self, service, coach, student, parent, make_slot):
        slot = make_slot(coach)
        result = service.request_session(parent, slot.id, student_id=student.id)
        assert result.session.student_id == student.id
        assert result.notification.actor_role is RoleName.PARENT

    def test_parent_must_name_student(self, service, coach, parent, make_slot):
        slot = make_slot(coach)
        with pytest.raises(ValidationException) as exc_info:
            service.request_session(parent, slot.id)
        assert exc_info.value.code == "STUDENT_REQUIRED"

    def test_parent_cannot_request_for_unlinked_student(
        self, service, coach, parent, other_student, make_slot
    ):
        slot = make_slot(coach)
        with pytest.raises(OwnershipException):
            service.request_session(parent, slot.id, student_id=other_student.id)

    def test_student_cannot_request_for_someone_else(
        self, service, coach, student, other_student, make_slot
    ):
        slot = make_slot(coach)
        with pytest.raises(OwnershipException):
            service.request_session(student, slot.id, student_id=other_student.id)

    def test_coach_cannot_request(self, service, coach, make_slot):
        slot = make_slot(coach)
        with pytest.raises(AuthorizationException):
            service.request_session(coach, slot.id)

    def test_unknown_slot(self, service, student):
        with pytest.raises(NotFoundException):
            service.request_session(student, "01J00000000000000000000000")

    def test_slot_must_be_private(self, service, coach, student, make_slot):
        slot = make_slot(coach, is_private=False)
        with pytest.raises(ValidationException) as exc_info:
            service.request_session(student, slot.id)
        assert exc_info.value.code == "SLOT_NOT_PRIVATE"

    def test_slot_in_the_past(self, service, coach, student, make_slot):
        slot = make_slot(coach, slot_date=date(2025, 12, 1))
        with pytest.raises(ValidationException) as exc_info:
            service.request_session(student, slot.id)
        assert exc_info.value.code == "SLOT_IN_PAST"


class TestNegotiation:
    def test_reject_records_notes_and_cancels(self, service, coach, student, make_session):
        row = make_session(coach, student)
        result = service.reject(coach, row.id, notes="Fully booked that week")
        assert result.session.status == SessionStatus.CANCELLED.value
        assert result.session.coach_notes == "Fully booked that week"
        assert result.session.cancelled_by == coach.id
        assert result.notification.notes == "Fully booked that week"

    def test_other_coach_cannot_accept(self, service, coach, other_coach, student, make_session):
        row = make_session(coach, student)
        with pytest.raises(OwnershipException):
            service.accept(other_coach, row.id)

    def test_coach_proposal_accepted_by_parent(
        self, db, service, coach, student, parent, make_session
    ):
        row = make_session(coach, student, SessionStatus.COACH_ACCEPTED)

        proposed = service.propose_reschedule(
            coach, row.id, date(2026, 1, 8), time(10, 0), time(11, 0), notes="Earlier works"
        )
        assert proposed.session.status == SessionStatus.RESCHEDULED_BY_COACH.value
        assert proposed.session.proposed_by == coach.id

        with pytest.raises(AuthorizationException):
            service.accept_reschedule(coach, row.id)

        accepted = service.accept_reschedule(parent, row.id)
        assert accepted.session.status == SessionStatus.COACH_ACCEPTED.value
        assert accepted.session.requested_date == date(2026, 1, 8)
        assert accepted.session.requested_start_time == time(10, 0)
        assert accepted.session.proposed_date is None
        assert accepted.session.proposed_by is None

    def test_student_counter_proposal_accepted_by_coach(
        self, service, coach, student, make_session
    ):
        row = make_session(coach, student)
        service.propose_reschedule(student, row.id, date(2026, 1, 9), time(15, 0), time(16, 0))

        result = service.accept(coach, row.id)

        assert result.session.status == SessionStatus.COACH_ACCEPTED.value
        assert result.session.requested_date == date(2026, 1, 9)
        assert result.session.proposed_date is None

    def test_unknown_session(self, service, coach):
        with pytest.raises(NotFoundException):
            service.accept(coach, "01J00000000000000000000000")


class TestApproval:
    def test_only_admin_approves(self, service, coach, student, make_session):
        row = make_session(coach, student, SessionStatus.COACH_ACCEPTED)
        with pytest.raises(AuthorizationException):
            service.admin_approve(coach, row.id, 80)

    @pytest.mark.parametrize("price", [0, -5, "abc", float("nan")])
    def test_invalid_price(self, service, admin, coach, student, make_session, price):
        row = make_session(coach, student, SessionStatus.COACH_ACCEPTED)
        with pytest.raises(ValidationException):
            service.admin_approve(admin, row.id, price)

    def test_assigns_assistant_and_zoom_link(self, service, admin, coach, ta, student, make_session):
        row = make_session(coach, student, SessionStatus.COACH_ACCEPTED)
        result = service.admin_approve(
            admin, row.id, 95.5, zoom_link="https://zoom.example.com/j/1", assistant_id=ta.id
        )
        assert result.session.assistant_id == ta.id
        assert result.session.zoom_link == "https://zoom.example.com/j/1"

    def test_assistant_must_be_staff(self, db, service, admin, coach, student, make_session):
        row = make_session(coach, student, SessionStatus.COACH_ACCEPTED)
        with pytest.raises(NotFoundException):
            service.admin_approve(admin, row.id, 80, assistant_id=student.id)
        assert _status(db, row.id) == SessionStatus.COACH_ACCEPTED.value

    def test_reapproval_updates_price(self, service, admin, coach, student, make_session):
        row = make_session(coach, student, SessionStatus.AWAITING_PAYMENT, price_cad=80.0)
        result = service.admin_approve(admin, row.id, 90)
        assert result.session.status == SessionStatus.AWAITING_PAYMENT.value
        assert result.session.price_cad == 90.0


class TestPayment:
    def test_payment_requires_price(self, service, coach, student, make_session):
        row = make_session(coach, student, SessionStatus.AWAITING_PAYMENT)
        with pytest.raises(ValidationException) as exc_info:
            service.pay_by_etransfer(student, row.id)
        assert exc_info.value.code == "PRICE_NOT_SET"

    def test_payment_requires_awaiting_payment(self, service, coach, student, make_session):
        row = make_session(coach, student, SessionStatus.COACH_ACCEPTED, price_cad=80.0)
        with pytest.raises(StateConflictException):
            service.pay_by_etransfer(student, row.id)

    def test_card_checkout_leaves_status_untouched(
        self, db, service, stripe_service, coach, student, parent, make_session
    ):
        row = make_session(coach, student, SessionStatus.AWAITING_PAYMENT, price_cad=80.0)

        checkout = service.create_card_checkout(parent, row.id)

        assert checkout.checkout_session_id == "cs_test_123"
        assert _status(db, row.id) == SessionStatus.AWAITING_PAYMENT.value
        _, kwargs = stripe_service.create_private_session_checkout.call_args
        assert kwargs["coach_name"] == "Casey Coach"
        assert kwargs["payer_email"] == "student@example.com"
        assert kwargs["payer_role"] is RoleName.PARENT

    def test_card_payment_confirmation(self, service, coach, student, make_session):
        row = make_session(coach, student, SessionStatus.AWAITING_PAYMENT, price_cad=80.0)

        result = service.confirm_card_payment(row.id, checkout_session_id="cs_test_123")

        assert result.session.status == SessionStatus.CONFIRMED.value
        assert result.session.payment_method == PaymentMethod.CARD.value
        assert result.session.stripe_checkout_session_id == "cs_test_123"
        assert result.notification.event is NotificationEvent.PAYMENT_CONFIRMED
        assert result.notification.actor_id == SYSTEM_ACTOR_ID

    def test_second_confirmation_conflicts(self, service, coach, student, make_session):
        row = make_session(coach, student, SessionStatus.AWAITING_PAYMENT, price_cad=80.0)
        service.confirm_card_payment(row.id)
        with pytest.raises(StateConflictException):
            service.confirm_card_payment(row.id)


class TestCancel:
    def test_cancel_is_idempotent(self, service, coach, student, make_session):
        row = make_session(coach, student)

        first = service.cancel(student, row.id)
        cancelled_at = first.session.cancelled_at
        second = service.cancel(student, row.id)

        assert first.notification.event is NotificationEvent.CANCELLED
        assert second.notification is None
        assert second.session.status == SessionStatus.CANCELLED.value
        assert second.session.cancelled_at == cancelled_at

    def test_cancel_clears_pending_proposal(self, service, coach, student, make_session):
        row = make_session(
            coach, student, SessionStatus.RESCHEDULED_BY_COACH,
            proposal=(date(2026, 1, 8), time(10, 0), time(11, 0)),
        )
        result = service.cancel(coach, row.id)
        assert result.session.proposed_date is None
        assert result.session.proposed_by is None

    def test_completed_cannot_be_cancelled(self, service, admin, coach, student, make_session):
        row = make_session(coach, student, SessionStatus.COMPLETED, price_cad=80.0)
        with pytest.raises(StateConflictException):
            service.cancel(admin, row.id)

    def test_parent_cannot_cancel(self, service, coach, student, parent, make_session):
        row = make_session(coach, student)
        with pytest.raises(AuthorizationException):
            service.cancel(parent, row.id)


class TestConcurrency:
    def test_lost_race_surfaces_conflict(self, db, service, coach, student, make_session):
        row = make_session(coach, student)
        with patch.object(service.repository, "compare_and_set", return_value=0):
            with pytest.raises(StateConflictException) as exc_info:
                service.accept(coach, row.id)
        assert exc_info.value.message == "session is no longer in the expected state"
        assert exc_info.value.details == {"expected_status": "pending"}
        assert _status(db, row.id) == SessionStatus.PENDING.value

    def test_stale_read_loses_to_concurrent_write(
        self, db, service, coach, student, make_session
    ):
        row = make_session(coach, student)
        real_compare_and_set = service.repository.compare_and_set

        def cancel_first(*args, **kwargs):
            # Another request cancels between our read and our write
            db.query(PrivateSession).filter(PrivateSession.id == row.id).update(
                {"status": SessionStatus.CANCELLED.value}, synchronize_session=False
            )
            db.commit()
            return real_compare_and_set(*args, **kwargs)

        with patch.object(service.repository, "compare_and_set", side_effect=cancel_first):
            with pytest.raises(StateConflictException):
                service.accept(coach, row.id)
        assert _status(db, row.id) == SessionStatus.CANCELLED.value


class TestViews:
    def test_view_renders_in_viewer_timezone(self, service, coach, student, make_session):
        row = make_session(coach, student)
        view = service.get_session_view(student, row.id)
        assert view.when_text == "2026-01-06 19:00-20:00 EST"
        assert view.available_actions == ["reschedule", "cancel"]

    def test_non_party_cannot_view(self, service, coach, student, other_student, make_session):
        row = make_session(coach, student)
        with pytest.raises(OwnershipException):
            service.get_session_view(other_student, row.id)

    def test_proposed_time_is_rendered(self, service, coach, student, make_session):
        row = make_session(
            coach, student, SessionStatus.RESCHEDULED_BY_COACH,
            proposal=(date(2026, 1, 8), time(10, 0), time(11, 0)),
        )
        view = service.get_session_view(coach, row.id)
        assert view.proposed_when_text == "2026-01-08 10:00-11:00 PST"

    def test_listing_is_scoped_to_parties(
        self, service, admin, coach, other_coach, student, other_student, parent, make_session
    ):
        mine = make_session(coach, student)
        make_session(other_coach, other_student)

        assert [v.session.id for v in service.list_session_views(coach)] == [mine.id]
        assert [v.session.id for v in service.list_session_views(parent)] == [mine.id]
        assert [v.session.id for v in service.list_session_views(student)] == [mine.id]
        assert len(service.list_session_views(admin)) == 2

    def test_listing_filters_by_status(self, service, admin, coach, student, make_session):
        make_session(coach, student)
        confirmed = make_session(coach, student, SessionStatus.CONFIRMED, price_cad=80.0)
        views = service.list_session_views(admin, SessionStatus.CONFIRMED)
        assert [v.session.id for v in views] == [confirmed.id]
