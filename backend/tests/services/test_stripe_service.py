"""Stripe checkout creation and webhook processing."""

from unittest.mock import Mock, patch

import pytest
import stripe

from app.core.enums import RoleName
from app.core.exceptions import DownstreamServiceException, ValidationException
from app.models.private_session import PaymentMethod, PrivateSession, SessionStatus
from app.models.webhook_event import WebhookEvent
from app.services.private_session_service import PrivateSessionService
from app.services.stripe_service import StripeService


def _checkout_completed(
    session_id, event_id="evt_test_1", checkout_id="cs_test_1", amount_total=None
):
    checkout = {
        "id": checkout_id,
        "metadata": {"type": "private_session", "private_session_id": session_id},
    }
    if amount_total is not None:
        checkout["amount_total"] = amount_total
    return {
        "id": event_id,
        "type": "checkout.session.completed",
        "data": {"object": checkout},
    }


def _ledger(db, event_id) -> WebhookEvent:
    db.expire_all()
    return db.query(WebhookEvent).filter(WebhookEvent.event_id == event_id).one()


@pytest.fixture
def stripe_service(db) -> StripeService:
    return StripeService(db)


@pytest.fixture
def session_service(db, stripe_service, fixed_now) -> PrivateSessionService:
    return PrivateSessionService(db, stripe_service=stripe_service, clock=lambda: fixed_now)


@pytest.fixture
def payable(coach, student, make_session) -> PrivateSession:
    return make_session(coach, student, SessionStatus.AWAITING_PAYMENT, price_cad=80.0)


class TestCheckout:
    def test_params_describe_the_session(self, stripe_service, payable):
        params = stripe_service.build_checkout_params(
            payable,
            coach_name="Casey Coach",
            payer_email="student@example.com",
            payer_role=RoleName.STUDENT,
        )

        line_item = params["line_items"][0]
        assert params["mode"] == "payment"
        assert line_item["price_data"]["currency"] == "cad"
        assert line_item["price_data"]["unit_amount"] == 8000
        assert line_item["price_data"]["product_data"]["name"] == "Private Session with Casey Coach"
        assert line_item["price_data"]["product_data"]["description"] == (
            "2026-01-06 16:00-17:00 (America/Vancouver)"
        )
        assert params["metadata"] == {
            "type": "private_session",
            "private_session_id": payable.id,
            "student_id": payable.student_id,
            "price_cad": "80.00",
            "amount_cents": "8000",
        }
        assert params["customer_email"] == "student@example.com"
        assert params["success_url"] == (
            "https://portal.example.com/portal/student/private-sessions?payment=success"
        )

    def test_parent_returns_to_parent_portal(self, stripe_service, payable):
        params = stripe_service.build_checkout_params(
            payable, coach_name="Casey Coach", payer_email=None, payer_role=RoleName.PARENT
        )
        assert "customer_email" not in params
        assert params["cancel_url"] == (
            "https://portal.example.com/portal/parent/private-sessions"
            f"?student={payable.student_id}&payment=cancelled"
        )

    def test_create_returns_hosted_url(self, stripe_service, payable):
        with patch("stripe.checkout.Session.create") as create:
            create.return_value = Mock(url="https://checkout.stripe.test/cs_live", id="cs_live")
            result = stripe_service.create_private_session_checkout(
                payable,
                coach_name="Casey Coach",
                payer_email="student@example.com",
                payer_role=RoleName.STUDENT,
            )

        assert result.checkout_url == "https://checkout.stripe.test/cs_live"
        assert result.checkout_session_id == "cs_live"
        assert create.call_args.kwargs["client_reference_id"] == payable.id

    def test_stripe_error_becomes_downstream_error(self, stripe_service, payable):
        with patch("stripe.checkout.Session.create", side_effect=stripe.StripeError("boom")):
            with pytest.raises(DownstreamServiceException):
                stripe_service.create_private_session_checkout(
                    payable,
                    coach_name="Casey Coach",
                    payer_email=None,
                    payer_role=RoleName.STUDENT,
                )


class TestSignature:
    def test_missing_signature(self, stripe_service):
        with pytest.raises(ValidationException) as exc_info:
            stripe_service.verify_webhook_signature(b"{}", None)
        assert exc_info.value.code == "MISSING_SIGNATURE"

    def test_invalid_signature(self, stripe_service):
        error = stripe.SignatureVerificationError("No signatures found", "t=1,v1=bad")
        with patch("stripe.Webhook.construct_event", side_effect=error):
            with pytest.raises(ValidationException) as exc_info:
                stripe_service.verify_webhook_signature(b"{}", "t=1,v1=bad")
        assert exc_info.value.code == "INVALID_SIGNATURE"

    def test_valid_signature_returns_parsed_event(self, stripe_service):
        with patch("stripe.Webhook.construct_event") as construct:
            event = stripe_service.verify_webhook_signature(
                b'{"id": "evt_1", "type": "ping"}', "t=1,v1=good"
            )
        assert event == {"id": "evt_1", "type": "ping"}
        construct.assert_called_once_with(
            b'{"id": "evt_1", "type": "ping"}', "t=1,v1=good", "whsec_test_dummy"
        )


class TestWebhookHandling:
    def test_checkout_completed_confirms_session(
        self, db, stripe_service, session_service, payable
    ):
        outcome = stripe_service.handle_webhook_event(
            _checkout_completed(payable.id), session_service
        )

        assert outcome.status == "processed"
        assert outcome.notification is not None
        row = db.get(PrivateSession, payable.id)
        assert row.status == SessionStatus.CONFIRMED.value
        assert row.payment_method == PaymentMethod.CARD.value
        assert row.stripe_checkout_session_id == "cs_test_1"
        entry = _ledger(db, "evt_test_1")
        assert entry.status == "processed"
        assert entry.related_entity_id == payable.id

    def test_redelivery_is_a_duplicate(self, db, stripe_service, session_service, payable):
        event = _checkout_completed(payable.id)
        stripe_service.handle_webhook_event(event, session_service)

        outcome = stripe_service.handle_webhook_event(event, session_service)

        assert outcome.status == "duplicate"
        assert outcome.notification is None
        assert _ledger(db, "evt_test_1").retry_count == 1

    def test_second_checkout_for_confirmed_session_is_ignored(
        self, db, stripe_service, session_service, payable
    ):
        stripe_service.handle_webhook_event(_checkout_completed(payable.id), session_service)

        outcome = stripe_service.handle_webhook_event(
            _checkout_completed(payable.id, event_id="evt_test_2", checkout_id="cs_test_2"),
            session_service,
        )

        assert outcome.status == "ignored"
        assert _ledger(db, "evt_test_2").status == "ignored"
        assert db.get(PrivateSession, payable.id).stripe_checkout_session_id == "cs_test_1"

    def test_unrelated_event_is_ignored(self, db, stripe_service, session_service):
        outcome = stripe_service.handle_webhook_event(
            {"id": "evt_other", "type": "invoice.paid", "data": {"object": {}}}, session_service
        )
        assert outcome.status == "ignored"
        assert _ledger(db, "evt_other").status == "ignored"

    def test_unknown_session_is_ignored(self, stripe_service, session_service):
        outcome = stripe_service.handle_webhook_event(
            _checkout_completed("01J00000000000000000000000"), session_service
        )
        assert outcome.status == "ignored"

    def test_failure_is_recorded_and_retried(self, db, stripe_service, session_service, payable):
        broken = Mock()
        broken.confirm_card_payment.side_effect = RuntimeError("database went away")
        event = _checkout_completed(payable.id)

        with pytest.raises(RuntimeError):
            stripe_service.handle_webhook_event(event, broken)
        entry = _ledger(db, "evt_test_1")
        assert entry.status == "failed"
        assert entry.processing_error == "database went away"

        outcome = stripe_service.handle_webhook_event(event, session_service)
        assert outcome.status == "processed"
        assert _ledger(db, "evt_test_1").retry_count == 1

    def test_matching_amount_confirms_session(self, db, stripe_service, session_service, payable):
        outcome = stripe_service.handle_webhook_event(
            _checkout_completed(payable.id, amount_total=8000), session_service
        )
        assert outcome.status == "processed"
        assert db.get(PrivateSession, payable.id).status == SessionStatus.CONFIRMED.value

    def test_checkout_at_superseded_price_is_ignored(
        self, db, stripe_service, session_service, admin, coach, student, make_session
    ):
        row = make_session(coach, student, SessionStatus.COACH_ACCEPTED)
        session_service.admin_approve(admin, row.id, 80)
        params = stripe_service.build_checkout_params(
            db.get(PrivateSession, row.id),
            coach_name="Casey Coach",
            payer_email=student.email,
            payer_role=RoleName.STUDENT,
        )
        # Re-priced after the student opened checkout
        session_service.admin_approve(admin, row.id, 95)

        event = _checkout_completed(row.id, amount_total=8000)
        event["data"]["object"]["metadata"] = params["metadata"]
        outcome = stripe_service.handle_webhook_event(event, session_service)

        assert outcome.status == "ignored"
        assert outcome.notification is None
        entry = _ledger(db, "evt_test_1")
        assert entry.status == "ignored"
        refreshed = db.get(PrivateSession, row.id)
        assert refreshed.status == SessionStatus.AWAITING_PAYMENT.value
        assert refreshed.price_cad == 95
        assert refreshed.payment_method is None

    def test_metadata_amount_is_used_without_amount_total(
        self, db, stripe_service, session_service, payable
    ):
        event = _checkout_completed(payable.id)
        event["data"]["object"]["metadata"]["amount_cents"] = "7000"

        outcome = stripe_service.handle_webhook_event(event, session_service)

        assert outcome.status == "ignored"
        assert db.get(PrivateSession, payable.id).status == SessionStatus.AWAITING_PAYMENT.value
