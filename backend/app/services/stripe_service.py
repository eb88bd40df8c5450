# backend/app/services/stripe_service.py
"""
Stripe integration for private session payments.

Two responsibilities:
- create a hosted Checkout Session for a session awaiting payment
- verify and route signed webhook events

State never changes when a checkout is created; the
``checkout.session.completed`` webhook is what confirms a card payment.
"""

from dataclasses import dataclass
import json
import logging
import time
from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy.orm import Session
import stripe

from ..core.config import settings
from ..core.enums import RoleName
from ..core.exceptions import (
    DownstreamServiceException,
    NotFoundException,
    ServiceException,
    StateConflictException,
    ValidationException,
)
from ..domain.private_session_transitions import price_in_cents
from ..models.private_session import PrivateSession
from .base import BaseService
from .webhook_ledger_service import WebhookLedgerService

if TYPE_CHECKING:
    from .private_session_notifier import NotificationJob
    from .private_session_service import PrivateSessionService

logger = logging.getLogger(__name__)

STRIPE_SOURCE = "stripe"
PRIVATE_SESSION_METADATA_TYPE = "private_session"
CHECKOUT_COMPLETED = "checkout.session.completed"


def _secret_value(secret: Any) -> str:
    if hasattr(secret, "get_secret_value"):
        return str(secret.get_secret_value())
    return str(secret or "")


def _paid_amount_cents(data_object: Dict[str, Any], metadata: Dict[str, Any]) -> Optional[int]:
    """Amount the checkout charged: ``amount_total``, else the amount pinned in metadata."""
    for raw in (data_object.get("amount_total"), metadata.get("amount_cents")):
        if raw is None:
            continue
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.warning(f"Unreadable checkout amount {raw!r}")
    return None


@dataclass(frozen=True)
class CheckoutResult:
    checkout_url: str
    checkout_session_id: str


@dataclass(frozen=True)
class WebhookOutcome:
    """What the webhook endpoint reports back to Stripe."""

    status: str  # processed | ignored | duplicate
    event_type: str
    notification: Optional["NotificationJob"] = None


class StripeService(BaseService):
    """Thin wrapper over the Stripe SDK for private session payments."""

    def __init__(self, db: Session, ledger: Optional[WebhookLedgerService] = None):
        super().__init__(db)
        self.ledger = ledger or WebhookLedgerService(db)

        secret_key = _secret_value(settings.stripe_secret_key)
        self.stripe_configured = bool(secret_key)
        if self.stripe_configured:
            stripe.api_key = secret_key
            stripe.max_network_retries = 1
        else:
            self.logger.warning("Stripe secret key not configured - checkout creation will fail")

    @staticmethod
    def _return_url(payer_role: RoleName, student_id: str, outcome: str) -> str:
        base = settings.portal_url.rstrip("/")
        if payer_role is RoleName.PARENT:
            return f"{base}/portal/parent/private-sessions?student={student_id}&payment={outcome}"
        return f"{base}/portal/student/private-sessions?payment={outcome}"

    def build_checkout_params(
        self,
        session: PrivateSession,
        *,
        coach_name: str,
        payer_email: Optional[str],
        payer_role: RoleName,
    ) -> Dict[str, Any]:
        price = float(session.price_cad)
        amount_cents = price_in_cents(price)
        start = session.requested_start_time.strftime("%H:%M")
        end = session.requested_end_time.strftime("%H:%M")
        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": settings.stripe_currency,
                        "unit_amount": amount_cents,
                        "product_data": {
                            "name": f"Private Session with {coach_name}",
                            "description": (
                                f"{session.requested_date.isoformat()} {start}-{end} "
                                f"({session.timezone})"
                            ),
                        },
                    },
                    "quantity": 1,
                }
            ],
            "success_url": self._return_url(payer_role, session.student_id, "success"),
            "cancel_url": self._return_url(payer_role, session.student_id, "cancelled"),
            "client_reference_id": session.id,
            "metadata": {
                "type": PRIVATE_SESSION_METADATA_TYPE,
                "private_session_id": session.id,
                "student_id": session.student_id,
                "price_cad": f"{price:.2f}",
                "amount_cents": str(amount_cents),
            },
        }
        if payer_email:
            params["customer_email"] = payer_email
        return params

    @BaseService.measure_operation("stripe_create_checkout")
    def create_private_session_checkout(
        self,
        session: PrivateSession,
        *,
        coach_name: str,
        payer_email: Optional[str],
        payer_role: RoleName,
    ) -> CheckoutResult:
        """
        Create a hosted Checkout Session.

        Raises:
            DownstreamServiceException: If Stripe is unreachable or rejects the request
        """
        if not self.stripe_configured:
            raise DownstreamServiceException(
                "Card payments are not configured", provider=STRIPE_SOURCE
            )

        params = self.build_checkout_params(
            session, coach_name=coach_name, payer_email=payer_email, payer_role=payer_role
        )
        try:
            checkout = stripe.checkout.Session.create(**params)
        except stripe.StripeError as e:
            self.logger.error(f"Stripe checkout creation failed for {session.id}: {str(e)}")
            raise DownstreamServiceException(
                "Unable to start checkout right now", provider=STRIPE_SOURCE
            ) from e

        url = getattr(checkout, "url", None)
        if not url:
            raise DownstreamServiceException(
                "Checkout session URL was not returned", provider=STRIPE_SOURCE
            )
        self.log_operation("stripe_checkout_created", session_id=session.id, checkout_id=checkout.id)
        return CheckoutResult(checkout_url=str(url), checkout_session_id=str(checkout.id))

    def verify_webhook_signature(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify the ``stripe-signature`` header and parse the event.

        Raises:
            ValidationException: Missing or invalid signature, or unparsable body
            ServiceException: Webhook secret not configured
        """
        if not signature:
            raise ValidationException("Missing stripe-signature header", code="MISSING_SIGNATURE")

        webhook_secret = _secret_value(settings.stripe_webhook_secret)
        if not webhook_secret:
            raise ServiceException("Webhook secret not configured")

        try:
            stripe.Webhook.construct_event(payload, signature, webhook_secret)
        except stripe.SignatureVerificationError as e:
            self.logger.warning("Invalid Stripe webhook signature")
            raise ValidationException("Invalid webhook signature", code="INVALID_SIGNATURE") from e
        except ValueError as e:
            raise ValidationException("Invalid webhook payload", code="INVALID_PAYLOAD") from e

        try:
            return json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValidationException("Invalid webhook payload", code="INVALID_PAYLOAD") from e

    @BaseService.measure_operation("stripe_handle_webhook")
    def handle_webhook_event(
        self, event: Dict[str, Any], private_session_service: "PrivateSessionService"
    ) -> WebhookOutcome:
        """
        Process an already-verified webhook event exactly once.

        Stripe must not retry deliveries that lost a race, target a session
        that is no longer awaiting payment, or paid a superseded price, so
        those are acknowledged as ``ignored``. Unexpected failures are recorded and re-raised.
        """
        event_type = str(event.get("type") or "unknown")
        event_id = event.get("id")

        with self.transaction():
            entry = self.ledger.log_received(
                source=STRIPE_SOURCE, event_type=event_type, payload=event, event_id=event_id
            )
        if entry.is_settled:
            self.logger.info(f"Duplicate Stripe event {event_id} ({event_type}); skipping")
            return WebhookOutcome(status="duplicate", event_type=event_type)

        data_object = (event.get("data") or {}).get("object") or {}
        metadata = data_object.get("metadata") or {}
        if (
            event_type != CHECKOUT_COMPLETED
            or metadata.get("type") != PRIVATE_SESSION_METADATA_TYPE
        ):
            with self.transaction():
                self.ledger.mark_processed(entry, status="ignored")
            return WebhookOutcome(status="ignored", event_type=event_type)

        session_id = metadata.get("private_session_id")
        started = time.monotonic()
        try:
            if not session_id:
                raise NotFoundException("Checkout has no private session reference")
            result = private_session_service.confirm_card_payment(
                session_id,
                checkout_session_id=data_object.get("id"),
                paid_amount_cents=_paid_amount_cents(data_object, metadata),
            )
        except (StateConflictException, NotFoundException) as e:
            self.logger.info(f"Stripe event {event_id} not applied to {session_id}: {e.message}")
            with self.transaction():
                self.ledger.mark_processed(
                    entry,
                    status="ignored",
                    related_entity_type=PRIVATE_SESSION_METADATA_TYPE,
                    related_entity_id=session_id,
                    duration_ms=int((time.monotonic() - started) * 1000),
                    note=e.message,
                )
            return WebhookOutcome(status="ignored", event_type=event_type)
        except Exception as e:
            self.logger.error(f"Failed to process Stripe event {event_id}: {str(e)}")
            with self.transaction():
                self.ledger.mark_failed(
                    entry, error=str(e), duration_ms=int((time.monotonic() - started) * 1000)
                )
            raise

        with self.transaction():
            self.ledger.mark_processed(
                entry,
                related_entity_type=PRIVATE_SESSION_METADATA_TYPE,
                related_entity_id=session_id,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
        return WebhookOutcome(
            status="processed", event_type=event_type, notification=result.notification
        )
