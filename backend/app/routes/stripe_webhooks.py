"""
Stripe Webhook Endpoint

Receives signed Stripe events. The signature is verified against the
configured webhook secret before anything else happens; processing is
idempotent by event id through the webhook ledger.

Only ``checkout.session.completed`` for private session checkouts changes
state. Every other event is acknowledged and recorded as ignored.
"""

import asyncio
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status

from ..api.dependencies import (
    get_private_session_service,
    get_session_factory,
    get_stripe_service,
)
from ..core.exceptions import DomainException, ValidationException
from ..database import SessionFactory
from ..schemas.webhook_responses import WebhookAckResponse
from ..services.private_session_notifier import dispatch_private_session_notification
from ..services.private_session_service import PrivateSessionService
from ..services.stripe_service import StripeService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/stripe", tags=["stripe-webhooks"])


@router.post("", response_model=WebhookAckResponse)
async def handle_stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    stripe_service: StripeService = Depends(get_stripe_service),
    private_session_service: PrivateSessionService = Depends(get_private_session_service),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> WebhookAckResponse:
    """
    Handle a Stripe webhook delivery.

    Returns:
        Acknowledgement with ``processed``, ``ignored`` or ``duplicate``

    Raises:
        HTTPException: 400 for a missing or invalid signature; 500 when
            processing fails so Stripe redelivers
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    try:
        event = stripe_service.verify_webhook_signature(payload, signature)
    except ValidationException as e:
        logger.warning(f"Rejected Stripe webhook: {e.message}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except DomainException as e:
        raise e.to_http_exception()

    logger.info(f"Processing Stripe webhook event: {event.get('type')}")
    try:
        outcome = await asyncio.to_thread(
            stripe_service.handle_webhook_event, event, private_session_service
        )
    except DomainException as e:
        raise e.to_http_exception()

    if outcome.notification is not None:
        background_tasks.add_task(
            dispatch_private_session_notification, outcome.notification, session_factory
        )
    return WebhookAckResponse(status=outcome.status, event_type=outcome.event_type)
