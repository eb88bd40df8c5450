# backend/app/routes/v1/private_sessions.py
"""
Private session routes - API v1

Versioned private session endpoints under /api/v1/private-sessions.
All workflow rules live in PrivateSessionService; these handlers only
translate HTTP to service calls and queue notifications after commit.

Endpoints:
    GET / - List sessions visible to the caller
    POST / - Request a session from a private availability slot
    GET /{session_id} - Session details
    POST /{session_id}/accept - Coach/admin accepts
    POST /{session_id}/reject - Coach/admin declines
    POST /{session_id}/reschedule - Any party proposes a new time
    POST /{session_id}/accept-reschedule - Counterparty accepts the proposal
    POST /{session_id}/approve - Admin sets price and approves
    POST /{session_id}/checkout - Start a hosted card checkout
    POST /{session_id}/etransfer - Confirm with e-transfer
    POST /{session_id}/complete - Coach/admin completes
    POST /{session_id}/cancel - Cancel (idempotent)
"""

import asyncio
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, Query, status
from fastapi.params import Path

from ...api.dependencies import (
    get_current_user,
    get_private_session_service,
    get_session_factory,
)
from ...core.exceptions import DomainException
from ...database import SessionFactory
from ...models.private_session import SessionStatus
from ...models.user import User
from ...schemas.private_session import (
    CheckoutResponse,
    PrivateSessionApprove,
    PrivateSessionCreate,
    PrivateSessionListResponse,
    PrivateSessionReject,
    PrivateSessionReschedule,
    PrivateSessionResponse,
)
from ...services.private_session_notifier import dispatch_private_session_notification
from ...services.private_session_service import PrivateSessionService, TransitionResult

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["private-sessions-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _session_id_path():
    return Path(
        ...,
        description="Private session ULID",
        pattern=ULID_PATH_PATTERN,
        examples=["01HF4G12ABCDEF3456789XYZAB"],
    )


async def _respond(
    result: TransitionResult,
    current_user: User,
    service: PrivateSessionService,
    background_tasks: BackgroundTasks,
    session_factory: SessionFactory,
) -> PrivateSessionResponse:
    """Queue the notification for a committed transition and render the caller's view."""
    if result.notification is not None:
        background_tasks.add_task(
            dispatch_private_session_notification, result.notification, session_factory
        )
    view = await asyncio.to_thread(service.view_for, current_user, result.session)
    return PrivateSessionResponse.from_view(view)


# ============================================================================
# Collection routes
# ============================================================================


@router.get("", response_model=PrivateSessionListResponse)
async def list_private_sessions(
    status_filter: Optional[SessionStatus] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    service: PrivateSessionService = Depends(get_private_session_service),
) -> PrivateSessionListResponse:
    """List sessions visible to the caller, newest first."""
    try:
        views = await asyncio.to_thread(service.list_session_views, current_user, status_filter)
        items = [PrivateSessionResponse.from_view(view) for view in views]
        return PrivateSessionListResponse(items=items, total=len(items))
    except DomainException as e:
        handle_domain_exception(e)


@router.post(
    "",
    response_model=PrivateSessionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        403: {"description": "Only students or linked parents can request"},
        404: {"description": "Availability slot not found"},
    },
)
async def request_private_session(
    background_tasks: BackgroundTasks,
    payload: PrivateSessionCreate = Body(...),
    current_user: User = Depends(get_current_user),
    service: PrivateSessionService = Depends(get_private_session_service),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> PrivateSessionResponse:
    """Request a private session from an open private availability slot."""
    try:
        result = await asyncio.to_thread(
            service.request_session,
            current_user,
            payload.availability_id,
            payload.student_id,
            payload.student_notes,
        )
        return await _respond(result, current_user, service, background_tasks, session_factory)
    except DomainException as e:
        handle_domain_exception(e)


# ============================================================================
# Dynamic routes (with path parameters)
# ============================================================================


@router.get(
    "/{session_id}",
    response_model=PrivateSessionResponse,
    responses={404: {"description": "Private session not found"}},
)
async def get_private_session(
    session_id: str = _session_id_path(),
    current_user: User = Depends(get_current_user),
    service: PrivateSessionService = Depends(get_private_session_service),
) -> PrivateSessionResponse:
    """Full session details with the caller's available actions."""
    try:
        view = await asyncio.to_thread(service.get_session_view, current_user, session_id)
        return PrivateSessionResponse.from_view(view)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{session_id}/accept", response_model=PrivateSessionResponse)
async def accept_private_session(
    background_tasks: BackgroundTasks,
    session_id: str = _session_id_path(),
    current_user: User = Depends(get_current_user),
    service: PrivateSessionService = Depends(get_private_session_service),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> PrivateSessionResponse:
    """Coach or admin accepts a pending request (or a student's counter-proposal)."""
    try:
        result = await asyncio.to_thread(service.accept, current_user, session_id)
        return await _respond(result, current_user, service, background_tasks, session_factory)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{session_id}/reject", response_model=PrivateSessionResponse)
async def reject_private_session(
    background_tasks: BackgroundTasks,
    session_id: str = _session_id_path(),
    payload: Optional[PrivateSessionReject] = Body(None),
    current_user: User = Depends(get_current_user),
    service: PrivateSessionService = Depends(get_private_session_service),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> PrivateSessionResponse:
    """Coach or admin declines the session."""
    try:
        notes = payload.notes if payload else None
        result = await asyncio.to_thread(service.reject, current_user, session_id, notes)
        return await _respond(result, current_user, service, background_tasks, session_factory)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{session_id}/reschedule", response_model=PrivateSessionResponse)
async def propose_private_session_reschedule(
    background_tasks: BackgroundTasks,
    session_id: str = _session_id_path(),
    payload: PrivateSessionReschedule = Body(...),
    current_user: User = Depends(get_current_user),
    service: PrivateSessionService = Depends(get_private_session_service),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> PrivateSessionResponse:
    """Propose a new schedule; the other side must accept it."""
    try:
        result = await asyncio.to_thread(
            service.propose_reschedule,
            current_user,
            session_id,
            payload.proposed_date,
            payload.proposed_start_time,
            payload.proposed_end_time,
            payload.notes,
        )
        return await _respond(result, current_user, service, background_tasks, session_factory)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{session_id}/accept-reschedule", response_model=PrivateSessionResponse)
async def accept_private_session_reschedule(
    background_tasks: BackgroundTasks,
    session_id: str = _session_id_path(),
    current_user: User = Depends(get_current_user),
    service: PrivateSessionService = Depends(get_private_session_service),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> PrivateSessionResponse:
    """Accept the pending reschedule proposal."""
    try:
        result = await asyncio.to_thread(service.accept_reschedule, current_user, session_id)
        return await _respond(result, current_user, service, background_tasks, session_factory)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{session_id}/approve", response_model=PrivateSessionResponse)
async def approve_private_session(
    background_tasks: BackgroundTasks,
    session_id: str = _session_id_path(),
    payload: PrivateSessionApprove = Body(...),
    current_user: User = Depends(get_current_user),
    service: PrivateSessionService = Depends(get_private_session_service),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> PrivateSessionResponse:
    """Admin sets the price and moves the session to awaiting payment."""
    try:
        result = await asyncio.to_thread(
            service.admin_approve,
            current_user,
            session_id,
            payload.price_cad,
            payload.zoom_link,
            payload.assistant_id,
        )
        return await _respond(result, current_user, service, background_tasks, session_factory)
    except DomainException as e:
        handle_domain_exception(e)


@router.post(
    "/{session_id}/checkout",
    response_model=CheckoutResponse,
    responses={502: {"description": "Payment processor unavailable"}},
)
async def create_private_session_checkout(
    session_id: str = _session_id_path(),
    current_user: User = Depends(get_current_user),
    service: PrivateSessionService = Depends(get_private_session_service),
) -> CheckoutResponse:
    """Start a hosted card checkout; payment is confirmed by webhook."""
    try:
        checkout = await asyncio.to_thread(service.create_card_checkout, current_user, session_id)
        return CheckoutResponse(
            checkout_url=checkout.checkout_url,
            checkout_session_id=checkout.checkout_session_id,
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{session_id}/etransfer", response_model=PrivateSessionResponse)
async def pay_private_session_by_etransfer(
    background_tasks: BackgroundTasks,
    session_id: str = _session_id_path(),
    current_user: User = Depends(get_current_user),
    service: PrivateSessionService = Depends(get_private_session_service),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> PrivateSessionResponse:
    """Confirm the session with e-transfer as the payment method."""
    try:
        result = await asyncio.to_thread(service.pay_by_etransfer, current_user, session_id)
        return await _respond(result, current_user, service, background_tasks, session_factory)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{session_id}/complete", response_model=PrivateSessionResponse)
async def complete_private_session(
    background_tasks: BackgroundTasks,
    session_id: str = _session_id_path(),
    current_user: User = Depends(get_current_user),
    service: PrivateSessionService = Depends(get_private_session_service),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> PrivateSessionResponse:
    """Mark a confirmed session as completed."""
    try:
        result = await asyncio.to_thread(service.complete, current_user, session_id)
        return await _respond(result, current_user, service, background_tasks, session_factory)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{session_id}/cancel", response_model=PrivateSessionResponse)
async def cancel_private_session(
    background_tasks: BackgroundTasks,
    session_id: str = _session_id_path(),
    current_user: User = Depends(get_current_user),
    service: PrivateSessionService = Depends(get_private_session_service),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> PrivateSessionResponse:
    """Cancel the session. Cancelling an already cancelled session is a no-op."""
    try:
        result = await asyncio.to_thread(service.cancel, current_user, session_id)
        return await _respond(result, current_user, service, background_tasks, session_factory)
    except DomainException as e:
        handle_domain_exception(e)
