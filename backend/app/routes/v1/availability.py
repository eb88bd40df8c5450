# backend/app/routes/v1/availability.py
"""
Availability routes - API v1

Endpoints:
    DELETE /{availability_id} - Delete a slot unless a confirmed session uses it
"""

import asyncio
import logging
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.params import Path

from ...api.dependencies import get_availability_service, get_current_user
from ...core.exceptions import DomainException
from ...models.user import User
from ...services.availability_service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["availability-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.delete(
    "/{availability_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        404: {"description": "Availability slot not found"},
        409: {"description": "A confirmed private session uses this slot"},
    },
)
async def delete_availability(
    availability_id: str = Path(..., description="Availability ULID", pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_user),
    service: AvailabilityService = Depends(get_availability_service),
) -> Response:
    """Delete an availability slot owned by the caller (any slot for admins)."""
    try:
        await asyncio.to_thread(service.delete_slot, current_user, availability_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except DomainException as e:
        handle_domain_exception(e)
