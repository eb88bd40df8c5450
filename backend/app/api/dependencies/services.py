# backend/app/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Each factory builds a request-scoped service bound to the request's
database session.
"""

import logging

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.availability_service import AvailabilityService
from ...services.private_session_service import PrivateSessionService
from ...services.stripe_service import StripeService
from .database import get_db

logger = logging.getLogger(__name__)


def get_stripe_service(db: Session = Depends(get_db)) -> StripeService:
    return StripeService(db)


def get_private_session_service(
    db: Session = Depends(get_db),
    stripe_service: StripeService = Depends(get_stripe_service),
) -> PrivateSessionService:
    """
    Get private session service instance.

    Args:
        db: Database session
        stripe_service: Payment processor wrapper used by card checkout

    Returns:
        PrivateSessionService instance
    """
    return PrivateSessionService(db, stripe_service=stripe_service)


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)
