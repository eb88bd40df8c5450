"""
Authentication dependencies.

The bearer token's ``sub`` claim is the user id; the user row is loaded on
every request so role changes and deactivation take effect immediately.
"""

import asyncio
import logging
from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from ...auth import invalid_credentials, oauth2_scheme_optional, user_id_from_token
from ...models.user import User
from ...repositories.user_repository import UserRepository
from .database import get_db

logger = logging.getLogger(__name__)


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme_optional),
    db: Session = Depends(get_db),
) -> User:
    """
    Get the current authenticated user from the database.

    Raises:
        HTTPException: 401 if the token is missing or invalid, or the account
            no longer exists or is inactive
    """
    user_id = user_id_from_token(token)
    user = await asyncio.to_thread(UserRepository(db).get_active_by_id, user_id)
    if user is None:
        logger.warning(f"Token subject {user_id} has no active account")
        raise invalid_credentials()
    return user
