"""Preference gate for portal notifications."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..core.constants import PRIVATE_SESSION_ALERTS


def should_send_notification(preferences: Any, key: str, default: bool = True) -> bool:
    """
    Decide whether a recipient wants notifications for ``key``.

    The stored blob is free-form JSON. Anything other than an explicit boolean
    under ``key`` falls back to ``default``.
    """
    if not isinstance(preferences, Mapping):
        return default
    value = preferences.get(key)
    if not isinstance(value, bool):
        return default
    return value


def private_session_alerts_enabled(preferences: Any) -> bool:
    return should_send_notification(preferences, PRIVATE_SESSION_ALERTS, default=True)
