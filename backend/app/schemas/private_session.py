# backend/app/schemas/private_session.py
"""
Private session request and response schemas.

Dates travel as ``YYYY-MM-DD`` strings and times as ``HH:MM`` or ``HH:MM:SS``;
times are normalized to ``HH:MM:SS`` before they reach the service layer.
"""

from datetime import date, datetime, time
import re
from typing import List, Optional

from pydantic import ConfigDict, Field, ValidationInfo, field_validator, model_validator

from ..core.constants import MAX_NOTES_LENGTH, MAX_ZOOM_LINK_LENGTH
from ..models.private_session import SessionStatus
from ._strict_base import StrictModel, StrictRequestModel

DATE_ONLY_REGEX = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_REGEX = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?$")


def _ensure_date_only(value: object, field_name: str) -> object:
    if isinstance(value, str):
        candidate = value.strip()
        if not DATE_ONLY_REGEX.fullmatch(candidate):
            raise ValueError(f"{field_name} must be a YYYY-MM-DD date-only string")
        return candidate
    return value


def normalize_time(value: object, field_name: str) -> object:
    """Accept ``HH:MM`` or ``HH:MM:SS`` and return a ``time`` with seconds."""
    if isinstance(value, str):
        match = TIME_REGEX.fullmatch(value.strip())
        if not match:
            raise ValueError(f"{field_name} must be HH:MM or HH:MM:SS")
        hour, minute, second = match.groups()
        return time(int(hour), int(minute), int(second or 0))
    return value


def _clean_notes(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class PrivateSessionCreate(StrictRequestModel):
    """Request a private session from an open private availability slot."""

    availability_id: str = Field(..., min_length=1, description="Private availability slot")
    student_id: Optional[str] = Field(
        None, description="Student the session is for (required for parents)"
    )
    student_notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)

    @field_validator("student_notes")
    @classmethod
    def clean_notes(cls, v: Optional[str]) -> Optional[str]:
        return _clean_notes(v)


class PrivateSessionReschedule(StrictRequestModel):
    """A counter-proposal for a new schedule."""

    proposed_date: date
    proposed_start_time: time
    proposed_end_time: time
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)

    @field_validator("proposed_date", mode="before")
    @classmethod
    def _enforce_date_only(cls, v: object) -> object:
        return _ensure_date_only(v, "proposed_date")

    @field_validator("proposed_start_time", "proposed_end_time", mode="before")
    @classmethod
    def _parse_time(cls, v: object, info: ValidationInfo) -> object:
        return normalize_time(v, info.field_name)

    @field_validator("notes")
    @classmethod
    def clean_notes(cls, v: Optional[str]) -> Optional[str]:
        return _clean_notes(v)

    @model_validator(mode="after")
    def _end_after_start(self) -> "PrivateSessionReschedule":
        if self.proposed_end_time <= self.proposed_start_time:
            raise ValueError("proposed_end_time must be after proposed_start_time")
        return self


class PrivateSessionReject(StrictRequestModel):
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)

    @field_validator("notes")
    @classmethod
    def clean_notes(cls, v: Optional[str]) -> Optional[str]:
        return _clean_notes(v)


class PrivateSessionApprove(StrictRequestModel):
    """Admin approval with commercial terms."""

    price_cad: float = Field(..., gt=0, description="Price in CAD")
    zoom_link: Optional[str] = Field(None, max_length=MAX_ZOOM_LINK_LENGTH)
    assistant_id: Optional[str] = None

    @field_validator("price_cad")
    @classmethod
    def _finite_price(cls, v: float) -> float:
        if v != v or v in (float("inf"), float("-inf")):
            raise ValueError("price_cad must be a finite number")
        return round(v, 2)

    @field_validator("zoom_link")
    @classmethod
    def _clean_link(cls, v: Optional[str]) -> Optional[str]:
        return _clean_notes(v)


class PrivateSessionResponse(StrictModel):
    """A session as seen by the caller."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    coach_id: str
    student_id: str
    assistant_id: Optional[str] = None
    availability_id: Optional[str] = None
    status: SessionStatus
    requested_date: date
    requested_start_time: time
    requested_end_time: time
    timezone: str
    proposed_date: Optional[date] = None
    proposed_start_time: Optional[time] = None
    proposed_end_time: Optional[time] = None
    proposed_by: Optional[str] = None
    price_cad: Optional[float] = None
    payment_method: Optional[str] = None
    zoom_link: Optional[str] = None
    coach_notes: Optional[str] = None
    student_notes: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    admin_approved_at: Optional[datetime] = None
    admin_approved_by: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    when_text: str
    proposed_when_text: Optional[str] = None
    available_actions: List[str] = Field(default_factory=list)

    @classmethod
    def from_view(cls, view) -> "PrivateSessionResponse":
        """Build from a ``PrivateSessionView``."""
        session = view.session
        data = {name: getattr(session, name, None) for name in cls.model_fields}
        data.update(
            when_text=view.when_text,
            proposed_when_text=view.proposed_when_text,
            available_actions=list(view.available_actions),
        )
        return cls(**data)


class PrivateSessionListResponse(StrictModel):
    items: List[PrivateSessionResponse]
    total: int


class CheckoutResponse(StrictModel):
    checkout_url: str
    checkout_session_id: str
