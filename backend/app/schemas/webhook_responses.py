"""Pydantic models for webhook endpoint responses."""

from typing import Literal

from pydantic import ConfigDict

from ._strict_base import StrictModel


class WebhookAckResponse(StrictModel):
    """Acknowledgement returned to the payment processor."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)
    status: Literal["processed", "ignored", "duplicate"]
    event_type: str


__all__ = ["WebhookAckResponse"]
