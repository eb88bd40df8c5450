# backend/app/services/email.py
"""
Email Service for the coaching portal.

Sends transactional email through the Resend API, one batch call per
notification event, with metrics collection and error handling from
BaseService.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Sequence, TypedDict

import resend
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import DownstreamServiceException, ServiceException
from .base import BaseService
from .email_console import ConsoleEmailService

logger = logging.getLogger(__name__)


class OutgoingEmail(TypedDict, total=False):
    to: str
    subject: str
    html: str
    text: str


def html_to_text(html_content: str) -> str:
    """Convert HTML content to plain text for better deliverability"""
    text = re.sub(r"<(br|/p|/h1|/tr)\s*/?>", "\n", html_content, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    lines = [re.sub(r"[ \t]+", " ", line).strip() for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


class EmailService(BaseService):
    """
    Service for sending emails using Resend API.

    Extends BaseService for consistent architecture, metrics collection,
    and standardized error handling.
    """

    def __init__(self, db: Optional[Session] = None):
        super().__init__(db)  # type: ignore[arg-type]

        api_key = settings.resend_api_key
        if not api_key:
            raise ServiceException("Resend API key not configured")

        resend.api_key = api_key
        self.from_email = settings.from_email
        self.logger.info("EmailService initialized successfully")

    def _payload(self, message: OutgoingEmail) -> Dict[str, Any]:
        html_content = message.get("html", "")
        # Always include a text version
        text_content = message.get("text") or html_to_text(html_content)
        return {
            "from": self.from_email,
            "to": [message["to"]],
            "subject": message["subject"],
            "html": html_content,
            "text": text_content,
        }

    @BaseService.measure_operation("send_email")
    def send_email(self, message: OutgoingEmail) -> Dict[str, Any]:
        """
        Send a single email.

        Raises:
            DownstreamServiceException: If Resend rejects the request
        """
        try:
            response = resend.Emails.send(self._payload(message))
        except Exception as e:
            self.logger.error(f"Failed to send email to {message.get('to')}: {str(e)}")
            raise DownstreamServiceException(
                f"Email sending failed: {str(e)}", provider="resend"
            ) from e
        self.log_operation("email_sent", to_email=message.get("to"), subject=message.get("subject"))
        return response

    @BaseService.measure_operation("send_batch")
    def send_batch(self, messages: Sequence[OutgoingEmail]) -> int:
        """
        Send a batch of emails in one provider call.

        Returns:
            Number of messages handed to the provider

        Raises:
            DownstreamServiceException: If Resend rejects the batch
        """
        if not messages:
            return 0

        payloads: List[Dict[str, Any]] = [self._payload(message) for message in messages]
        try:
            resend.Batch.send(payloads)
        except Exception as e:
            self.logger.error(f"Failed to send batch of {len(payloads)} emails: {str(e)}")
            raise DownstreamServiceException(
                f"Email batch sending failed: {str(e)}", provider="resend"
            ) from e

        self.log_operation(
            "email_batch_sent",
            count=len(payloads),
            subjects=sorted({payload["subject"] for payload in payloads}),
        )
        return len(payloads)


def get_email_sender(db: Optional[Session] = None) -> "EmailService | ConsoleEmailService":
    """Pick the configured provider; ``console`` only logs."""
    if settings.email_provider == "resend":
        return EmailService(db)
    return ConsoleEmailService()
