"""Service for logging inbound webhooks."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import RepositoryException
from app.models.webhook_event import WebhookEvent
from app.repositories.webhook_event_repository import WebhookEventRepository
from app.services.base import BaseService


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class WebhookLedgerService(BaseService):
    """Business logic for webhook ledger entries."""

    def __init__(self, db: Session) -> None:
        super().__init__(db)
        self.repository = WebhookEventRepository(db)

    def _bump_retry(self, existing: WebhookEvent) -> WebhookEvent:
        existing.retry_count = (existing.retry_count or 0) + 1
        existing.last_retry_at = _now_utc()
        self.repository.flush()
        return existing

    @BaseService.measure_operation("webhook_ledger.log_received")
    def log_received(
        self,
        *,
        source: str,
        event_type: str,
        payload: dict[str, Any],
        event_id: str | None = None,
    ) -> WebhookEvent:
        """
        Log a received webhook before processing.

        A redelivered ``event_id`` returns the existing entry with its retry
        counter bumped instead of creating a second row.
        """
        if event_id:
            existing = self.repository.find_by_source_and_event_id(source, event_id)
            if existing is not None:
                return self._bump_retry(existing)

        try:
            return self.repository.create(
                source=source,
                event_type=event_type or "unknown",
                event_id=event_id,
                payload=payload,
                status="received",
                received_at=_now_utc(),
                retry_count=0,
            )
        except RepositoryException as exc:
            # Race-safe fallback: DB uniqueness won in another worker.
            if isinstance(exc.__cause__, IntegrityError) and event_id:
                existing = self.repository.find_by_source_and_event_id(source, event_id)
                if existing is not None:
                    return self._bump_retry(existing)
            raise

    @BaseService.measure_operation("webhook_ledger.mark_processed")
    def mark_processed(
        self,
        event: WebhookEvent,
        *,
        related_entity_type: str | None = None,
        related_entity_id: str | None = None,
        duration_ms: int | None = None,
        status: str = "processed",
        note: str | None = None,
    ) -> WebhookEvent:
        """Mark webhook as handled; ``status="ignored"`` records a deliberate no-op."""
        event.status = status
        event.processed_at = _now_utc()
        event.related_entity_type = related_entity_type
        event.related_entity_id = related_entity_id
        event.processing_duration_ms = duration_ms
        event.processing_error = note
        self.repository.flush()
        return event

    @BaseService.measure_operation("webhook_ledger.mark_failed")
    def mark_failed(
        self,
        event: WebhookEvent,
        *,
        error: str,
        duration_ms: int | None = None,
    ) -> WebhookEvent:
        """Mark webhook as failed."""
        event.status = "failed"
        event.processing_error = error
        event.processed_at = _now_utc()
        event.processing_duration_ms = duration_ms
        self.repository.flush()
        return event
