import logging
from typing import Any, Mapping, Sequence

logger = logging.getLogger(__name__)


class ConsoleEmailService:
    """Email service used when no real provider is configured; it only logs."""

    def __init__(self, *_: Any, **__: Any) -> None:
        pass

    def send_email(self, message: Mapping[str, Any]) -> bool:
        logger.info("[email:console] to=%s subject=%s", message.get("to"), message.get("subject"))
        return True

    def send_batch(self, messages: Sequence[Mapping[str, Any]]) -> int:
        for message in messages:
            self.send_email(message)
        return len(messages)
