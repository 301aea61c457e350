from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OutgoingMail:
    kind: str
    to: str
    subject: str
    token: str
    sent_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class MailOutbox:
    """Records account emails (confirmation, password reset).

    Delivery belongs to an external mail provider; the outbox keeps what was
    handed over so it can be inspected.
    """

    def __init__(self, maxlen: int = 500) -> None:
        self._messages: deque[OutgoingMail] = deque(maxlen=maxlen)

    def send(self, *, kind: str, to: str, subject: str, token: str) -> OutgoingMail:
        message = OutgoingMail(kind=kind, to=to, subject=subject, token=token)
        self._messages.append(message)
        logger.info("Queued %s email for %s", kind, to)
        return message

    def sent_to(self, address: str, *, kind: str | None = None) -> list[OutgoingMail]:
        return [
            message
            for message in self._messages
            if message.to == address and (kind is None or message.kind == kind)
        ]

    def latest(self, address: str, *, kind: str | None = None) -> OutgoingMail | None:
        messages = self.sent_to(address, kind=kind)
        return messages[-1] if messages else None
