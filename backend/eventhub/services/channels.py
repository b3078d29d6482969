"""External notification channels (email, SMS).

Real transport is a pluggable sink: these implementations log the outgoing
message and keep a history of what was sent so callers and tests can inspect
it. Anything with the same ``send`` signature can be swapped in.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class SentMessage:
    channel: str
    recipient: str
    subject: Optional[str]
    body: str
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class EmailChannel:
    """Logging email sink."""

    name = "email"

    def __init__(self, from_addr: str = "events@eventhub.local"):
        self.from_addr = from_addr
        self.sent_messages: list[SentMessage] = []
        self._lock = threading.Lock()

    def send(self, to: str, subject: str, body: str) -> SentMessage:
        message = SentMessage(channel=self.name, recipient=to, subject=subject, body=body)
        with self._lock:
            self.sent_messages.append(message)
        logger.info("[EMAIL] To: %s | Subject: %s", to, subject)
        logger.debug("[EMAIL BODY] %s", body)
        return message


class SMSChannel:
    """Logging SMS sink."""

    name = "sms"
    MAX_LENGTH = 160

    def __init__(self):
        self.sent_messages: list[SentMessage] = []
        self._lock = threading.Lock()

    def send(self, to: str, message: str) -> SentMessage:
        if len(message) > self.MAX_LENGTH:
            logger.warning("[SMS] Message length (%d) exceeds %d chars, may be split", len(message), self.MAX_LENGTH)
        sent = SentMessage(channel=self.name, recipient=to, subject=None, body=message)
        with self._lock:
            self.sent_messages.append(sent)
        logger.info("[SMS] To: %s", to)
        return sent


def render_email_body(name: str, message: str, link: Optional[str], base_url: str) -> str:
    lines = [f"Hi {name},", "", message, ""]
    if link:
        lines.append(f"View details: {base_url.rstrip('/')}{link}")
        lines.append("")
    lines.append("Best regards,")
    lines.append("The Events Team")
    return "\n".join(lines)


def render_sms_text(title: str, message: str) -> str:
    return f"{title}: {message}"
