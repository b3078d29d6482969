"""Facts and the in-process bus that carries them to the orchestrator.

A fact is an immutable record of a committed ledger transition. Ledgers
publish facts only after their transaction commits; subscribers (the
lifecycle orchestrator) turn them into notifications.

Delivery modes:
- ``background`` hands every handler call to a worker pool so a slow or
  failing notification path never holds the request thread.
- ``inline`` calls handlers on the publishing thread (tests, scripts).

Handler failures are logged and swallowed in both modes. ``publish`` never
raises into the ledger that called it.
"""
import enum
import logging
import uuid
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class FactType(str, enum.Enum):
    event_created = "EVENT_CREATED"
    event_request_submitted = "EVENT_REQUEST_SUBMITTED"
    event_request_approved = "EVENT_REQUEST_APPROVED"
    event_request_rejected = "EVENT_REQUEST_REJECTED"
    event_request_cancelled = "EVENT_REQUEST_CANCELLED"
    availability_submitted = "AVAILABILITY_SUBMITTED"
    rsvp_received = "RSVP_RECEIVED"
    staff_checkin = "STAFF_CHECKIN"


@dataclass(frozen=True)
class Fact:
    type: FactType
    actor_id: str
    payload: dict[str, Any]
    fact_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __str__(self) -> str:
        return f"Fact({self.type.value}, id={self.fact_id[:8]})"


FactHandler = Callable[[Fact], None]


class FactBus:
    """Type-keyed pub/sub for facts."""

    def __init__(self, mode: str = "background", max_workers: int = 4):
        if mode not in ("background", "inline"):
            raise ValueError(f"Unknown fact delivery mode: {mode}")
        self.mode = mode
        self._subscribers: dict[FactType, list[FactHandler]] = defaultdict(list)
        self._executor: Optional[ThreadPoolExecutor] = None
        if mode == "background":
            self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="facts")

    def subscribe(self, fact_type: FactType, handler: FactHandler) -> None:
        self._subscribers[fact_type].append(handler)
        logger.debug("Subscribed %s to %s", getattr(handler, "__name__", handler), fact_type.value)

    def publish(self, fact: Fact) -> int:
        """Deliver ``fact`` to its subscribers; returns how many were scheduled."""
        handlers = list(self._subscribers.get(fact.type, []))
        if not handlers:
            logger.debug("No handlers for %s", fact)
            return 0

        logger.info("Publishing %s to %d handler(s)", fact, len(handlers))
        for handler in handlers:
            if self._executor is not None:
                self._executor.submit(self._deliver, handler, fact)
            else:
                self._deliver(handler, fact)
        return len(handlers)

    @staticmethod
    def _deliver(handler: FactHandler, fact: Fact) -> None:
        try:
            handler(fact)
        except Exception:
            logger.exception("Handler %s failed for %s", getattr(handler, "__name__", handler), fact)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
