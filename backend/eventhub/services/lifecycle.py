"""Wiring for the notification path: fact bus → orchestrator → dispatcher."""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.orm import Session

from eventhub.config import settings
from eventhub.services.channels import EmailChannel, SMSChannel
from eventhub.services.dispatcher import NotificationDispatcher
from eventhub.services.fact_bus import FactBus
from eventhub.services.orchestrator import LifecycleOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class Lifecycle:
    bus: FactBus
    dispatcher: NotificationDispatcher
    orchestrator: LifecycleOrchestrator

    def shutdown(self) -> None:
        self.bus.shutdown()
        self.dispatcher.shutdown()


def build_lifecycle(
    session_factory: Callable[[], Session],
    mode: Optional[str] = None,
    email_channel: Optional[EmailChannel] = None,
    sms_channel: Optional[SMSChannel] = None,
    send_timeout: Optional[float] = None,
) -> Lifecycle:
    bus = FactBus(mode=mode or settings.FACT_DELIVERY_MODE, max_workers=settings.DISPATCH_WORKERS)
    dispatcher = NotificationDispatcher(
        session_factory,
        email_channel=email_channel,
        sms_channel=sms_channel,
        send_timeout=send_timeout,
    )
    orchestrator = LifecycleOrchestrator(session_factory, dispatcher)
    orchestrator.register(bus)
    logger.info("Notification lifecycle ready (fact delivery: %s)", bus.mode)
    return Lifecycle(bus=bus, dispatcher=dispatcher, orchestrator=orchestrator)


_lifecycle: Optional[Lifecycle] = None


def get_lifecycle() -> Lifecycle:
    global _lifecycle
    if _lifecycle is None:
        from eventhub.database import SessionLocal
        _lifecycle = build_lifecycle(SessionLocal)
    return _lifecycle


def get_fact_bus() -> FactBus:
    """FastAPI dependency for the process-wide fact bus."""
    return get_lifecycle().bus


def shutdown_lifecycle() -> None:
    global _lifecycle
    if _lifecycle is not None:
        _lifecycle.shutdown()
        _lifecycle = None
