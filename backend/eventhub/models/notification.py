"""Notification and NotificationPreference ORM models."""
import uuid
import enum
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, Enum as SAEnum
from eventhub.database import Base


class NotificationType(str, enum.Enum):
    event_created = "EVENT_CREATED"
    event_confirmed = "EVENT_CONFIRMED"
    rsvp_received = "RSVP_RECEIVED"
    staff_checkin = "STAFF_CHECKIN"
    event_request_submitted = "EVENT_REQUEST_SUBMITTED"
    event_request_availability = "EVENT_REQUEST_AVAILABILITY"
    event_request_ready = "EVENT_REQUEST_READY"
    event_request_approved = "EVENT_REQUEST_APPROVED"
    event_request_rejected = "EVENT_REQUEST_REJECTED"


def _utcnow():
    return datetime.now(timezone.utc)


class Notification(Base):
    """In-app record of a fact; only ``read`` ever changes."""

    __tablename__ = "notifications"

    notification_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.user_id"), nullable=False, index=True)
    type = Column(SAEnum(NotificationType), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    link = Column(String(500), nullable=True)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)


class NotificationPreference(Base):
    __tablename__ = "notification_preferences"

    user_id = Column(String(36), ForeignKey("users.user_id"), primary_key=True)
    email = Column(Boolean, nullable=False, default=True)
    sms = Column(Boolean, nullable=False, default=False)
    in_app = Column(Boolean, nullable=False, default=True)
