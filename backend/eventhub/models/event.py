"""Event ORM model: the attendance target owned by event management."""
import uuid
import enum
from sqlalchemy import Column, String, Text, DateTime, Integer, ForeignKey, CheckConstraint, Enum as SAEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from eventhub.database import Base


class EventStatus(str, enum.Enum):
    draft = "DRAFT"
    published = "PUBLISHED"
    cancelled = "CANCELLED"
    completed = "COMPLETED"


class EventOrigin(str, enum.Enum):
    staff_created = "STAFF_CREATED"
    facility_requested = "FACILITY_REQUESTED"


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("max_attendees >= 1", name="ck_events_max_attendees_positive"),
    )

    event_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    start_time_utc = Column(DateTime(timezone=True), nullable=False)
    end_time_utc = Column(DateTime(timezone=True), nullable=False)
    max_attendees = Column(Integer, nullable=False)
    # Number of YES attendance rows; written only by the attendance ledger.
    confirmed_count = Column(Integer, nullable=False, default=0)
    status = Column(SAEnum(EventStatus), nullable=False, default=EventStatus.published)
    origin = Column(SAEnum(EventOrigin), nullable=False, default=EventOrigin.staff_created)
    location_id = Column(String(36), ForeignKey("locations.location_id"), nullable=True)
    facility_id = Column(String(36), ForeignKey("facilities.facility_id"), nullable=True)
    created_by = Column(String(36), ForeignKey("users.user_id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    location = relationship("Location")
    attendances = relationship("EventAttendance", back_populates="event")
