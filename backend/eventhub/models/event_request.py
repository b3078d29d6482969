"""EventRequest ORM models: a facility's ask for an existing or custom event,
and staff availability responses for custom requests that offer several dates."""
import uuid
import enum
from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, Text, DateTime, Integer, ForeignKey, JSON, Index, UniqueConstraint, Enum as SAEnum, text,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from eventhub.database import Base


class RequestType(str, enum.Enum):
    request_existing = "REQUEST_EXISTING"
    create_custom = "CREATE_CUSTOM"


class RequestStatus(str, enum.Enum):
    pending = "PENDING"
    gathering_availability = "GATHERING_AVAILABILITY"
    approved = "APPROVED"
    rejected = "REJECTED"
    cancelled = "CANCELLED"


OPEN_STATUSES = frozenset({RequestStatus.pending, RequestStatus.gathering_availability})
TERMINAL_STATUSES = frozenset({RequestStatus.approved, RequestStatus.rejected, RequestStatus.cancelled})

# Enum columns persist member names.
_PENDING_ONLY = text("status = 'pending'")


class EventRequest(Base):
    __tablename__ = "event_requests"
    __table_args__ = (
        # At most one PENDING request per (facility, existing event).
        Index(
            "uq_event_requests_pending_existing",
            "facility_id",
            "existing_event_id",
            unique=True,
            sqlite_where=_PENDING_ONLY,
            postgresql_where=_PENDING_ONLY,
        ),
    )

    request_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    request_type = Column(SAEnum(RequestType), nullable=False)
    status = Column(SAEnum(RequestStatus), nullable=False, default=RequestStatus.pending, index=True)
    facility_id = Column(String(36), ForeignKey("facilities.facility_id"), nullable=False, index=True)
    requested_by = Column(String(36), ForeignKey("users.user_id"), nullable=False)

    existing_event_id = Column(String(36), ForeignKey("events.event_id"), nullable=True)

    custom_title = Column(String(255), nullable=True)
    custom_description = Column(Text, nullable=True)
    custom_start_time_utc = Column(DateTime(timezone=True), nullable=True)
    custom_end_time_utc = Column(DateTime(timezone=True), nullable=True)
    custom_location_name = Column(String(200), nullable=True)
    custom_location_address = Column(String(500), nullable=True)
    expected_attendees = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)

    # [{"start_time_utc": iso, "end_time_utc": iso}, ...] when staff availability is gathered.
    preferred_dates = Column(JSON, nullable=True)
    selected_date_index = Column(Integer, nullable=True)

    # Opaque reference into the form-submission collaborator.
    form_submission_id = Column(String(64), nullable=True)

    requested_at = Column(DateTime(timezone=True), server_default=func.now())
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by = Column(String(36), ForeignKey("users.user_id"), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    approved_event_id = Column(String(36), ForeignKey("events.event_id"), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    facility = relationship("Facility")
    existing_event = relationship("Event", foreign_keys=[existing_event_id])
    approved_event = relationship("Event", foreign_keys=[approved_event_id])
    responses = relationship("EventRequestResponse", back_populates="request", order_by="EventRequestResponse.responded_at")

    @property
    def display_title(self) -> str:
        if self.request_type == RequestType.create_custom:
            return self.custom_title or ""
        return self.existing_event.title if self.existing_event else ""

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def date_options(self) -> list[tuple[datetime, datetime]]:
        return [
            (datetime.fromisoformat(option["start_time_utc"]), datetime.fromisoformat(option["end_time_utc"]))
            for option in self.preferred_dates or []
        ]


class EventRequestResponse(Base):
    """One staff member's availability across a request's proposed dates."""

    __tablename__ = "event_request_responses"
    __table_args__ = (
        UniqueConstraint("request_id", "staff_id", name="uq_event_request_responses_request_staff"),
    )

    response_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    request_id = Column(String(36), ForeignKey("event_requests.request_id"), nullable=False, index=True)
    staff_id = Column(String(36), ForeignKey("users.user_id"), nullable=False)
    availability = Column(JSON, nullable=False)  # list[bool], one per proposed date
    notes = Column(Text, nullable=True)
    responded_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    request = relationship("EventRequest", back_populates="responses")
    staff = relationship("User")
