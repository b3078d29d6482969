"""Pydantic schemas for EventRequests and staff availability."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from eventhub.auth import Role
from eventhub.models.event_request import RequestStatus, RequestType
from eventhub.schemas.event import EventOut


class DateOptionIn(BaseModel):
    start_time_utc: datetime
    end_time_utc: datetime


class DateOptionOut(BaseModel):
    start_time_utc: datetime
    end_time_utc: datetime


class ExistingRequestCreate(BaseModel):
    facility_id: str
    event_id: str
    notes: Optional[str] = None
    expected_attendees: Optional[int] = None
    form_submission_id: Optional[str] = None


class CustomRequestCreate(BaseModel):
    """A custom event; with ``preferred_dates`` staff are asked which dates they can make."""

    facility_id: str
    title: Optional[str] = None
    description: Optional[str] = None
    start_time_utc: Optional[datetime] = None
    end_time_utc: Optional[datetime] = None
    location_name: Optional[str] = None
    location_address: Optional[str] = None
    expected_attendees: Optional[int] = None
    notes: Optional[str] = None
    form_submission_id: Optional[str] = None
    preferred_dates: list[DateOptionIn] = []


class ApprovePayload(BaseModel):
    """Optional reviewer adjustments for the event created from a custom request."""

    title: Optional[str] = None
    description: Optional[str] = None
    start_time_utc: Optional[datetime] = None
    end_time_utc: Optional[datetime] = None
    max_attendees: Optional[int] = None
    location_id: Optional[str] = None


class ApproveWithDatePayload(BaseModel):
    selected_date_index: int
    location_id: Optional[str] = None


class RejectPayload(BaseModel):
    reason: str = ""


class AvailabilityPayload(BaseModel):
    availability: list[bool]
    notes: Optional[str] = None


class EventRequestOut(BaseModel):
    request_id: str
    request_type: RequestType
    status: RequestStatus
    facility_id: str
    requested_by: str
    existing_event_id: Optional[str] = None
    custom_title: Optional[str] = None
    custom_description: Optional[str] = None
    custom_start_time_utc: Optional[datetime] = None
    custom_end_time_utc: Optional[datetime] = None
    custom_location_name: Optional[str] = None
    custom_location_address: Optional[str] = None
    expected_attendees: Optional[int] = None
    notes: Optional[str] = None
    preferred_dates: Optional[list[DateOptionOut]] = None
    selected_date_index: Optional[int] = None
    form_submission_id: Optional[str] = None
    requested_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    approved_event_id: Optional[str] = None
    cancelled_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AvailabilityResponseOut(BaseModel):
    response_id: str
    request_id: str
    staff_id: str
    availability: list[bool]
    notes: Optional[str] = None
    responded_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AvailableStaffOut(BaseModel):
    user_id: str
    display_name: Optional[str] = None
    role: Role

    model_config = {"from_attributes": True}


class DateOptionSummaryOut(BaseModel):
    date_index: int
    start_time_utc: datetime
    end_time_utc: datetime
    available_count: int
    available_staff: list[AvailableStaffOut]

    model_config = {"from_attributes": True}


class AvailabilityOverviewOut(BaseModel):
    request: EventRequestOut
    responses: list[AvailabilityResponseOut]
    summary: list[DateOptionSummaryOut]

    model_config = {"from_attributes": True}


class FacilityEventHistoryOut(BaseModel):
    event: EventOut
    request_id: Optional[str] = None
    requested_at: Optional[datetime] = None
    confirmed_staff_count: int
    checked_in_count: int
    average_rating: Optional[float] = None

    model_config = {"from_attributes": True}
