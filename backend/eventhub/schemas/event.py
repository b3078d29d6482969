"""Pydantic schemas for Events and attendance."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from eventhub.models.attendance import RSVPStatus
from eventhub.models.event import EventOrigin, EventStatus


class EventCreate(BaseModel):
    title: str
    description: Optional[str] = None
    start_time_utc: datetime
    end_time_utc: datetime
    max_attendees: int
    location_id: Optional[str] = None
    location_name: Optional[str] = None
    location_address: Optional[str] = None


class LocationOut(BaseModel):
    location_id: str
    name: str
    address: Optional[str] = None

    model_config = {"from_attributes": True}


class EventOut(BaseModel):
    event_id: str
    title: str
    description: Optional[str] = None
    start_time_utc: datetime
    end_time_utc: datetime
    max_attendees: int
    confirmed_count: int
    status: EventStatus
    origin: EventOrigin
    facility_id: Optional[str] = None
    location: Optional[LocationOut] = None

    model_config = {"from_attributes": True}


class RSVPPayload(BaseModel):
    status: str  # YES, NO, MAYBE


class FeedbackPayload(BaseModel):
    rating: int
    comment: Optional[str] = None
    anonymous: bool = False


class AttendanceOut(BaseModel):
    event_id: str
    user_id: str
    status: Optional[RSVPStatus] = None
    check_in_time: Optional[datetime] = None
    feedback_rating: Optional[int] = None
    feedback_comment: Optional[str] = None
    is_anonymous: bool = False
    responded_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AttendanceSummaryOut(BaseModel):
    event_id: str
    max_attendees: int
    yes: int
    no: int
    maybe: int
    checked_in: int
    spots_remaining: int
    average_rating: Optional[float] = None

    model_config = {"from_attributes": True}


EventOut.model_rebuild()
