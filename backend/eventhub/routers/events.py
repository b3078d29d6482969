"""Event and attendance API routes."""
import logging
from typing import Optional
from datetime import datetime
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from eventhub.auth import Actor, get_actor
from eventhub.database import get_db
from eventhub.models.event import EventStatus
from eventhub.schemas.event import (
    AttendanceOut,
    AttendanceSummaryOut,
    EventCreate,
    EventOut,
    FeedbackPayload,
    RSVPPayload,
)
from eventhub.services import attendance_service, event_service
from eventhub.services.fact_bus import FactBus
from eventhub.services.lifecycle import get_fact_bus

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=EventOut, status_code=status.HTTP_201_CREATED)
def create_event(
    payload: EventCreate,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    bus: FactBus = Depends(get_fact_bus),
):
    """Create a published event (ADMIN / PAYROLL)."""
    return event_service.create_event(
        db, actor, bus,
        title=payload.title,
        start_utc=payload.start_time_utc,
        end_utc=payload.end_time_utc,
        max_attendees=payload.max_attendees,
        description=payload.description,
        location_id=payload.location_id,
        location_name=payload.location_name,
        location_address=payload.location_address,
    )


@router.get("/", response_model=list[EventOut])
def list_events(
    status_filter: Optional[EventStatus] = Query(None),
    start_after: Optional[datetime] = Query(None),
    start_before: Optional[datetime] = Query(None),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return event_service.list_events(db, actor, status_filter, start_after, start_before)


@router.get("/{event_id}", response_model=EventOut)
def get_event(event_id: str, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    return event_service.get_event(db, actor, event_id)


@router.post("/{event_id}/rsvp", response_model=AttendanceOut)
def rsvp(
    event_id: str,
    payload: RSVPPayload,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    bus: FactBus = Depends(get_fact_bus),
):
    """Set the caller's RSVP (YES / NO / MAYBE); YES is capacity-gated."""
    return attendance_service.rsvp(db, actor, event_id, payload.status, bus)


@router.post("/{event_id}/check-in", response_model=AttendanceOut)
def check_in(
    event_id: str,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    bus: FactBus = Depends(get_fact_bus),
):
    return attendance_service.check_in(db, actor, event_id, bus)


@router.post("/{event_id}/feedback", response_model=AttendanceOut)
def feedback(
    event_id: str,
    payload: FeedbackPayload,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return attendance_service.record_feedback(
        db, actor, event_id, payload.rating, comment=payload.comment, anonymous=payload.anonymous
    )


@router.get("/{event_id}/attendance", response_model=list[AttendanceOut])
def attendance_list(event_id: str, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    return attendance_service.list_attendance(db, actor, event_id)


@router.get("/{event_id}/attendance/me", response_model=Optional[AttendanceOut])
def my_attendance(event_id: str, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    """The caller's own record, or null when they have not responded."""
    return attendance_service.get_my_attendance(db, actor, event_id)


@router.get("/{event_id}/attendance/summary", response_model=AttendanceSummaryOut)
def attendance_summary(event_id: str, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    return attendance_service.attendance_summary(db, actor, event_id)
