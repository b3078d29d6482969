"""Event management: the collaborator that owns Event rows.

The core only needs a thin slice of it: staff create published events (which
fans out an EVENT_CREATED fact), and everybody reads them. The request ledger
uses :func:`build_event` to materialize approved custom requests inside its
own transaction.
"""
import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from eventhub.auth import EVENT_MANAGER_ROLES, Actor, require_actor, require_role
from eventhub.errors import NotFound, ValidationError
from eventhub.models.event import Event, EventOrigin, EventStatus
from eventhub.models.facility import Location
from eventhub.services import audit_service
from eventhub.services.fact_bus import Fact, FactBus, FactType
from eventhub.timeutil import ensure_utc

logger = logging.getLogger(__name__)

MIN_TITLE_LENGTH = 3


def event_snapshot(event: Event) -> dict[str, Any]:
    """Serialize an event to a JSON-safe dict for audit entries and facts."""
    return {
        "event_id": event.event_id,
        "title": event.title,
        "start_time_utc": ensure_utc(event.start_time_utc).isoformat() if event.start_time_utc else None,
        "end_time_utc": ensure_utc(event.end_time_utc).isoformat() if event.end_time_utc else None,
        "max_attendees": event.max_attendees,
        "status": event.status.value if event.status else None,
        "location_name": event.location.name if event.location else None,
    }


def validate_schedule(start_utc: Optional[datetime], end_utc: Optional[datetime]) -> None:
    if not start_utc:
        raise ValidationError("Start date/time is required.")
    if not end_utc:
        raise ValidationError("End date/time is required.")
    if ensure_utc(end_utc) <= ensure_utc(start_utc):
        raise ValidationError("End time must be after start time.")


def build_event(
    db: Session,
    *,
    title: str,
    start_utc: datetime,
    end_utc: datetime,
    max_attendees: int,
    description: Optional[str] = None,
    location: Optional[Location] = None,
    location_id: Optional[str] = None,
    facility_id: Optional[str] = None,
    created_by: Optional[str] = None,
    origin: EventOrigin = EventOrigin.staff_created,
) -> Event:
    """Add a published Event to the session without committing."""
    if max_attendees is None or max_attendees < 1:
        raise ValidationError("Maximum attendees must be at least 1.")
    event = Event(
        title=title.strip(),
        description=description,
        start_time_utc=ensure_utc(start_utc),
        end_time_utc=ensure_utc(end_utc),
        max_attendees=max_attendees,
        confirmed_count=0,
        status=EventStatus.published,
        origin=origin,
        location_id=location.location_id if location else location_id,
        facility_id=facility_id,
        created_by=created_by,
    )
    if location is not None:
        event.location = location
    db.add(event)
    db.flush()
    return event


def create_event(
    db: Session,
    actor: Optional[Actor],
    bus: FactBus,
    *,
    title: str,
    start_utc: datetime,
    end_utc: datetime,
    max_attendees: int,
    description: Optional[str] = None,
    location_id: Optional[str] = None,
    location_name: Optional[str] = None,
    location_address: Optional[str] = None,
) -> Event:
    """Staff-created, immediately published event."""
    actor = require_role(actor, EVENT_MANAGER_ROLES)

    if not title or len(title.strip()) < MIN_TITLE_LENGTH:
        raise ValidationError(f"Title must be at least {MIN_TITLE_LENGTH} characters.")
    validate_schedule(start_utc, end_utc)

    location = None
    if location_id:
        location = db.query(Location).filter(Location.location_id == location_id).first()
        if not location:
            raise NotFound("Location not found.")
    elif location_name and location_name.strip():
        location = Location(name=location_name.strip(), address=location_address or location_name.strip())
        db.add(location)
    else:
        raise ValidationError("Location is required.")

    event = build_event(
        db,
        title=title,
        start_utc=start_utc,
        end_utc=end_utc,
        max_attendees=max_attendees,
        description=description,
        location=location,
        created_by=actor.user_id,
    )
    db.commit()
    db.refresh(event)
    logger.info("Created event '%s' (%s) by %s", event.title, event.event_id, actor.user_id)

    snapshot = event_snapshot(event)
    audit_service.record(db, "EVENT_CREATED", actor.user_id, {"event_id": event.event_id, "title": event.title})
    bus.publish(Fact(type=FactType.event_created, actor_id=actor.user_id, payload=snapshot))
    return event


def get_event(db: Session, actor: Optional[Actor], event_id: str) -> Event:
    require_actor(actor)
    event = db.query(Event).filter(Event.event_id == event_id).first()
    if not event:
        raise NotFound("Event not found.")
    return event


def list_events(
    db: Session,
    actor: Optional[Actor],
    status: Optional[EventStatus] = None,
    start_after: Optional[datetime] = None,
    start_before: Optional[datetime] = None,
) -> list[Event]:
    require_actor(actor)
    query = db.query(Event)
    if status:
        query = query.filter(Event.status == status)
    if start_after:
        query = query.filter(Event.start_time_utc >= ensure_utc(start_after))
    if start_before:
        query = query.filter(Event.start_time_utc <= ensure_utc(start_before))
    return query.order_by(Event.start_time_utc).all()
