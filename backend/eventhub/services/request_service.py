"""Event request ledger: owns the EventRequest lifecycle.

    PENDING ────────────────approve──────────────▶ APPROVED
    GATHERING_AVAILABILITY ─approve_with_selected_date─▶ APPROVED
    PENDING | GATHERING_AVAILABILITY ──reject──▶ REJECTED
    PENDING | GATHERING_AVAILABILITY ──cancel──▶ CANCELLED

A custom request that proposes several dates starts in GATHERING_AVAILABILITY;
field staff answer for each date and a reviewer later picks one. Every other
request starts PENDING.

Every transition leaves an open status through a conditional
``UPDATE ... WHERE status IN (...)``; the row count decides who won, so a
second concurrent reviewer sees InvalidState and its transaction (including
any Event it had started to build) rolls back. Approving a custom request
creates the Event in that same transaction. At most one PENDING request may
exist per (facility, existing event); a partial unique index backs the check.

Facts are published only after commit, and audit entries are written
best-effort after commit; neither can undo a transition.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from eventhub.auth import FIELD_STAFF_ROLES, REVIEWER_ROLES, Actor, Role, require_actor, require_role
from eventhub.config import settings
from eventhub.database import insert_if_absent
from eventhub.errors import DomainError, DuplicateRequest, Forbidden, InvalidState, NotFound, ValidationError
from eventhub.models.attendance import EventAttendance, RSVPStatus
from eventhub.models.event import Event, EventOrigin, EventStatus
from eventhub.models.event_request import (
    OPEN_STATUSES, EventRequest, EventRequestResponse, RequestStatus, RequestType,
)
from eventhub.models.facility import Facility, Location
from eventhub.models.user import User
from eventhub.services import attendance_service, audit_service
from eventhub.services.event_service import build_event, validate_schedule
from eventhub.services.fact_bus import Fact, FactBus, FactType
from eventhub.timeutil import ensure_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DateOption:
    start_time_utc: datetime
    end_time_utc: datetime


@dataclass(frozen=True)
class ExistingEventPayload:
    event_id: str
    notes: Optional[str] = None
    expected_attendees: Optional[int] = None
    form_submission_id: Optional[str] = None


@dataclass(frozen=True)
class CustomEventPayload:
    title: Optional[str]
    start_time_utc: Optional[datetime]
    end_time_utc: Optional[datetime]
    location_name: Optional[str]
    description: Optional[str] = None
    location_address: Optional[str] = None
    expected_attendees: Optional[int] = None
    notes: Optional[str] = None
    form_submission_id: Optional[str] = None
    preferred_dates: tuple[DateOption, ...] = ()


@dataclass(frozen=True)
class ApprovalOverrides:
    """Reviewer adjustments applied to the Event created for a custom request."""

    title: Optional[str] = None
    description: Optional[str] = None
    start_time_utc: Optional[datetime] = None
    end_time_utc: Optional[datetime] = None
    max_attendees: Optional[int] = None
    location_id: Optional[str] = None


@dataclass(frozen=True)
class AvailableStaff:
    user_id: str
    display_name: Optional[str]
    role: Role


@dataclass(frozen=True)
class DateOptionSummary:
    date_index: int
    start_time_utc: datetime
    end_time_utc: datetime
    available_count: int
    available_staff: list[AvailableStaff] = field(default_factory=list)


@dataclass(frozen=True)
class AvailabilityOverview:
    request: EventRequest
    responses: list[EventRequestResponse]
    summary: list[DateOptionSummary]


@dataclass(frozen=True)
class FacilityEventHistory:
    event: Event
    request_id: Optional[str]
    requested_at: Optional[datetime]
    confirmed_staff_count: int
    checked_in_count: int
    average_rating: Optional[float]


def _get_request(db: Session, request_id: str) -> EventRequest:
    request = db.query(EventRequest).filter(EventRequest.request_id == request_id).first()
    if not request:
        raise NotFound("Request not found.")
    return request


def _get_facility_for_actor(db: Session, actor: Actor, facility_id: str) -> Facility:
    facility = db.query(Facility).filter(Facility.facility_id == facility_id).first()
    if not facility:
        raise NotFound("Facility not found.")
    if facility.contact_user_id != actor.user_id and actor.role != Role.admin:
        raise Forbidden("You can only submit requests for your own facility.")
    return facility


def _fact_payload(request: EventRequest) -> dict[str, Any]:
    facility = request.facility
    return {
        "request_id": request.request_id,
        "request_type": request.request_type.value,
        "status": request.status.value,
        "facility_id": request.facility_id,
        "facility_name": facility.name if facility else None,
        "contact_user_id": facility.contact_user_id if facility else None,
        "requested_by": request.requested_by,
        "title": request.display_title,
        "approved_event_id": request.approved_event_id,
        "rejection_reason": request.rejection_reason,
    }


def _claim(db: Session, request_id: str, from_statuses: Iterable[RequestStatus], **values: Any) -> None:
    """Move a request out of one of ``from_statuses``, or fail if someone beat us to it."""
    result = db.execute(
        update(EventRequest)
        .where(EventRequest.request_id == request_id, EventRequest.status.in_(list(from_statuses)))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidState("Request is no longer open.")


def _require_open(request: EventRequest, message: str) -> None:
    if request.is_terminal:
        raise InvalidState(message)


def _validate_expected_attendees(value: Optional[int]) -> None:
    if value is not None and value < 1:
        raise ValidationError("Expected attendees must be at least 1.")


# ── Facility actions ───────────────────────────────────────────────


def submit_request(
    db: Session,
    actor: Optional[Actor],
    facility_id: str,
    payload: ExistingEventPayload | CustomEventPayload,
    bus: FactBus,
    now: Optional[datetime] = None,
) -> EventRequest:
    """Create a request for an existing published event or a custom one."""
    actor = require_actor(actor)
    facility = _get_facility_for_actor(db, actor, facility_id)
    now = ensure_utc(now) or utcnow()

    if isinstance(payload, ExistingEventPayload):
        request = _build_existing_request(db, actor, facility, payload, now)
        audit_action = "EVENT_REQUEST_CREATED"
    elif isinstance(payload, CustomEventPayload):
        request = _build_custom_request(actor, facility, payload)
        audit_action = "CUSTOM_EVENT_REQUEST_CREATED"
    else:
        raise ValidationError("Unknown request type.")

    db.add(request)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        if isinstance(payload, ExistingEventPayload):
            # Lost the race against a concurrent submission for the same event.
            raise DuplicateRequest()
        raise
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(request)
    logger.info(
        "EventRequest %s (%s, %s) submitted by facility %s",
        request.request_id, request.request_type.value, request.status.value, facility.facility_id,
    )

    audit_service.record(db, audit_action, actor.user_id, {
        "request_id": request.request_id,
        "facility_id": facility.facility_id,
        "event_id": request.existing_event_id,
        "title": request.display_title,
        "form_submission_id": request.form_submission_id,
        "preferred_date_count": len(request.preferred_dates or []),
    })
    bus.publish(Fact(type=FactType.event_request_submitted, actor_id=actor.user_id, payload=_fact_payload(request)))
    return request


def _find_pending_duplicate(db: Session, facility_id: str, event_id: str) -> Optional[EventRequest]:
    return (
        db.query(EventRequest)
        .filter(
            EventRequest.facility_id == facility_id,
            EventRequest.existing_event_id == event_id,
            EventRequest.status == RequestStatus.pending,
        )
        .first()
    )


def _build_existing_request(
    db: Session, actor: Actor, facility: Facility, payload: ExistingEventPayload, now: datetime
) -> EventRequest:
    _validate_expected_attendees(payload.expected_attendees)
    event = db.query(Event).filter(Event.event_id == payload.event_id).first()
    if not event:
        raise NotFound("Event not found.")
    if event.status != EventStatus.published:
        raise InvalidState("Event is not available for requests.")
    if ensure_utc(event.end_time_utc) <= now:
        raise InvalidState("This event has already ended.")
    if _find_pending_duplicate(db, facility.facility_id, event.event_id):
        raise DuplicateRequest()

    request = EventRequest(
        request_type=RequestType.request_existing,
        status=RequestStatus.pending,
        facility_id=facility.facility_id,
        requested_by=actor.user_id,
        existing_event_id=event.event_id,
        notes=payload.notes or None,
        expected_attendees=payload.expected_attendees,
        form_submission_id=payload.form_submission_id,
    )
    request.existing_event = event
    request.facility = facility
    return request


def _build_custom_request(actor: Actor, facility: Facility, payload: CustomEventPayload) -> EventRequest:
    if not payload.title or not payload.title.strip():
        raise ValidationError("Title is required.")
    if not payload.location_name or not payload.location_name.strip():
        raise ValidationError("Location is required.")

    start, end = payload.start_time_utc, payload.end_time_utc
    preferred_dates = None
    if payload.preferred_dates:
        for option in payload.preferred_dates:
            validate_schedule(option.start_time_utc, option.end_time_utc)
        preferred_dates = [
            {
                "start_time_utc": ensure_utc(option.start_time_utc).isoformat(),
                "end_time_utc": ensure_utc(option.end_time_utc).isoformat(),
            }
            for option in payload.preferred_dates
        ]
        # The first proposed date stands in until a reviewer selects one.
        start = start or payload.preferred_dates[0].start_time_utc
        end = end or payload.preferred_dates[0].end_time_utc
    validate_schedule(start, end)
    _validate_expected_attendees(payload.expected_attendees)

    request = EventRequest(
        request_type=RequestType.create_custom,
        status=RequestStatus.gathering_availability if preferred_dates else RequestStatus.pending,
        facility_id=facility.facility_id,
        requested_by=actor.user_id,
        custom_title=payload.title.strip(),
        custom_description=payload.description or None,
        custom_start_time_utc=ensure_utc(start),
        custom_end_time_utc=ensure_utc(end),
        custom_location_name=payload.location_name.strip(),
        custom_location_address=payload.location_address or None,
        expected_attendees=payload.expected_attendees,
        notes=payload.notes or None,
        preferred_dates=preferred_dates,
        form_submission_id=payload.form_submission_id,
    )
    request.facility = facility
    return request


def cancel(db: Session, actor: Optional[Actor], request_id: str, bus: FactBus, now: Optional[datetime] = None) -> EventRequest:
    """Withdraw an open request; only the original requester may do this."""
    actor = require_actor(actor)
    request = _get_request(db, request_id)
    if request.requested_by != actor.user_id:
        raise Forbidden("Only the original requester can cancel this request.")
    _require_open(request, "Only open requests can be cancelled.")

    try:
        _claim(db, request_id, OPEN_STATUSES, status=RequestStatus.cancelled, cancelled_at=ensure_utc(now) or utcnow())
        db.commit()
    except (DomainError, SQLAlchemyError):
        db.rollback()
        raise
    db.refresh(request)
    logger.info("EventRequest %s cancelled by %s", request_id, actor.user_id)

    audit_service.record(db, "EVENT_REQUEST_CANCELLED", actor.user_id, {"request_id": request_id})
    bus.publish(Fact(type=FactType.event_request_cancelled, actor_id=actor.user_id, payload=_fact_payload(request)))
    return request


# ── Staff availability ─────────────────────────────────────────────


def submit_availability(
    db: Session,
    actor: Optional[Actor],
    request_id: str,
    availability: list[bool],
    bus: FactBus,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> EventRequestResponse:
    """Record (or replace) a field staff member's answer for each proposed date."""
    actor = require_role(actor, FIELD_STAFF_ROLES)
    request = _get_request(db, request_id)
    if request.status != RequestStatus.gathering_availability:
        raise InvalidState("This request is no longer accepting responses.")
    if availability is None or len(availability) != len(request.preferred_dates or []):
        raise ValidationError("Invalid availability data.")
    answers = [bool(value) for value in availability]
    now = ensure_utc(now) or utcnow()
    values = {
        "availability": answers,
        "notes": notes.strip() if notes and notes.strip() else None,
        "responded_at": now,
    }

    try:
        is_new = insert_if_absent(
            db,
            EventRequestResponse,
            {"request_id": request_id, "staff_id": actor.user_id, **values},
            ("request_id", "staff_id"),
        )
        if not is_new:
            db.execute(
                update(EventRequestResponse)
                .where(EventRequestResponse.request_id == request_id, EventRequestResponse.staff_id == actor.user_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    response = (
        db.query(EventRequestResponse)
        .populate_existing()
        .filter(EventRequestResponse.request_id == request_id, EventRequestResponse.staff_id == actor.user_id)
        .one()
    )
    response_count = (
        db.query(func.count(EventRequestResponse.response_id))
        .filter(EventRequestResponse.request_id == request_id)
        .scalar()
    )
    logger.info(
        "Staff %s %s availability for request %s (%d responses)",
        actor.user_id, "submitted" if is_new else "updated", request_id, response_count,
    )

    audit_service.record(db, "EVENT_REQUEST_AVAILABILITY_SUBMITTED", actor.user_id, {
        "request_id": request_id,
        "availability": answers,
    })
    bus.publish(Fact(type=FactType.availability_submitted, actor_id=actor.user_id, payload={
        "request_id": request_id,
        "title": request.display_title,
        "facility_name": request.facility.name if request.facility else None,
        "staff_id": actor.user_id,
        "response_count": response_count,
        "is_new": is_new,
    }))
    return response


def list_requests_awaiting_availability(db: Session, actor: Optional[Actor]) -> list[EventRequest]:
    actor = require_actor(actor)
    if actor.role not in FIELD_STAFF_ROLES and not actor.is_reviewer:
        raise Forbidden()
    return (
        db.query(EventRequest)
        .filter(EventRequest.status == RequestStatus.gathering_availability)
        .order_by(EventRequest.requested_at.desc())
        .all()
    )


def get_availability_overview(db: Session, actor: Optional[Actor], request_id: str) -> AvailabilityOverview:
    """A request with every staff response and, per proposed date, who can make it."""
    require_role(actor, REVIEWER_ROLES)
    request = _get_request(db, request_id)
    responses = (
        db.query(EventRequestResponse)
        .filter(EventRequestResponse.request_id == request_id)
        .order_by(EventRequestResponse.responded_at)
        .all()
    )

    summary = []
    for index, (start, end) in enumerate(request.date_options):
        available = [
            AvailableStaff(user_id=r.staff_id, display_name=r.staff.display_name, role=r.staff.role)
            for r in responses
            if index < len(r.availability) and r.availability[index] is True
        ]
        summary.append(DateOptionSummary(
            date_index=index,
            start_time_utc=start,
            end_time_utc=end,
            available_count=len(available),
            available_staff=available,
        ))
    return AvailabilityOverview(request=request, responses=responses, summary=summary)


# ── Reviewer actions ───────────────────────────────────────────────


def approve(
    db: Session,
    actor: Optional[Actor],
    request_id: str,
    bus: FactBus,
    overrides: Optional[ApprovalOverrides] = None,
    now: Optional[datetime] = None,
) -> EventRequest:
    """Approve a PENDING request, materializing the Event for custom requests."""
    actor = require_role(actor, REVIEWER_ROLES)
    request = _get_request(db, request_id)
    if request.status != RequestStatus.pending:
        raise InvalidState("Request is not pending.")
    reviewed_at = ensure_utc(now) or utcnow()

    try:
        _claim(
            db, request_id, {RequestStatus.pending},
            status=RequestStatus.approved, reviewed_by=actor.user_id, reviewed_at=reviewed_at,
        )
        if request.request_type == RequestType.create_custom:
            event = _materialize_custom_event(db, request, overrides or ApprovalOverrides(), actor)
            approved_event_id = event.event_id
        else:
            if not request.existing_event_id:
                raise InvalidState("Request does not reference an event.")
            approved_event_id = request.existing_event_id
        _set_approved_event(db, request_id, approved_event_id)
        db.commit()
    except (DomainError, SQLAlchemyError):
        db.rollback()
        raise
    db.refresh(request)
    logger.info("EventRequest %s approved by %s (event %s)", request_id, actor.user_id, approved_event_id)

    audit_service.record(db, "EVENT_REQUEST_APPROVED", actor.user_id, {
        "request_id": request_id,
        "approved_event_id": approved_event_id,
    })
    payload = _fact_payload(request)
    payload["reviewer_id"] = actor.user_id
    payload["confirmed_staff_ids"] = []
    bus.publish(Fact(type=FactType.event_request_approved, actor_id=actor.user_id, payload=payload))
    return request


def approve_with_selected_date(
    db: Session,
    actor: Optional[Actor],
    request_id: str,
    selected_date_index: int,
    bus: FactBus,
    location_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> EventRequest:
    """Schedule a gathering request on one of its proposed dates.

    Staff who said they were available on that date are confirmed as YES
    attendees of the new event, in response order, up to its capacity.
    """
    actor = require_role(actor, REVIEWER_ROLES)
    request = _get_request(db, request_id)
    if request.status != RequestStatus.gathering_availability:
        raise InvalidState("Request is not in availability gathering phase.")
    options = request.date_options
    if selected_date_index is None or not 0 <= selected_date_index < len(options):
        raise ValidationError("Invalid date selection.")
    start, end = options[selected_date_index]
    available_staff_ids = [
        r.staff_id
        for r in sorted(request.responses, key=lambda r: ensure_utc(r.responded_at))
        if selected_date_index < len(r.availability) and r.availability[selected_date_index] is True
    ]
    reviewed_at = ensure_utc(now) or utcnow()

    try:
        _claim(
            db, request_id, {RequestStatus.gathering_availability},
            status=RequestStatus.approved,
            reviewed_by=actor.user_id,
            reviewed_at=reviewed_at,
            selected_date_index=selected_date_index,
        )
        event = _materialize_custom_event(
            db, request,
            ApprovalOverrides(start_time_utc=start, end_time_utc=end, location_id=location_id),
            actor,
        )
        confirmed = attendance_service.confirm_attendees(db, event.event_id, available_staff_ids, reviewed_at)
        _set_approved_event(db, request_id, event.event_id)
        db.commit()
    except (DomainError, SQLAlchemyError):
        db.rollback()
        raise
    db.refresh(request)
    logger.info(
        "EventRequest %s approved for date %d by %s (event %s, %d staff confirmed)",
        request_id, selected_date_index, actor.user_id, event.event_id, len(confirmed),
    )

    audit_service.record(db, "EVENT_REQUEST_APPROVED_WITH_DATE", actor.user_id, {
        "request_id": request_id,
        "approved_event_id": request.approved_event_id,
        "selected_date_index": selected_date_index,
        "confirmed_staff_ids": confirmed,
    })
    payload = _fact_payload(request)
    payload["reviewer_id"] = actor.user_id
    payload["selected_date_index"] = selected_date_index
    payload["confirmed_staff_ids"] = confirmed
    bus.publish(Fact(type=FactType.event_request_approved, actor_id=actor.user_id, payload=payload))
    return request


def _set_approved_event(db: Session, request_id: str, event_id: str) -> None:
    db.execute(
        update(EventRequest)
        .where(EventRequest.request_id == request_id)
        .values(approved_event_id=event_id)
        .execution_options(synchronize_session=False)
    )


def _materialize_custom_event(db: Session, request: EventRequest, overrides: ApprovalOverrides, actor: Actor) -> Event:
    title = (overrides.title or request.custom_title or "").strip()
    start = overrides.start_time_utc or request.custom_start_time_utc
    end = overrides.end_time_utc or request.custom_end_time_utc
    if not title:
        raise ValidationError("Title is required.")
    validate_schedule(start, end)

    if overrides.location_id:
        location = db.query(Location).filter(Location.location_id == overrides.location_id).first()
        if not location:
            raise NotFound("Location not found.")
    elif request.custom_location_name:
        location = Location(
            name=request.custom_location_name,
            address=request.custom_location_address or request.custom_location_name,
        )
        db.add(location)
    else:
        location = Location(name=request.facility.name, address=request.facility.address)
        db.add(location)
    return build_event(
        db,
        title=title,
        start_utc=start,
        end_utc=end,
        max_attendees=(
            overrides.max_attendees
            or request.expected_attendees
            or settings.DEFAULT_CUSTOM_MAX_ATTENDEES
        ),
        description=overrides.description or request.custom_description,
        location=location,
        facility_id=request.facility_id,
        created_by=actor.user_id,
        origin=EventOrigin.facility_requested,
    )


def reject(
    db: Session,
    actor: Optional[Actor],
    request_id: str,
    reason: Optional[str],
    bus: FactBus,
    now: Optional[datetime] = None,
) -> EventRequest:
    """Decline an open request; a non-blank reason is mandatory."""
    actor = require_role(actor, REVIEWER_ROLES)
    if not reason or not reason.strip():
        raise ValidationError("Rejection reason is required.")
    request = _get_request(db, request_id)
    _require_open(request, "Request is no longer open.")

    try:
        _claim(
            db, request_id, OPEN_STATUSES,
            status=RequestStatus.rejected,
            reviewed_by=actor.user_id,
            reviewed_at=ensure_utc(now) or utcnow(),
            rejection_reason=reason.strip(),
        )
        db.commit()
    except (DomainError, SQLAlchemyError):
        db.rollback()
        raise
    db.refresh(request)
    logger.info("EventRequest %s rejected by %s", request_id, actor.user_id)

    audit_service.record(db, "EVENT_REQUEST_REJECTED", actor.user_id, {
        "request_id": request_id,
        "reason": request.rejection_reason,
    })
    payload = _fact_payload(request)
    payload["reviewer_id"] = actor.user_id
    bus.publish(Fact(type=FactType.event_request_rejected, actor_id=actor.user_id, payload=payload))
    return request


# ── Queries ────────────────────────────────────────────────────────


def get_request(db: Session, actor: Optional[Actor], request_id: str) -> EventRequest:
    actor = require_actor(actor)
    request = _get_request(db, request_id)
    if not actor.is_reviewer and request.facility.contact_user_id != actor.user_id:
        raise Forbidden()
    return request


def _get_facility_for_reader(db: Session, actor: Actor, facility_id: str) -> Facility:
    facility = db.query(Facility).filter(Facility.facility_id == facility_id).first()
    if not facility:
        raise NotFound("Facility not found.")
    if not actor.is_reviewer and facility.contact_user_id != actor.user_id:
        raise Forbidden()
    return facility


def list_requests_for_facility(db: Session, actor: Optional[Actor], facility_id: str) -> list[EventRequest]:
    actor = require_actor(actor)
    _get_facility_for_reader(db, actor, facility_id)
    return (
        db.query(EventRequest)
        .filter(EventRequest.facility_id == facility_id)
        .order_by(EventRequest.requested_at.desc())
        .all()
    )


def list_requests(db: Session, actor: Optional[Actor], status: Optional[RequestStatus] = None) -> list[EventRequest]:
    require_role(actor, REVIEWER_ROLES)
    query = db.query(EventRequest)
    if status:
        query = query.filter(EventRequest.status == status)
    return query.order_by(EventRequest.requested_at.desc()).all()


def list_pending_requests(db: Session, actor: Optional[Actor]) -> list[EventRequest]:
    return list_requests(db, actor, RequestStatus.pending)


def facility_event_history(db: Session, actor: Optional[Actor], facility_id: str) -> list[FacilityEventHistory]:
    """Events a facility has hosted or joined, newest first, with attendance stats.

    Covers events reached through approved requests and published or completed
    events created for the facility directly; each event appears once.
    """
    actor = require_actor(actor)
    _get_facility_for_reader(db, actor, facility_id)

    approved = (
        db.query(EventRequest)
        .filter(EventRequest.facility_id == facility_id, EventRequest.status == RequestStatus.approved)
        .order_by(EventRequest.requested_at.desc())
        .all()
    )
    entries: dict[str, tuple[Event, Optional[EventRequest]]] = {}
    for request in approved:
        event = request.existing_event or request.approved_event
        if event is not None and event.event_id not in entries:
            entries[event.event_id] = (event, request)
    direct = (
        db.query(Event)
        .filter(
            Event.facility_id == facility_id,
            Event.status.in_([EventStatus.published, EventStatus.completed]),
        )
        .all()
    )
    for event in direct:
        entries.setdefault(event.event_id, (event, None))

    history = [_history_entry(db, event, request) for event, request in entries.values()]
    history.sort(key=lambda h: ensure_utc(h.event.start_time_utc), reverse=True)
    return history


def _history_entry(db: Session, event: Event, request: Optional[EventRequest]) -> FacilityEventHistory:
    confirmed_staff = (
        db.query(func.count(EventAttendance.attendance_id))
        .join(User, User.user_id == EventAttendance.user_id)
        .filter(
            EventAttendance.event_id == event.event_id,
            EventAttendance.status == RSVPStatus.yes,
            User.role.in_(list(FIELD_STAFF_ROLES)),
        )
        .scalar()
    )
    checked_in = (
        db.query(func.count(EventAttendance.attendance_id))
        .filter(EventAttendance.event_id == event.event_id, EventAttendance.check_in_time.isnot(None))
        .scalar()
    )
    average = (
        db.query(func.avg(EventAttendance.feedback_rating))
        .filter(EventAttendance.event_id == event.event_id, EventAttendance.feedback_rating.isnot(None))
        .scalar()
    )
    return FacilityEventHistory(
        event=event,
        request_id=request.request_id if request else None,
        requested_at=request.requested_at if request else None,
        confirmed_staff_count=int(confirmed_staff or 0),
        checked_in_count=int(checked_in or 0),
        average_rating=round(float(average), 2) if average is not None else None,
    )
