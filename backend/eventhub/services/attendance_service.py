"""Attendance ledger: RSVP, check-in and feedback for one (event, user) pair.

Capacity: ``events.confirmed_count`` mirrors the number of YES rows and is
changed only here, in the same transaction as the attendance row. Entering
YES goes through a single conditional increment

    UPDATE events SET confirmed_count = confirmed_count + 1
     WHERE event_id = :id AND confirmed_count < max_attendees

so two callers racing for the last seat cannot both win: the database
serializes the row update and the loser matches zero rows.

The attendance row itself is changed by compare-and-swap on the status that
was read, so the seat taken or released always matches the transition that
actually happened. A caller whose read went stale re-reads and tries again.
The row is created with ``INSERT ... ON CONFLICT DO NOTHING`` so concurrent
first responses from one user converge on a single row.

Check-in is allowed from ``start - CHECKIN_OPENS_HOURS_BEFORE`` until
``end``, is idempotent, and forces the status to YES. By default check-in
does not re-run the capacity ceiling (walk-ins); set
``CHECKIN_ENFORCES_CAPACITY`` to apply it.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from eventhub.auth import EVENT_MANAGER_ROLES, Actor, require_actor, require_role
from eventhub.config import settings
from eventhub.database import insert_if_absent
from eventhub.errors import DomainError, EventFull, InvalidState, NotFound, ValidationError, WindowClosed
from eventhub.models.attendance import EventAttendance, RSVPStatus
from eventhub.models.event import Event, EventStatus
from eventhub.models.user import User
from eventhub.services import audit_service
from eventhub.services.fact_bus import Fact, FactBus, FactType
from eventhub.timeutil import ensure_utc, utcnow

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5
MAX_WRITE_ATTEMPTS = 5


def _get_event(db: Session, event_id: str) -> Event:
    event = db.query(Event).filter(Event.event_id == event_id).first()
    if not event:
        raise NotFound("Event not found.")
    return event


def _get_record(db: Session, event_id: str, user_id: str) -> Optional[EventAttendance]:
    return (
        db.query(EventAttendance)
        .populate_existing()
        .filter(EventAttendance.event_id == event_id, EventAttendance.user_id == user_id)
        .first()
    )


def _ensure_record(db: Session, event_id: str, user_id: str) -> EventAttendance:
    """Load the (event, user) row, creating an empty one in this transaction if absent."""
    record = _get_record(db, event_id, user_id)
    if record is None:
        insert_if_absent(
            db, EventAttendance, {"event_id": event_id, "user_id": user_id}, ("event_id", "user_id")
        )
        record = _get_record(db, event_id, user_id)
    return record


def _status_is(status: Optional[RSVPStatus]):
    if status is None:
        return EventAttendance.status.is_(None)
    return EventAttendance.status == status


def _swap_status(db: Session, attendance_id: str, expected: Optional[RSVPStatus], **values) -> bool:
    result = db.execute(
        update(EventAttendance)
        .where(EventAttendance.attendance_id == attendance_id, _status_is(expected))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _take_seat(db: Session, event_id: str, enforce_ceiling: bool = True) -> None:
    stmt = update(Event).where(Event.event_id == event_id)
    if enforce_ceiling:
        stmt = stmt.where(Event.confirmed_count < Event.max_attendees)
    result = db.execute(
        stmt.values(confirmed_count=Event.confirmed_count + 1).execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise EventFull()


def _release_seat(db: Session, event_id: str) -> None:
    db.execute(
        update(Event)
        .where(Event.event_id == event_id, Event.confirmed_count > 0)
        .values(confirmed_count=Event.confirmed_count - 1)
        .execution_options(synchronize_session=False)
    )


def _parse_status(status: str | RSVPStatus) -> RSVPStatus:
    try:
        return RSVPStatus(status.upper() if isinstance(status, str) else status)
    except ValueError:
        raise ValidationError(f"Invalid RSVP status: {status}")


def _actor_name(db: Session, user_id: str) -> str:
    user = db.query(User).filter(User.user_id == user_id).first()
    return user.display_name if user and user.display_name else "Staff member"


def rsvp(
    db: Session,
    actor: Optional[Actor],
    event_id: str,
    status: str | RSVPStatus,
    bus: FactBus,
    now: Optional[datetime] = None,
) -> EventAttendance:
    """Set the actor's RSVP, failing with EventFull rather than overbooking."""
    actor = require_actor(actor)
    new_status = _parse_status(status)
    now = ensure_utc(now) or utcnow()

    try:
        event = _get_event(db, event_id)
        if event.status == EventStatus.cancelled:
            raise InvalidState("This event has been cancelled.")
        if ensure_utc(event.end_time_utc) < now:
            raise InvalidState("This event has ended.")
        event_title = event.title

        for _ in range(MAX_WRITE_ATTEMPTS):
            record = _ensure_record(db, event_id, actor.user_id)
            previous = record.status
            if _swap_status(db, record.attendance_id, previous, status=new_status, responded_at=now, updated_at=now):
                break
            # Another response from this user landed after our read.
            db.rollback()
        else:
            raise InvalidState("Your response is being updated elsewhere. Please try again.")

        if new_status == RSVPStatus.yes and previous != RSVPStatus.yes:
            _take_seat(db, event_id)
        elif previous == RSVPStatus.yes and new_status != RSVPStatus.yes:
            _release_seat(db, event_id)
        db.commit()
    except (DomainError, SQLAlchemyError):
        db.rollback()
        raise
    db.refresh(record)
    logger.info("User %s RSVP'd %s to event %s", actor.user_id, new_status.value, event_id)

    audit_service.record(db, "EVENT_RSVP", actor.user_id, {
        "event_id": event_id,
        "status": new_status.value,
        "previous_status": previous.value if previous else None,
    })
    bus.publish(Fact(type=FactType.rsvp_received, actor_id=actor.user_id, payload={
        "event_id": event_id,
        "event_title": event_title,
        "user_id": actor.user_id,
        "user_name": _actor_name(db, actor.user_id),
        "status": new_status.value,
        "previous_status": previous.value if previous else None,
    }))
    return record


def check_in(
    db: Session,
    actor: Optional[Actor],
    event_id: str,
    bus: FactBus,
    now: Optional[datetime] = None,
) -> EventAttendance:
    """Record the actor's arrival; repeated calls are no-op successes."""
    actor = require_actor(actor)
    now = ensure_utc(now) or utcnow()
    event = _get_event(db, event_id)
    event_title = event.title

    window_opens = ensure_utc(event.start_time_utc) - timedelta(hours=settings.CHECKIN_OPENS_HOURS_BEFORE)
    if now < window_opens:
        raise WindowClosed(
            WindowClosed.TOO_EARLY,
            f"Check-in not open yet. You can check in starting "
            f"{settings.CHECKIN_OPENS_HOURS_BEFORE} hours before the event.",
        )
    if now > ensure_utc(event.end_time_utc):
        raise WindowClosed(WindowClosed.ENDED, "This event has ended. Check-in is no longer available.")

    try:
        for _ in range(MAX_WRITE_ATTEMPTS):
            record = _get_record(db, event_id, actor.user_id)
            if record is None:
                raise NotFound("You have not responded to this event.")
            if record.check_in_time is not None:
                logger.debug("User %s already checked in to event %s", actor.user_id, event_id)
                return record
            previous = record.status
            claimed = db.execute(
                update(EventAttendance)
                .where(
                    EventAttendance.attendance_id == record.attendance_id,
                    EventAttendance.check_in_time.is_(None),
                    _status_is(previous),
                )
                .values(check_in_time=now, status=RSVPStatus.yes, updated_at=now)
                .execution_options(synchronize_session=False)
            ).rowcount
            if claimed == 1:
                break
            # A concurrent check-in or RSVP changed the row; look again.
            db.rollback()
        else:
            raise InvalidState("Your attendance is being updated elsewhere. Please try again.")

        if previous != RSVPStatus.yes:
            _take_seat(db, event_id, enforce_ceiling=settings.CHECKIN_ENFORCES_CAPACITY)
        db.commit()
    except (DomainError, SQLAlchemyError):
        db.rollback()
        raise
    db.refresh(record)
    logger.info("User %s checked in to event %s", actor.user_id, event_id)

    audit_service.record(db, "EVENT_CHECK_IN", actor.user_id, {"event_id": event_id, "title": event_title})
    bus.publish(Fact(type=FactType.staff_checkin, actor_id=actor.user_id, payload={
        "event_id": event_id,
        "event_title": event_title,
        "user_id": actor.user_id,
        "user_name": _actor_name(db, actor.user_id),
        "previous_status": previous.value if previous else None,
    }))
    return record


def record_feedback(
    db: Session,
    actor: Optional[Actor],
    event_id: str,
    rating: int,
    comment: Optional[str] = None,
    anonymous: bool = False,
) -> EventAttendance:
    actor = require_actor(actor)
    if rating is None or not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError(f"Rating must be between {MIN_RATING} and {MAX_RATING}.")
    _get_event(db, event_id)

    try:
        record = _ensure_record(db, event_id, actor.user_id)
        record.feedback_rating = rating
        record.feedback_comment = comment.strip() if comment and comment.strip() else None
        record.is_anonymous = bool(anonymous)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(record)
    logger.info("User %s left feedback (%d) on event %s", actor.user_id, rating, event_id)

    audit_service.record(db, "EVENT_FEEDBACK", actor.user_id, {"event_id": event_id, "rating": rating})
    return record


def confirm_attendees(db: Session, event_id: str, user_ids: Iterable[str], now: datetime) -> list[str]:
    """Seat users as YES on an event created in the caller's open transaction.

    Stops at capacity. Does not commit.
    """
    confirmed = []
    for user_id in dict.fromkeys(user_ids):
        try:
            _take_seat(db, event_id)
        except EventFull:
            logger.warning("Event %s filled before confirming all available staff", event_id)
            break
        db.add(EventAttendance(event_id=event_id, user_id=user_id, status=RSVPStatus.yes, responded_at=now))
        confirmed.append(user_id)
    return confirmed


# ── Queries ────────────────────────────────────────────────────────


def get_my_attendance(db: Session, actor: Optional[Actor], event_id: str) -> Optional[EventAttendance]:
    actor = require_actor(actor)
    _get_event(db, event_id)
    return _get_record(db, event_id, actor.user_id)


def list_attendance(db: Session, actor: Optional[Actor], event_id: str) -> list[EventAttendance]:
    require_role(actor, EVENT_MANAGER_ROLES)
    _get_event(db, event_id)
    return (
        db.query(EventAttendance)
        .filter(EventAttendance.event_id == event_id)
        .order_by(EventAttendance.created_at)
        .all()
    )


@dataclass(frozen=True)
class AttendanceSummary:
    event_id: str
    max_attendees: int
    yes: int
    no: int
    maybe: int
    checked_in: int
    spots_remaining: int
    average_rating: Optional[float]


def attendance_summary(db: Session, actor: Optional[Actor], event_id: str) -> AttendanceSummary:
    require_actor(actor)
    event = _get_event(db, event_id)
    counts = dict(
        db.query(EventAttendance.status, func.count(EventAttendance.attendance_id))
        .filter(EventAttendance.event_id == event_id, EventAttendance.status.isnot(None))
        .group_by(EventAttendance.status)
        .all()
    )
    checked_in = (
        db.query(func.count(EventAttendance.attendance_id))
        .filter(EventAttendance.event_id == event_id, EventAttendance.check_in_time.isnot(None))
        .scalar()
    )
    average = (
        db.query(func.avg(EventAttendance.feedback_rating))
        .filter(EventAttendance.event_id == event_id, EventAttendance.feedback_rating.isnot(None))
        .scalar()
    )
    yes = counts.get(RSVPStatus.yes, 0)
    return AttendanceSummary(
        event_id=event_id,
        max_attendees=event.max_attendees,
        yes=yes,
        no=counts.get(RSVPStatus.no, 0),
        maybe=counts.get(RSVPStatus.maybe, 0),
        checked_in=int(checked_in or 0),
        spots_remaining=max(event.max_attendees - yes, 0),
        average_rating=round(float(average), 2) if average is not None else None,
    )
