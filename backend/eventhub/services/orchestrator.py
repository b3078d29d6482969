"""Event lifecycle orchestrator: decides who gets told what.

Subscribes to the fact bus, resolves the recipient set for each fact, fills in
the message text and hands a :class:`Notice` to the dispatcher. It performs no
business validation; by the time a fact arrives the transition is committed.

    EVENT_REQUEST_SUBMITTED → active reviewers (ADMIN), or field staff when the
                              request is gathering availability
    AVAILABILITY_SUBMITTED  → active ADMINs, once enough staff have answered
    EVENT_REQUEST_APPROVED  → facility contact, staff confirmed for the chosen
                              date, plus the remaining field staff (new event)
    EVENT_REQUEST_REJECTED  → facility contact
    EVENT_REQUEST_CANCELLED → nobody
    RSVP_RECEIVED (YES)     → active ADMINs except the responder
    STAFF_CHECKIN           → active ADMINs except the person checking in
    EVENT_CREATED           → active ADMIN and PAYROLL staff except the creator
"""
import logging
from typing import Callable, Iterable, Optional

from sqlalchemy.orm import Session

from eventhub.auth import FIELD_STAFF_ROLES, REVIEWER_ROLES, Role
from eventhub.config import settings
from eventhub.models.event import Event
from eventhub.models.notification import NotificationType
from eventhub.models.user import User
from eventhub.services.dispatcher import Notice, NotificationDispatcher
from eventhub.services.fact_bus import Fact, FactBus, FactType
from eventhub.timeutil import format_local

logger = logging.getLogger(__name__)

NEW_EVENT_AUDIENCE = frozenset({Role.admin, Role.payroll})


class LifecycleOrchestrator:

    def __init__(self, session_factory: Callable[[], Session], dispatcher: NotificationDispatcher):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self._handlers = {
            FactType.event_request_submitted: self.on_request_submitted,
            FactType.event_request_approved: self.on_request_approved,
            FactType.event_request_rejected: self.on_request_rejected,
            FactType.event_request_cancelled: self.on_request_cancelled,
            FactType.availability_submitted: self.on_availability_submitted,
            FactType.rsvp_received: self.on_rsvp_received,
            FactType.staff_checkin: self.on_staff_checkin,
            FactType.event_created: self.on_event_created,
        }

    def register(self, bus: FactBus) -> None:
        for fact_type, handler in self._handlers.items():
            bus.subscribe(fact_type, handler)

    # ── Recipient resolution ──────────────────────────────────────

    def _users_with_roles(self, roles: Iterable[Role], exclude: Iterable[str] = ()) -> tuple[str, ...]:
        db = self.session_factory()
        try:
            rows = (
                db.query(User.user_id)
                .filter(User.role.in_(list(roles)), User.is_active.is_(True))
                .order_by(User.created_at)
                .all()
            )
        finally:
            db.close()
        skip = set(exclude)
        return tuple(uid for (uid,) in rows if uid not in skip)

    def _event_when(self, event_id: Optional[str]) -> Optional[str]:
        if not event_id:
            return None
        db = self.session_factory()
        try:
            event = db.query(Event).filter(Event.event_id == event_id).first()
            if not event:
                return None
            where = f" at {event.location.name}" if event.location else ""
            return f"{format_local(event.start_time_utc)}{where}"
        finally:
            db.close()

    def _send(self, notice: Notice) -> None:
        if not notice.user_ids:
            logger.debug("No recipients for %s", notice.type.value)
            return
        self.dispatcher.notify(notice)

    # ── Fact handlers ─────────────────────────────────────────────

    def on_request_submitted(self, fact: Fact) -> None:
        p = fact.payload
        if p["status"] == "GATHERING_AVAILABILITY":
            self._send(Notice(
                type=NotificationType.event_request_availability,
                user_ids=self._users_with_roles(FIELD_STAFF_ROLES, exclude=(fact.actor_id,)),
                title="Staff Availability Needed",
                message=f'{p["facility_name"]} is requesting "{p["title"]}". Please indicate your availability.',
                link=f'/staff/event-requests/{p["request_id"]}',
            ))
            return
        if p["request_type"] == "CREATE_CUSTOM":
            title = "New Custom Event Request"
            message = f'{p["facility_name"]} has submitted a custom event request: "{p["title"]}"'
        else:
            title = "New Event Request"
            message = f'{p["facility_name"]} has requested to participate in "{p["title"]}"'
        self._send(Notice(
            type=NotificationType.event_request_submitted,
            user_ids=self._users_with_roles(REVIEWER_ROLES, exclude=(fact.actor_id,)),
            title=title,
            message=message,
            link=f'/admin/event-requests/{p["request_id"]}',
        ))

    def on_availability_submitted(self, fact: Fact) -> None:
        p = fact.payload
        if not p["is_new"] or p["response_count"] < settings.AVAILABILITY_READY_THRESHOLD:
            return
        self._send(Notice(
            type=NotificationType.event_request_ready,
            user_ids=self._users_with_roles(REVIEWER_ROLES),
            title="Event Request Ready for Review",
            message=(
                f'"{p["title"]}" at {p["facility_name"]} has received '
                f'{p["response_count"]} staff availability responses'
            ),
            link=f'/admin/event-requests/{p["request_id"]}',
        ))

    def on_request_approved(self, fact: Fact) -> None:
        p = fact.payload
        confirmed = tuple(p.get("confirmed_staff_ids") or ())
        self._send(Notice(
            type=NotificationType.event_request_approved,
            user_ids=(p["contact_user_id"],),
            title="Event Request Approved",
            message=f'Your request for "{p["title"]}" has been approved!',
            link="/dashboard/my-events",
        ))

        if confirmed:
            self._send(Notice(
                type=NotificationType.event_confirmed,
                user_ids=confirmed,
                title="Event Confirmed",
                message=f'"{p["title"]}" at {p["facility_name"]} has been confirmed for your selected date',
                link=f'/staff/events/{p["approved_event_id"]}',
            ))

        when = self._event_when(p["approved_event_id"])
        message = f'A new event "{p["title"]}" is now available for attendance'
        if when:
            message += f" ({when})"
        self._send(Notice(
            type=NotificationType.event_created,
            user_ids=self._users_with_roles(FIELD_STAFF_ROLES, exclude=(p["contact_user_id"], *confirmed)),
            title="New Event Available",
            message=message,
            link=f'/staff/events/{p["approved_event_id"]}',
        ))

    def on_request_rejected(self, fact: Fact) -> None:
        p = fact.payload
        self._send(Notice(
            type=NotificationType.event_request_rejected,
            user_ids=(p["contact_user_id"],),
            title="Event Request Declined",
            message=f'Your request for "{p["title"]}" was declined. Reason: {p["rejection_reason"]}',
            link="/dashboard/requests",
        ))

    def on_request_cancelled(self, fact: Fact) -> None:
        logger.debug("Request %s cancelled; no notification", fact.payload.get("request_id"))

    def on_rsvp_received(self, fact: Fact) -> None:
        p = fact.payload
        if p["status"] != "YES":
            return
        self._send(Notice(
            type=NotificationType.rsvp_received,
            user_ids=self._users_with_roles(REVIEWER_ROLES, exclude=(p["user_id"],)),
            title="New RSVP",
            message=f'{p["user_name"]} confirmed attendance for "{p["event_title"]}"',
            link=f'/admin/events/{p["event_id"]}',
        ))

    def on_staff_checkin(self, fact: Fact) -> None:
        p = fact.payload
        self._send(Notice(
            type=NotificationType.staff_checkin,
            user_ids=self._users_with_roles(REVIEWER_ROLES, exclude=(p["user_id"],)),
            title="Staff Check-in",
            message=f'{p["user_name"]} has checked in to "{p["event_title"]}"',
            link=f'/admin/events/{p["event_id"]}',
        ))

    def on_event_created(self, fact: Fact) -> None:
        p = fact.payload
        when = self._event_when(p["event_id"])
        message = f'"{p["title"]}" has been scheduled'
        message += f" for {when}. RSVP now!" if when else ". RSVP now!"
        self._send(Notice(
            type=NotificationType.event_created,
            user_ids=self._users_with_roles(NEW_EVENT_AUDIENCE, exclude=(fact.actor_id,)),
            title="New Event Available",
            message=message,
            link=f'/events/{p["event_id"]}',
        ))
