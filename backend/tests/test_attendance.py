"""Tests for the attendance ledger.

Covers:
- RSVP transitions keep confirmed_count equal to the number of YES rows
- The capacity ceiling holds under concurrent YES responses
- Racing writes for one user converge on a single row and a consistent count
- Check-in window, idempotency and the YES upgrade on check-in
- Feedback validation and the attendance summary
"""
import threading
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from eventhub.config import settings
from eventhub.errors import EventFull, InvalidState, NotFound, WindowClosed
from eventhub.models.attendance import EventAttendance, RSVPStatus
from eventhub.models.event import Event
from eventhub.services import attendance_service
from eventhub.services.fact_bus import FactBus, FactType
from eventhub.timeutil import ensure_utc
from tests.conftest import actor_for, create_test_event, create_test_user, headers, inbox


def _rsvp(client, event, user, status):
    return client.post(f"/api/events/{event['event_id']}/rsvp", json={"status": status}, headers=headers(user))


def _load_event(db, event_id):
    db.expire_all()
    return db.query(Event).filter(Event.event_id == event_id).first()


def _yes_rows(db, event_id):
    return (
        db.query(EventAttendance)
        .filter(EventAttendance.event_id == event_id, EventAttendance.status == RSVPStatus.yes)
        .count()
    )


@pytest.fixture
def admin(client):
    return create_test_user(client, name="Rita Reviewer", role="ADMIN", email="rita@example.org")


class TestRSVP:

    def test_capacity_walkthrough(self, client, admin):
        event = create_test_event(client, admin, max_attendees=2)
        u1, u2, u3 = (create_test_user(client, name=n, role="FACILITATOR") for n in ("U1", "U2", "U3"))

        assert _rsvp(client, event, u1, "YES").status_code == 200
        assert _rsvp(client, event, u2, "YES").status_code == 200
        assert client.get(f"/api/events/{event['event_id']}", headers=headers(admin)).json()["confirmed_count"] == 2

        resp = _rsvp(client, event, u3, "YES")
        assert resp.status_code == 409
        assert resp.json()["code"] == "event_full"

        assert _rsvp(client, event, u1, "NO").status_code == 200
        assert client.get(f"/api/events/{event['event_id']}", headers=headers(admin)).json()["confirmed_count"] == 1

        resp = _rsvp(client, event, u3, "YES")
        assert resp.status_code == 200
        assert resp.json()["status"] == "YES"
        assert client.get(f"/api/events/{event['event_id']}", headers=headers(admin)).json()["confirmed_count"] == 2

    def test_repeat_yes_does_not_double_count(self, client, admin):
        event = create_test_event(client, admin, max_attendees=2)
        user = create_test_user(client, name="U1", role="FACILITATOR")
        _rsvp(client, event, user, "YES")
        _rsvp(client, event, user, "YES")
        assert client.get(f"/api/events/{event['event_id']}", headers=headers(admin)).json()["confirmed_count"] == 1

    def test_maybe_does_not_take_a_seat(self, client, admin):
        event = create_test_event(client, admin, max_attendees=1)
        u1 = create_test_user(client, name="U1", role="FACILITATOR")
        u2 = create_test_user(client, name="U2", role="FACILITATOR")
        assert _rsvp(client, event, u1, "MAYBE").status_code == 200
        assert _rsvp(client, event, u2, "YES").status_code == 200

    def test_invalid_status(self, client, admin):
        event = create_test_event(client, admin)
        user = create_test_user(client, name="U1")
        resp = _rsvp(client, event, user, "PERHAPS")
        assert resp.status_code == 422
        assert resp.json()["code"] == "validation_error"

    def test_ended_event(self, client, admin):
        event = create_test_event(client, admin, start_offset_hours=-3)
        user = create_test_user(client, name="U1")
        resp = _rsvp(client, event, user, "YES")
        assert resp.status_code == 409
        assert resp.json()["code"] == "invalid_state"

    def test_unknown_event(self, client):
        user = create_test_user(client, name="U1")
        assert _rsvp(client, {"event_id": "missing"}, user, "YES").status_code == 404

    def test_yes_notifies_admins_except_responder(self, client, admin):
        event = create_test_event(client, admin, title="Bingo Night")
        other_admin = create_test_user(client, name="Ada", role="ADMIN")
        staff = create_test_user(client, name="Fay", role="FACILITATOR")

        _rsvp(client, event, other_admin, "YES")
        _rsvp(client, event, staff, "YES")
        _rsvp(client, event, create_test_user(client, name="Nope"), "NO")

        rsvps = [n for n in inbox(client, admin) if n["type"] == "RSVP_RECEIVED"]
        assert len(rsvps) == 2
        assert any("Fay" in n["message"] for n in rsvps)
        own = [n for n in inbox(client, other_admin) if n["type"] == "RSVP_RECEIVED"]
        assert len(own) == 1
        assert "Fay" in own[0]["message"]

    def test_my_attendance(self, client, admin):
        event = create_test_event(client, admin)
        user = create_test_user(client, name="U1")
        url = f"/api/events/{event['event_id']}/attendance/me"
        assert client.get(url, headers=headers(user)).json() is None
        _rsvp(client, event, user, "MAYBE")
        assert client.get(url, headers=headers(user)).json()["status"] == "MAYBE"

    def test_attendance_list_restricted(self, client, admin):
        event = create_test_event(client, admin)
        user = create_test_user(client, name="U1")
        _rsvp(client, event, user, "YES")
        url = f"/api/events/{event['event_id']}/attendance"
        assert len(client.get(url, headers=headers(admin)).json()) == 1
        assert client.get(url, headers=headers(user)).status_code == 403


class TestConcurrentCapacity:

    def test_ceiling_holds_under_concurrent_yes(self, client, admin, db, session_factory):
        capacity = 3
        event = create_test_event(client, admin, max_attendees=capacity)
        users = [create_test_user(client, name=f"Racer {i}", role="CONTRACTOR") for i in range(8)]
        bus = FactBus(mode="inline")
        barrier = threading.Barrier(len(users))
        outcomes = []

        def attempt(user):
            session = session_factory()
            try:
                barrier.wait()
                attendance_service.rsvp(session, actor_for(user), event["event_id"], "YES", bus)
                outcomes.append("ok")
            except EventFull:
                outcomes.append("full")
            except OperationalError:
                outcomes.append("busy")
            finally:
                session.close()

        threads = [threading.Thread(target=attempt, args=(u,)) for u in users]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        yes = _yes_rows(db, event["event_id"])
        assert outcomes.count("ok") <= yes
        assert yes <= capacity
        assert _load_event(db, event["event_id"]).confirmed_count == yes


class TestSameUserRaces:
    """Two sessions acting for one user; the second lands between the first's read and write."""

    @pytest.fixture
    def interleave(self, monkeypatch, session_factory):
        """Run ``action(session)`` in a separate session right after the next attendance read."""
        real_get_record = attendance_service._get_record

        def install(action):
            pending = [action]

            def racing_get_record(db, event_id, user_id):
                record = real_get_record(db, event_id, user_id)
                if pending:
                    other = session_factory()
                    try:
                        pending.pop()(other)
                    finally:
                        other.close()
                return record

            monkeypatch.setattr(attendance_service, "_get_record", racing_get_record)

        return install

    def test_double_no_releases_one_seat(self, client, admin, db, interleave):
        event = create_test_event(client, admin, max_attendees=3)
        user = create_test_user(client, name="U1", role="FACILITATOR")
        other = create_test_user(client, name="U2", role="FACILITATOR")
        _rsvp(client, event, user, "YES")
        _rsvp(client, event, other, "YES")
        bus = FactBus(mode="inline")

        interleave(lambda s: attendance_service.rsvp(s, actor_for(user), event["event_id"], "NO", bus))
        record = attendance_service.rsvp(db, actor_for(user), event["event_id"], "NO", bus)

        assert record.status == RSVPStatus.no
        assert _yes_rows(db, event["event_id"]) == 1
        assert _load_event(db, event["event_id"]).confirmed_count == 1

    def test_yes_then_stale_no_frees_the_seat(self, client, admin, db, interleave):
        event = create_test_event(client, admin, max_attendees=2)
        user = create_test_user(client, name="U1", role="FACILITATOR")
        _rsvp(client, event, user, "MAYBE")
        bus = FactBus(mode="inline")

        interleave(lambda s: attendance_service.rsvp(s, actor_for(user), event["event_id"], "YES", bus))
        attendance_service.rsvp(db, actor_for(user), event["event_id"], "NO", bus)

        assert _yes_rows(db, event["event_id"]) == 0
        assert _load_event(db, event["event_id"]).confirmed_count == 0

    def test_concurrent_first_yes_creates_one_row(self, client, admin, db, interleave):
        event = create_test_event(client, admin, max_attendees=2)
        user = create_test_user(client, name="U1", role="FACILITATOR")
        bus = FactBus(mode="inline")

        interleave(lambda s: attendance_service.rsvp(s, actor_for(user), event["event_id"], "YES", bus))
        record = attendance_service.rsvp(db, actor_for(user), event["event_id"], "YES", bus)

        assert record.status == RSVPStatus.yes
        rows = db.query(EventAttendance).filter(EventAttendance.event_id == event["event_id"]).count()
        assert rows == 1
        assert _load_event(db, event["event_id"]).confirmed_count == 1

    def test_concurrent_first_feedback_creates_one_row(self, client, admin, db, interleave):
        event = create_test_event(client, admin)
        user = create_test_user(client, name="U1")

        interleave(lambda s: attendance_service.record_feedback(s, actor_for(user), event["event_id"], 3))
        record = attendance_service.record_feedback(db, actor_for(user), event["event_id"], 5)

        assert record.feedback_rating == 5
        assert record.status is None
        rows = db.query(EventAttendance).filter(EventAttendance.event_id == event["event_id"]).count()
        assert rows == 1

    def test_check_in_after_concurrent_yes_takes_one_seat(self, client, admin, db, interleave):
        event = create_test_event(client, admin, start_offset_hours=1, max_attendees=3)
        user = create_test_user(client, name="U1", role="FACILITATOR")
        _rsvp(client, event, user, "NO")
        bus = FactBus(mode="inline")

        interleave(lambda s: attendance_service.rsvp(s, actor_for(user), event["event_id"], "YES", bus))
        record = attendance_service.check_in(db, actor_for(user), event["event_id"], bus)

        assert record.check_in_time is not None
        assert record.status == RSVPStatus.yes
        assert _load_event(db, event["event_id"]).confirmed_count == 1

    def test_threaded_toggles_keep_count_consistent(self, client, admin, db, session_factory):
        event = create_test_event(client, admin, max_attendees=5)
        user = create_test_user(client, name="Toggler", role="CONTRACTOR")
        bus = FactBus(mode="inline")
        answers = ["YES", "NO"] * 4
        barrier = threading.Barrier(len(answers))

        def attempt(answer):
            session = session_factory()
            try:
                barrier.wait()
                attendance_service.rsvp(session, actor_for(user), event["event_id"], answer, bus)
            except (InvalidState, OperationalError):
                pass
            finally:
                session.close()

        threads = [threading.Thread(target=attempt, args=(a,)) for a in answers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        yes = _yes_rows(db, event["event_id"])
        assert yes in (0, 1)
        assert _load_event(db, event["event_id"]).confirmed_count == yes


class TestCheckIn:

    @pytest.fixture
    def setup(self, client, admin, db):
        event = create_test_event(client, admin, title="Craft Circle", max_attendees=5)
        staff = create_test_user(client, name="Fay", role="FACILITATOR")
        row = _load_event(db, event["event_id"])
        return {
            "event": event,
            "staff": staff,
            "start": ensure_utc(row.start_time_utc),
            "end": ensure_utc(row.end_time_utc),
        }

    def test_window_and_upgrade(self, client, db, bus, setup):
        event, staff = setup["event"], setup["staff"]
        _rsvp(client, event, staff, "MAYBE")
        actor = actor_for(staff)

        with pytest.raises(WindowClosed) as too_early:
            attendance_service.check_in(db, actor, event["event_id"], bus, now=setup["start"] - timedelta(hours=3))
        assert too_early.value.reason == WindowClosed.TOO_EARLY

        with pytest.raises(WindowClosed) as ended:
            attendance_service.check_in(db, actor, event["event_id"], bus, now=setup["end"] + timedelta(minutes=1))
        assert ended.value.reason == WindowClosed.ENDED

        record = attendance_service.check_in(
            db, actor, event["event_id"], bus, now=setup["start"] - timedelta(hours=1)
        )
        assert record.status == RSVPStatus.yes
        assert record.check_in_time is not None
        assert _load_event(db, event["event_id"]).confirmed_count == 1

    def test_check_in_is_idempotent(self, client, db, bus, setup):
        event, staff = setup["event"], setup["staff"]
        _rsvp(client, event, staff, "YES")
        facts = []
        bus.subscribe(FactType.staff_checkin, facts.append)
        when = setup["start"] - timedelta(minutes=30)

        first = attendance_service.check_in(db, actor_for(staff), event["event_id"], bus, now=when)
        first_time = first.check_in_time
        second = attendance_service.check_in(
            db, actor_for(staff), event["event_id"], bus, now=when + timedelta(minutes=10)
        )
        assert second.check_in_time == first_time
        assert len(facts) == 1
        assert _load_event(db, event["event_id"]).confirmed_count == 1

    def test_check_in_without_response(self, db, bus, setup):
        with pytest.raises(NotFound):
            attendance_service.check_in(
                db, actor_for(setup["staff"]), setup["event"]["event_id"], bus,
                now=setup["start"] - timedelta(minutes=5),
            )

    def test_check_in_notifies_admins(self, client, admin, db, bus, setup):
        event, staff = setup["event"], setup["staff"]
        _rsvp(client, event, staff, "YES")
        attendance_service.check_in(
            db, actor_for(staff), event["event_id"], bus, now=setup["start"] - timedelta(minutes=5)
        )
        checkins = [n for n in inbox(client, admin) if n["type"] == "STAFF_CHECKIN"]
        assert len(checkins) == 1
        assert "Craft Circle" in checkins[0]["message"]

    def test_too_early_over_http(self, client, setup):
        _rsvp(client, setup["event"], setup["staff"], "YES")
        resp = client.post(f"/api/events/{setup['event']['event_id']}/check-in", headers=headers(setup["staff"]))
        assert resp.status_code == 409
        assert resp.json()["reason"] == "too_early"


class TestCheckInCapacity:

    @pytest.fixture
    def full_event(self, client, admin, db):
        event = create_test_event(client, admin, max_attendees=1)
        first = create_test_user(client, name="First", role="FACILITATOR")
        walk_in = create_test_user(client, name="Walk In", role="FACILITATOR")
        _rsvp(client, event, first, "YES")
        _rsvp(client, event, walk_in, "MAYBE")
        start = ensure_utc(_load_event(db, event["event_id"]).start_time_utc)
        return event, walk_in, start - timedelta(minutes=10)

    def test_walk_in_exempt_from_ceiling(self, db, bus, full_event):
        event, walk_in, when = full_event
        record = attendance_service.check_in(db, actor_for(walk_in), event["event_id"], bus, now=when)
        assert record.status == RSVPStatus.yes
        row = _load_event(db, event["event_id"])
        assert row.confirmed_count == 2
        assert _yes_rows(db, event["event_id"]) == 2

    def test_ceiling_enforced_when_configured(self, db, bus, full_event, monkeypatch):
        monkeypatch.setattr(settings, "CHECKIN_ENFORCES_CAPACITY", True)
        event, walk_in, when = full_event
        with pytest.raises(EventFull):
            attendance_service.check_in(db, actor_for(walk_in), event["event_id"], bus, now=when)
        record = (
            db.query(EventAttendance)
            .filter(EventAttendance.event_id == event["event_id"], EventAttendance.user_id == walk_in["user_id"])
            .first()
        )
        db.refresh(record)
        assert record.check_in_time is None
        assert record.status == RSVPStatus.maybe


class TestFeedback:

    def test_rating_bounds(self, client, admin):
        event = create_test_event(client, admin)
        user = create_test_user(client, name="U1")
        url = f"/api/events/{event['event_id']}/feedback"
        assert client.post(url, json={"rating": 0}, headers=headers(user)).status_code == 422
        assert client.post(url, json={"rating": 6}, headers=headers(user)).status_code == 422

    def test_feedback_and_summary(self, client, admin):
        event = create_test_event(client, admin, max_attendees=4)
        u1 = create_test_user(client, name="U1")
        u2 = create_test_user(client, name="U2")
        _rsvp(client, event, u1, "YES")
        _rsvp(client, event, u2, "NO")
        url = f"/api/events/{event['event_id']}/feedback"

        resp = client.post(url, json={"rating": 4, "comment": "  Lovely  "}, headers=headers(u1))
        assert resp.status_code == 200
        assert resp.json()["feedback_comment"] == "Lovely"
        assert resp.json()["status"] == "YES"
        client.post(url, json={"rating": 5, "anonymous": True}, headers=headers(u2))

        summary = client.get(f"/api/events/{event['event_id']}/attendance/summary", headers=headers(admin)).json()
        assert summary["yes"] == 1
        assert summary["no"] == 1
        assert summary["maybe"] == 0
        assert summary["checked_in"] == 0
        assert summary["spots_remaining"] == 3
        assert summary["average_rating"] == 4.5
