"""Tests for staff-created events.

Covers:
- Create: role gate, title / schedule / location / capacity validation
- Creation notifies ADMIN and PAYROLL staff other than the creator
- Get / list with filters; reads require an authenticated caller
"""
from datetime import datetime, timedelta, timezone

from tests.conftest import create_test_event, create_test_user, headers, inbox


def _payload(**overrides):
    start = datetime.now(timezone.utc) + timedelta(days=1)
    data = {
        "title": "Music Hour",
        "start_time_utc": start.isoformat(),
        "end_time_utc": (start + timedelta(hours=1)).isoformat(),
        "max_attendees": 5,
        "location_name": "Community Room",
    }
    data.update(overrides)
    return data


class TestEventCreate:

    def test_create_event(self, client):
        admin = create_test_user(client, name="Admin", role="ADMIN")
        event = create_test_event(client, admin, title="Dinner", max_attendees=3)
        assert event["title"] == "Dinner"
        assert event["status"] == "PUBLISHED"
        assert event["origin"] == "STAFF_CREATED"
        assert event["max_attendees"] == 3
        assert event["confirmed_count"] == 0
        assert event["location"]["name"] == "Community Room"

    def test_payroll_can_create(self, client):
        payroll = create_test_user(client, name="Pat", role="PAYROLL")
        resp = client.post("/api/events/", json=_payload(), headers=headers(payroll))
        assert resp.status_code == 201

    def test_field_staff_cannot_create(self, client):
        staff = create_test_user(client, name="Fay", role="FACILITATOR")
        resp = client.post("/api/events/", json=_payload(), headers=headers(staff))
        assert resp.status_code == 403

    def test_short_title_rejected(self, client):
        admin = create_test_user(client, name="Admin", role="ADMIN")
        resp = client.post("/api/events/", json=_payload(title="Hi"), headers=headers(admin))
        assert resp.status_code == 422
        assert resp.json()["code"] == "validation_error"

    def test_end_before_start_rejected(self, client):
        admin = create_test_user(client, name="Admin", role="ADMIN")
        start = datetime.now(timezone.utc) + timedelta(days=1)
        resp = client.post("/api/events/", json=_payload(
            start_time_utc=start.isoformat(),
            end_time_utc=(start - timedelta(hours=1)).isoformat(),
        ), headers=headers(admin))
        assert resp.status_code == 422

    def test_location_required(self, client):
        admin = create_test_user(client, name="Admin", role="ADMIN")
        resp = client.post("/api/events/", json=_payload(location_name=None), headers=headers(admin))
        assert resp.status_code == 422

    def test_capacity_must_be_positive(self, client):
        admin = create_test_user(client, name="Admin", role="ADMIN")
        resp = client.post("/api/events/", json=_payload(max_attendees=0), headers=headers(admin))
        assert resp.status_code == 422

    def test_creation_notifies_staff_except_creator(self, client):
        admin = create_test_user(client, name="Admin", role="ADMIN")
        other_admin = create_test_user(client, name="Ada", role="ADMIN")
        payroll = create_test_user(client, name="Pat", role="PAYROLL")
        volunteer = create_test_user(client, name="Vic")
        create_test_event(client, admin, title="Garden Club")

        assert inbox(client, admin) == []
        assert inbox(client, volunteer) == []
        for user in (other_admin, payroll):
            notes = inbox(client, user)
            assert len(notes) == 1
            assert notes[0]["type"] == "EVENT_CREATED"
            assert "Garden Club" in notes[0]["message"]


class TestEventRead:

    def test_get_event(self, client):
        admin = create_test_user(client, name="Admin", role="ADMIN")
        event = create_test_event(client, admin)
        resp = client.get(f"/api/events/{event['event_id']}", headers=headers(admin))
        assert resp.status_code == 200
        assert resp.json()["event_id"] == event["event_id"]

    def test_get_event_not_found(self, client):
        admin = create_test_user(client, name="Admin", role="ADMIN")
        resp = client.get("/api/events/missing", headers=headers(admin))
        assert resp.status_code == 404

    def test_reads_require_identity(self, client):
        admin = create_test_user(client, name="Admin", role="ADMIN")
        event = create_test_event(client, admin)
        assert client.get(f"/api/events/{event['event_id']}").status_code == 401
        assert client.get("/api/events/").status_code == 401
        assert client.get(f"/api/events/{event['event_id']}/attendance/summary").status_code == 401

    def test_list_filters_by_start(self, client):
        admin = create_test_user(client, name="Admin", role="ADMIN")
        soon = create_test_event(client, admin, title="Soon Event", start_offset_hours=2)
        later = create_test_event(client, admin, title="Later Event", start_offset_hours=72)

        cutoff = (datetime.now(timezone.utc) + timedelta(days=1)).isoformat()
        resp = client.get("/api/events/", params={"start_after": cutoff}, headers=headers(admin))
        assert resp.status_code == 200
        ids = [e["event_id"] for e in resp.json()]
        assert later["event_id"] in ids
        assert soon["event_id"] not in ids

    def test_list_filters_by_status(self, client):
        admin = create_test_user(client, name="Admin", role="ADMIN")
        create_test_event(client, admin)
        resp = client.get("/api/events/", params={"status_filter": "PUBLISHED"}, headers=headers(admin))
        assert len(resp.json()) == 1
        resp = client.get("/api/events/", params={"status_filter": "CANCELLED"}, headers=headers(admin))
        assert resp.json() == []
