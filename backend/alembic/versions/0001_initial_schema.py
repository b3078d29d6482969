"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18

Creates all tables for EventHub:
users, facilities, locations, events, event_requests,
event_request_responses, event_attendance, notifications, notification_preferences, audit_logs.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum columns store member names, matching the ORM's SAEnum defaults.
ROLE = sa.Enum(
    "admin", "board", "payroll", "home_admin", "facilitator", "contractor", "volunteer", "partner",
    name="role",
)
EVENT_STATUS = sa.Enum("draft", "published", "cancelled", "completed", name="eventstatus")
EVENT_ORIGIN = sa.Enum("staff_created", "facility_requested", name="eventorigin")
REQUEST_TYPE = sa.Enum("request_existing", "create_custom", name="requesttype")
REQUEST_STATUS = sa.Enum("pending", "gathering_availability", "approved", "rejected", "cancelled", name="requeststatus")
RSVP_STATUS = sa.Enum("yes", "no", "maybe", name="rsvpstatus")
NOTIFICATION_TYPE = sa.Enum(
    "event_created", "event_confirmed", "rsvp_received", "staff_checkin",
    "event_request_submitted", "event_request_availability", "event_request_ready",
    "event_request_approved", "event_request_rejected",
    name="notificationtype",
)
PENDING_ONLY = sa.text("status = 'pending'")


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(36), primary_key=True),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("role", ROLE, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- facilities / locations ---
    op.create_table(
        "facilities",
        sa.Column("facility_id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("address", sa.String(500), nullable=True),
        sa.Column("contact_user_id", sa.String(36), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_facilities_contact_user_id", "facilities", ["contact_user_id"])
    op.create_table(
        "locations",
        sa.Column("location_id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("address", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- events ---
    op.create_table(
        "events",
        sa.Column("event_id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("start_time_utc", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time_utc", sa.DateTime(timezone=True), nullable=False),
        sa.Column("max_attendees", sa.Integer, nullable=False),
        sa.Column("confirmed_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("status", EVENT_STATUS, nullable=False),
        sa.Column("origin", EVENT_ORIGIN, nullable=False),
        sa.Column("location_id", sa.String(36), sa.ForeignKey("locations.location_id"), nullable=True),
        sa.Column("facility_id", sa.String(36), sa.ForeignKey("facilities.facility_id"), nullable=True),
        sa.Column("created_by", sa.String(36), sa.ForeignKey("users.user_id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("max_attendees >= 1", name="ck_events_max_attendees_positive"),
    )

    # --- event_requests ---
    op.create_table(
        "event_requests",
        sa.Column("request_id", sa.String(36), primary_key=True),
        sa.Column("request_type", REQUEST_TYPE, nullable=False),
        sa.Column("status", REQUEST_STATUS, nullable=False),
        sa.Column("facility_id", sa.String(36), sa.ForeignKey("facilities.facility_id"), nullable=False),
        sa.Column("requested_by", sa.String(36), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("existing_event_id", sa.String(36), sa.ForeignKey("events.event_id"), nullable=True),
        sa.Column("custom_title", sa.String(255), nullable=True),
        sa.Column("custom_description", sa.Text, nullable=True),
        sa.Column("custom_start_time_utc", sa.DateTime(timezone=True), nullable=True),
        sa.Column("custom_end_time_utc", sa.DateTime(timezone=True), nullable=True),
        sa.Column("custom_location_name", sa.String(200), nullable=True),
        sa.Column("custom_location_address", sa.String(500), nullable=True),
        sa.Column("expected_attendees", sa.Integer, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("preferred_dates", sa.JSON, nullable=True),
        sa.Column("selected_date_index", sa.Integer, nullable=True),
        sa.Column("form_submission_id", sa.String(64), nullable=True),
        sa.Column("requested_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.String(36), sa.ForeignKey("users.user_id"), nullable=True),
        sa.Column("rejection_reason", sa.Text, nullable=True),
        sa.Column("approved_event_id", sa.String(36), sa.ForeignKey("events.event_id"), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_event_requests_status", "event_requests", ["status"])
    op.create_index("ix_event_requests_facility_id", "event_requests", ["facility_id"])
    op.create_index(
        "uq_event_requests_pending_existing",
        "event_requests",
        ["facility_id", "existing_event_id"],
        unique=True,
        sqlite_where=PENDING_ONLY,
        postgresql_where=PENDING_ONLY,
    )
    op.create_table(
        "event_request_responses",
        sa.Column("response_id", sa.String(36), primary_key=True),
        sa.Column("request_id", sa.String(36), sa.ForeignKey("event_requests.request_id"), nullable=False),
        sa.Column("staff_id", sa.String(36), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("availability", sa.JSON, nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("request_id", "staff_id", name="uq_event_request_responses_request_staff"),
    )
    op.create_index("ix_event_request_responses_request_id", "event_request_responses", ["request_id"])

    # --- event_attendance ---
    op.create_table(
        "event_attendance",
        sa.Column("attendance_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.event_id"), nullable=False),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("status", RSVP_STATUS, nullable=True),
        sa.Column("check_in_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("feedback_rating", sa.Integer, nullable=True),
        sa.Column("feedback_comment", sa.Text, nullable=True),
        sa.Column("is_anonymous", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("event_id", "user_id", name="uq_event_attendance_event_user"),
    )
    op.create_index("ix_event_attendance_event_id", "event_attendance", ["event_id"])

    # --- notifications ---
    op.create_table(
        "notifications",
        sa.Column("notification_id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("type", NOTIFICATION_TYPE, nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("link", sa.String(500), nullable=True),
        sa.Column("read", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])
    op.create_table(
        "notification_preferences",
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.user_id"), primary_key=True),
        sa.Column("email", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("sms", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("in_app", sa.Boolean, nullable=False, server_default=sa.true()),
    )

    # --- audit_logs ---
    op.create_table(
        "audit_logs",
        sa.Column("audit_id", sa.String(36), primary_key=True),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("actor_user_id", sa.String(36), nullable=False),
        sa.Column("details", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("notification_preferences")
    op.drop_table("notifications")
    op.drop_table("event_attendance")
    op.drop_table("event_request_responses")
    op.drop_table("event_requests")
    op.drop_table("events")
    op.drop_table("locations")
    op.drop_table("facilities")
    op.drop_table("users")
    bind = op.get_bind()
    for enum_type in (NOTIFICATION_TYPE, RSVP_STATUS, REQUEST_STATUS, REQUEST_TYPE,
                      EVENT_ORIGIN, EVENT_STATUS, ROLE):
        enum_type.drop(bind, checkfirst=True)
