"""Notification inbox and preference store.

Preferences are consulted by the dispatcher and never mutated by it; users
change them through :func:`update_preferences`.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from eventhub.auth import Actor, require_actor
from eventhub.config import settings
from eventhub.errors import NotFound
from eventhub.models.notification import Notification, NotificationPreference

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Preferences:
    email: bool = True
    sms: bool = False
    in_app: bool = True


DEFAULT_PREFERENCES = Preferences()


def get_preferences(db: Session, user_id: str) -> Preferences:
    """Return the user's channel preferences, defaulting when none are stored."""
    row = db.query(NotificationPreference).filter(NotificationPreference.user_id == user_id).first()
    if row is None:
        return DEFAULT_PREFERENCES
    return Preferences(email=row.email, sms=row.sms, in_app=row.in_app)


def update_preferences(
    db: Session,
    actor: Optional[Actor],
    email: Optional[bool] = None,
    sms: Optional[bool] = None,
    in_app: Optional[bool] = None,
) -> Preferences:
    """Partial update of the actor's own preferences."""
    actor = require_actor(actor)
    row = db.query(NotificationPreference).filter(NotificationPreference.user_id == actor.user_id).first()
    if row is None:
        row = NotificationPreference(
            user_id=actor.user_id,
            email=DEFAULT_PREFERENCES.email,
            sms=DEFAULT_PREFERENCES.sms,
            in_app=DEFAULT_PREFERENCES.in_app,
        )
        db.add(row)
    if email is not None:
        row.email = email
    if sms is not None:
        row.sms = sms
    if in_app is not None:
        row.in_app = in_app
    db.commit()
    logger.info("Updated notification preferences for user %s", actor.user_id)
    return Preferences(email=row.email, sms=row.sms, in_app=row.in_app)


def list_notifications(db: Session, actor: Optional[Actor], limit: Optional[int] = None) -> list[Notification]:
    actor = require_actor(actor)
    return (
        db.query(Notification)
        .filter(Notification.user_id == actor.user_id)
        .order_by(Notification.created_at.desc())
        .limit(limit or settings.NOTIFICATION_PAGE_SIZE)
        .all()
    )


def unread_count(db: Session, actor: Optional[Actor]) -> int:
    actor = require_actor(actor)
    return (
        db.query(Notification)
        .filter(Notification.user_id == actor.user_id, Notification.read.is_(False))
        .count()
    )


def mark_read(db: Session, actor: Optional[Actor], notification_id: str) -> Notification:
    """Flip ``read`` on one of the actor's notifications."""
    actor = require_actor(actor)
    notification = (
        db.query(Notification)
        .filter(Notification.notification_id == notification_id, Notification.user_id == actor.user_id)
        .first()
    )
    if not notification:
        raise NotFound("Notification not found.")
    notification.read = True
    db.commit()
    db.refresh(notification)
    return notification


def mark_all_read(db: Session, actor: Optional[Actor]) -> int:
    actor = require_actor(actor)
    result = db.execute(
        update(Notification)
        .where(Notification.user_id == actor.user_id, Notification.read.is_(False))
        .values(read=True)
    )
    db.commit()
    logger.info("Marked %d notifications read for user %s", result.rowcount, actor.user_id)
    return result.rowcount
