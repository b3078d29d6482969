"""Notification inbox and preference routes for the calling user."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from eventhub.auth import Actor, get_actor
from eventhub.database import get_db
from eventhub.schemas.notification import NotificationOut, PreferencesOut, PreferencesUpdate, UnreadCountOut
from eventhub.services import notification_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=list[NotificationOut])
def list_notifications(
    limit: Optional[int] = Query(None, ge=1, le=200),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return notification_service.list_notifications(db, actor, limit)


@router.get("/unread-count", response_model=UnreadCountOut)
def unread_count(actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    return UnreadCountOut(unread=notification_service.unread_count(db, actor))


@router.post("/read-all")
def mark_all_read(actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    return {"updated": notification_service.mark_all_read(db, actor)}


@router.post("/{notification_id}/read", response_model=NotificationOut)
def mark_read(notification_id: str, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    return notification_service.mark_read(db, actor, notification_id)


@router.get("/preferences", response_model=PreferencesOut)
def get_preferences(actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    return notification_service.get_preferences(db, actor.user_id)


@router.put("/preferences", response_model=PreferencesOut)
def update_preferences(payload: PreferencesUpdate, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    return notification_service.update_preferences(db, actor, **payload.model_dump())
