"""Pydantic schemas for notifications, preferences and the audit trail."""
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel

from eventhub.models.notification import NotificationType


class NotificationOut(BaseModel):
    notification_id: str
    type: NotificationType
    title: str
    message: str
    link: Optional[str] = None
    read: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class UnreadCountOut(BaseModel):
    unread: int


class PreferencesOut(BaseModel):
    email: bool
    sms: bool
    in_app: bool

    model_config = {"from_attributes": True}


class PreferencesUpdate(BaseModel):
    email: Optional[bool] = None
    sms: Optional[bool] = None
    in_app: Optional[bool] = None


class AuditLogOut(BaseModel):
    audit_id: str
    action: str
    actor_user_id: str
    details: dict[str, Any]
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
