"""Audit trail routes (reviewers only)."""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from eventhub.auth import REVIEWER_ROLES, Actor, get_actor, require_role
from eventhub.database import get_db
from eventhub.schemas.notification import AuditLogOut
from eventhub.services import audit_service

router = APIRouter()


@router.get("/", response_model=list[AuditLogOut])
def list_audit_entries(
    action: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    require_role(actor, REVIEWER_ROLES)
    return audit_service.list_entries(db, action=action, limit=limit)
