"""Best-effort audit trail.

Entries are written in their own session after the primary transaction has
committed, so a failing audit write can never undo or block a ledger
transition; it is logged and dropped.
"""
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from eventhub.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


def record(db: Session, action: str, actor_user_id: str, details: dict[str, Any]) -> None:
    """Append an audit entry using a fresh session bound to ``db``'s engine."""
    audit_db = Session(bind=db.get_bind())
    try:
        audit_db.add(AuditLog(action=action, actor_user_id=actor_user_id, details=details))
        audit_db.commit()
    except SQLAlchemyError:
        audit_db.rollback()
        logger.exception("Failed to write audit entry %s for actor %s", action, actor_user_id)
    finally:
        audit_db.close()


def list_entries(db: Session, action: str | None = None, limit: int = 100) -> list[AuditLog]:
    query = db.query(AuditLog)
    if action:
        query = query.filter(AuditLog.action == action)
    return query.order_by(AuditLog.created_at.desc()).limit(limit).all()
