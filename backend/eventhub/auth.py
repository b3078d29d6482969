"""Actor resolution: the boundary with the identity/session collaborator.

Authentication happens upstream; the gateway forwards the authenticated user
in ``X-User-Id`` and ``X-User-Role``. Services never read these headers, they
receive an explicit :class:`Actor`.
"""
import enum
from dataclasses import dataclass
from typing import Iterable, Optional

from fastapi import Header

from eventhub.errors import Forbidden, Unauthorized


class Role(str, enum.Enum):
    admin = "ADMIN"
    board = "BOARD"
    payroll = "PAYROLL"
    home_admin = "HOME_ADMIN"
    facilitator = "FACILITATOR"
    contractor = "CONTRACTOR"
    volunteer = "VOLUNTEER"
    partner = "PARTNER"


REVIEWER_ROLES = frozenset({Role.admin})
EVENT_MANAGER_ROLES = frozenset({Role.admin, Role.payroll})
FIELD_STAFF_ROLES = frozenset({Role.facilitator, Role.contractor})


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: Role

    @property
    def is_reviewer(self) -> bool:
        return self.role in REVIEWER_ROLES


def require_actor(actor: Optional[Actor]) -> Actor:
    """Every ledger operation is refused without an authenticated actor."""
    if actor is None or not actor.user_id:
        raise Unauthorized()
    return actor


def require_role(actor: Optional[Actor], roles: Iterable[Role]) -> Actor:
    actor = require_actor(actor)
    if actor.role not in set(roles):
        raise Forbidden()
    return actor


def get_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Actor:
    """FastAPI dependency: builds the Actor from the forwarded identity headers."""
    if not x_user_id or not x_user_role:
        raise Unauthorized()
    try:
        role = Role(x_user_role.upper())
    except ValueError:
        raise Unauthorized()
    return Actor(user_id=x_user_id, role=role)
