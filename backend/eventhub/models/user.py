"""User ORM model: projection of the identity collaborator's user record."""
import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Enum as SAEnum
from sqlalchemy.sql import func
from eventhub.auth import Role
from eventhub.database import Base


class User(Base):
    __tablename__ = "users"

    user_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    display_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(32), nullable=True)
    role = Column(SAEnum(Role), nullable=False, default=Role.volunteer)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
