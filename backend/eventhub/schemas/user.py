"""Pydantic schemas for Users and Facilities."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from eventhub.auth import Role


class UserCreate(BaseModel):
    display_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    role: Role = Role.volunteer


class UserOut(BaseModel):
    user_id: str
    display_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    role: Role
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class FacilityCreate(BaseModel):
    name: str
    address: Optional[str] = None
    contact_user_id: str


class FacilityOut(BaseModel):
    facility_id: str
    name: str
    address: Optional[str] = None
    contact_user_id: str

    model_config = {"from_attributes": True}
