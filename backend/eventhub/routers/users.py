"""User and facility API routes: the identity/facility collaborator surface."""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from eventhub.auth import Actor, Role, get_actor, require_role
from eventhub.database import get_db
from eventhub.errors import NotFound, ValidationError
from eventhub.models.facility import Facility
from eventhub.models.user import User
from eventhub.schemas.user import FacilityCreate, FacilityOut, UserCreate, UserOut

logger = logging.getLogger(__name__)
router = APIRouter()
facilities_router = APIRouter()


@router.post("/", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(payload: UserCreate, db: Session = Depends(get_db)):
    """Register a user projected from the identity provider."""
    user = User(**payload.model_dump())
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created user %s (%s, %s)", user.user_id, user.display_name, user.role.value)
    return user


@router.get("/{user_id}", response_model=UserOut)
def get_user(user_id: str, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.user_id == user_id).first()
    if not user:
        raise NotFound("User not found.")
    return user


@facilities_router.post("/", response_model=FacilityOut, status_code=status.HTTP_201_CREATED)
def create_facility(payload: FacilityCreate, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    """Register a partner facility (ADMIN only)."""
    require_role(actor, {Role.admin})
    contact = db.query(User).filter(User.user_id == payload.contact_user_id).first()
    if not contact:
        raise NotFound("Contact user not found.")
    if contact.role != Role.home_admin:
        raise ValidationError("The facility contact must be a home administrator.")
    facility = Facility(**payload.model_dump())
    db.add(facility)
    db.commit()
    db.refresh(facility)
    logger.info("Created facility %s (%s)", facility.facility_id, facility.name)
    return facility


@facilities_router.get("/{facility_id}", response_model=FacilityOut)
def get_facility(facility_id: str, db: Session = Depends(get_db)):
    facility = db.query(Facility).filter(Facility.facility_id == facility_id).first()
    if not facility:
        raise NotFound("Facility not found.")
    return facility
