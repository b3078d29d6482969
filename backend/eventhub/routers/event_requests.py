"""EventRequest API routes: facility submission, staff availability and reviewer decisions."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from eventhub.auth import Actor, get_actor
from eventhub.database import get_db
from eventhub.models.event_request import RequestStatus
from eventhub.schemas.event_request import (
    ApprovePayload,
    ApproveWithDatePayload,
    AvailabilityOverviewOut,
    AvailabilityPayload,
    AvailabilityResponseOut,
    CustomRequestCreate,
    EventRequestOut,
    ExistingRequestCreate,
    FacilityEventHistoryOut,
    RejectPayload,
)
from eventhub.services import request_service
from eventhub.services.fact_bus import FactBus
from eventhub.services.lifecycle import get_fact_bus

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/existing", response_model=EventRequestOut, status_code=status.HTTP_201_CREATED)
def request_existing_event(
    payload: ExistingRequestCreate,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    bus: FactBus = Depends(get_fact_bus),
):
    """Facility asks to take part in an existing published event."""
    return request_service.submit_request(
        db, actor, payload.facility_id,
        request_service.ExistingEventPayload(
            event_id=payload.event_id,
            notes=payload.notes,
            expected_attendees=payload.expected_attendees,
            form_submission_id=payload.form_submission_id,
        ),
        bus,
    )


@router.post("/custom", response_model=EventRequestOut, status_code=status.HTTP_201_CREATED)
def request_custom_event(
    payload: CustomRequestCreate,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    bus: FactBus = Depends(get_fact_bus),
):
    """Facility proposes a one-off custom event."""
    return request_service.submit_request(
        db, actor, payload.facility_id,
        request_service.CustomEventPayload(
            title=payload.title,
            start_time_utc=payload.start_time_utc,
            end_time_utc=payload.end_time_utc,
            location_name=payload.location_name,
            description=payload.description,
            location_address=payload.location_address,
            expected_attendees=payload.expected_attendees,
            notes=payload.notes,
            form_submission_id=payload.form_submission_id,
            preferred_dates=tuple(
                request_service.DateOption(start_time_utc=d.start_time_utc, end_time_utc=d.end_time_utc)
                for d in payload.preferred_dates
            ),
        ),
        bus,
    )


@router.get("/", response_model=list[EventRequestOut])
def list_requests(
    status_filter: Optional[RequestStatus] = None,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """All requests (reviewers only), optionally filtered by status."""
    return request_service.list_requests(db, actor, status_filter)


@router.get("/pending", response_model=list[EventRequestOut])
def list_pending(actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    return request_service.list_pending_requests(db, actor)


@router.get("/awaiting-availability", response_model=list[EventRequestOut])
def list_awaiting_availability(actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    """Custom requests still collecting staff availability."""
    return request_service.list_requests_awaiting_availability(db, actor)


@router.get("/facility/{facility_id}/history", response_model=list[FacilityEventHistoryOut])
def facility_history(facility_id: str, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    history = request_service.facility_event_history(db, actor, facility_id)
    return [FacilityEventHistoryOut.model_validate(entry) for entry in history]


@router.get("/facility/{facility_id}", response_model=list[EventRequestOut])
def list_for_facility(facility_id: str, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    return request_service.list_requests_for_facility(db, actor, facility_id)


@router.get("/{request_id}", response_model=EventRequestOut)
def get_request(request_id: str, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    return request_service.get_request(db, actor, request_id)


@router.post("/{request_id}/approve", response_model=EventRequestOut)
def approve_request(
    request_id: str,
    payload: Optional[ApprovePayload] = None,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    bus: FactBus = Depends(get_fact_bus),
):
    """Approve a pending request; custom requests become a published event."""
    overrides = request_service.ApprovalOverrides(**payload.model_dump()) if payload else None
    return request_service.approve(db, actor, request_id, bus, overrides=overrides)


@router.post("/{request_id}/reject", response_model=EventRequestOut)
def reject_request(
    request_id: str,
    payload: RejectPayload,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    bus: FactBus = Depends(get_fact_bus),
):
    return request_service.reject(db, actor, request_id, payload.reason, bus)


@router.post("/{request_id}/cancel", response_model=EventRequestOut)
def cancel_request(
    request_id: str,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    bus: FactBus = Depends(get_fact_bus),
):
    return request_service.cancel(db, actor, request_id, bus)


@router.post("/{request_id}/availability", response_model=AvailabilityResponseOut)
def submit_availability(
    request_id: str,
    payload: AvailabilityPayload,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    bus: FactBus = Depends(get_fact_bus),
):
    """Field staff say which of the proposed dates they can attend."""
    return request_service.submit_availability(db, actor, request_id, payload.availability, bus, notes=payload.notes)


@router.get("/{request_id}/availability", response_model=AvailabilityOverviewOut)
def availability_overview(request_id: str, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    overview = request_service.get_availability_overview(db, actor, request_id)
    return AvailabilityOverviewOut.model_validate(overview)


@router.post("/{request_id}/approve-with-date", response_model=EventRequestOut)
def approve_with_date(
    request_id: str,
    payload: ApproveWithDatePayload,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    bus: FactBus = Depends(get_fact_bus),
):
    """Schedule a gathering request on the chosen date and confirm the available staff."""
    return request_service.approve_with_selected_date(
        db, actor, request_id, payload.selected_date_index, bus, location_id=payload.location_id,
    )
