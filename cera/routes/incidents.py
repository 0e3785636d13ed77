"""
Incident routes - reporting, triage, dispatch and volunteer task flow.

Services raise typed errors (cera.core.errors); the handlers registered in
cera.main render them, so routes do not translate exceptions.
"""

import json
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from pydantic import ValidationError

from cera.core.errors import BadRequestError
from cera.core.settings import settings
from cera.models.incident import (
    ContactCoordinatorsRequest,
    DispatchRequest,
    GeoPoint,
    Incident,
    IncidentCreate,
    IncidentStatus,
    IncidentType,
    LogEntry,
    NearbyIncident,
    PhotoUpload,
    Severity,
)
from cera.models.user import Actor
from cera.services.geo_index import NearbyQuery, parse_filter
from cera.services.incident_service import IncidentService, get_incident_service
from cera.utils.security import get_current_actor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/incidents", tags=["Incidents"])


def _parse_location(raw: Optional[str]) -> GeoPoint:
    if not raw:
        raise BadRequestError("Location is required")
    try:
        return GeoPoint.model_validate(json.loads(raw))
    except (json.JSONDecodeError, TypeError, ValidationError) as e:
        raise BadRequestError(f"Invalid location: {e}")


@router.post("", response_model=Incident, status_code=status.HTTP_201_CREATED)
async def create_incident(
    type: Optional[str] = Form(None),
    custom_type: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    severity: Optional[str] = Form(None),
    affected: Optional[int] = Form(None),
    location: Optional[str] = Form(None, description='JSON: {"longitude": .., "latitude": .., "name": ..}'),
    photos: Optional[List[UploadFile]] = File(None),
    actor: Actor = Depends(get_current_actor),
    service: IncidentService = Depends(get_incident_service),
):
    """
    Report a new incident (multipart form).

    Photos are uploaded before the incident is stored; if any upload fails
    nothing is created.
    """
    try:
        data = IncidentCreate(
            type=type,
            custom_type=custom_type,
            description=description,
            severity=severity,
            affected=affected,
            location=_parse_location(location),
        )
    except ValidationError as e:
        raise BadRequestError(f"Invalid incident: {e.errors()[0]['msg']}")

    uploads = []
    for photo in photos or []:
        uploads.append(PhotoUpload(
            filename=photo.filename or "photo.jpg",
            content_type=photo.content_type or "application/octet-stream",
            data=await photo.read(),
        ))

    return await service.create_incident(actor, data, uploads)


@router.get("", response_model=List[Incident])
def list_incidents(
    status_filter: Optional[str] = Query(None, alias="status", description="Comma separated statuses"),
    type_filter: Optional[str] = Query(None, alias="type", description="Comma separated types"),
    actor: Actor = Depends(get_current_actor),
    service: IncidentService = Depends(get_incident_service),
):
    statuses = parse_filter(status_filter, IncidentStatus, "status")
    types = parse_filter(type_filter, IncidentType, "type")
    return service.list(statuses=list(statuses), types=list(types))


@router.get("/my", response_model=List[Incident])
def my_incidents(
    actor: Actor = Depends(get_current_actor),
    service: IncidentService = Depends(get_incident_service),
):
    return service.list_reported_by(actor.id)


@router.get("/nearby", response_model=List[NearbyIncident])
def nearby_incidents(
    lng: Optional[float] = Query(None),
    lat: Optional[float] = Query(None),
    max_km: Optional[float] = Query(None),
    unassigned: Optional[str] = Query(None),
    type_filter: Optional[str] = Query(None, alias="type"),
    severity: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: Optional[int] = Query(None),
    actor: Actor = Depends(get_current_actor),
    service: IncidentService = Depends(get_incident_service),
):
    """
    Incidents within `max_km` of (lng, lat), newest first.

    Each result says whether the caller is assigned and with what status.
    """
    if lng is None or lat is None:
        raise BadRequestError("lng and lat required")

    radius = settings.NEARBY_DEFAULT_RADIUS_KM if max_km is None else max_km
    if radius <= 0:
        raise BadRequestError("max_km must be positive")

    limit = settings.NEARBY_DEFAULT_LIMIT if limit is None else limit
    if limit < 1:
        raise BadRequestError("limit must be at least 1")

    try:
        query = NearbyQuery(
            longitude=lng,
            latitude=lat,
            radius_km=radius,
            types=parse_filter(type_filter, IncidentType, "type"),
            severities=parse_filter(severity, Severity, "severity"),
            statuses=parse_filter(status_filter, IncidentStatus, "status"),
            unassigned_only=(unassigned or "").lower() == "true",
            limit=min(limit, settings.NEARBY_MAX_LIMIT),
        )
    except ValidationError as e:
        raise BadRequestError(f"Invalid coordinates: {e.errors()[0]['msg']}")

    return service.nearby(actor, query)


@router.get("/assigned/me", response_model=List[Incident])
def assigned_to_me(
    actor: Actor = Depends(get_current_actor),
    service: IncidentService = Depends(get_incident_service),
):
    return service.list_assigned_to(actor.id)


@router.get("/volunteer/completed", response_model=List[Incident])
def completed_by_me(
    actor: Actor = Depends(get_current_actor),
    service: IncidentService = Depends(get_incident_service),
):
    return service.list_completed_by(actor.id)


@router.get("/{incident_id}", response_model=Incident)
def get_incident(
    incident_id: str,
    actor: Actor = Depends(get_current_actor),
    service: IncidentService = Depends(get_incident_service),
):
    return service.get(incident_id)


@router.get("/{incident_id}/logs", response_model=List[LogEntry])
def incident_history(
    incident_id: str,
    actor: Actor = Depends(get_current_actor),
    service: IncidentService = Depends(get_incident_service),
):
    return service.history(incident_id)


@router.post("/{incident_id}/approve", response_model=Incident)
def approve_incident(
    incident_id: str,
    actor: Actor = Depends(get_current_actor),
    service: IncidentService = Depends(get_incident_service),
):
    return service.approve(actor, incident_id)


@router.post("/{incident_id}/dispatch", response_model=Incident)
def dispatch_volunteers(
    incident_id: str,
    body: DispatchRequest,
    actor: Actor = Depends(get_current_actor),
    service: IncidentService = Depends(get_incident_service),
):
    return service.dispatch(actor, incident_id, body.volunteer_ids)


@router.post("/{incident_id}/accept", response_model=Incident)
def accept_task(
    incident_id: str,
    actor: Actor = Depends(get_current_actor),
    service: IncidentService = Depends(get_incident_service),
):
    return service.accept(actor, incident_id)


@router.post("/{incident_id}/decline", response_model=Incident)
def decline_task(
    incident_id: str,
    actor: Actor = Depends(get_current_actor),
    service: IncidentService = Depends(get_incident_service),
):
    return service.decline(actor, incident_id)


@router.post("/{incident_id}/start", response_model=Incident)
def start_task(
    incident_id: str,
    actor: Actor = Depends(get_current_actor),
    service: IncidentService = Depends(get_incident_service),
):
    return service.start(actor, incident_id)


@router.post("/{incident_id}/complete", response_model=Incident)
def complete_task(
    incident_id: str,
    actor: Actor = Depends(get_current_actor),
    service: IncidentService = Depends(get_incident_service),
):
    return service.complete(actor, incident_id)


@router.post("/{incident_id}/contact-coordinators", response_model=Incident)
def contact_coordinators(
    incident_id: str,
    body: Optional[ContactCoordinatorsRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: IncidentService = Depends(get_incident_service),
):
    message = body.message if body else None
    return service.contact_coordinators(actor, incident_id, message)
