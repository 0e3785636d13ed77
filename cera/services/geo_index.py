"""
Geo Index - "incidents near a point" queries.

Two passes:
1. Bounding-box prefilter pushed down to the repository (cheap, over-inclusive)
2. Exact great-circle radius check with haversine

Filters are applied after the radius check, results are ordered newest first
and capped. Each result is annotated relative to the caller.
"""

from typing import Iterable, List, Optional, Set, Type, TypeVar
from enum import Enum
import logging

from pydantic import BaseModel, Field

from cera.core.errors import BadRequestError
from cera.models.incident import (
    Incident,
    IncidentStatus,
    IncidentType,
    NearbyIncident,
    Severity,
)
from cera.repositories.base import IncidentRepository
from cera.utils.geo import bounding_box, haversine_km

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)


class NearbyQuery(BaseModel):
    longitude: float = Field(..., ge=-180, le=180)
    latitude: float = Field(..., ge=-90, le=90)
    radius_km: float = Field(10.0, gt=0)
    types: Set[IncidentType] = Field(default_factory=set)
    severities: Set[Severity] = Field(default_factory=set)
    statuses: Set[IncidentStatus] = Field(default_factory=set)
    unassigned_only: bool = False
    limit: int = Field(50, ge=1)


def parse_filter(raw: Optional[str], enum_cls: Type[E], label: str) -> Set[E]:
    """
    Parse a comma-separated filter such as "fire,flood".

    Empty input means unrestricted. Matching is case-insensitive; an unknown
    value is a BadRequest naming the allowed values.
    """
    if raw is None or not raw.strip():
        return set()

    by_lower = {member.value.lower(): member for member in enum_cls}
    parsed: Set[E] = set()
    for part in raw.split(","):
        value = part.strip().lower()
        if not value:
            continue
        if value not in by_lower:
            raise BadRequestError(
                f"Invalid {label} '{part.strip()}'. Allowed: {[m.value for m in enum_cls]}"
            )
        parsed.add(by_lower[value])
    return parsed


class GeoIndex:

    def __init__(self, incidents: IncidentRepository):
        self.incidents = incidents

    @staticmethod
    def matches(incident: Incident, query: NearbyQuery) -> bool:
        if query.types and incident.type not in query.types:
            return False
        if query.severities and incident.severity not in query.severities:
            return False
        if query.statuses and incident.status not in query.statuses:
            return False
        if query.unassigned_only and incident.assigned_volunteers:
            return False
        return True

    @staticmethod
    def annotate(incident: Incident, distance_km: float, actor_id: Optional[str]) -> NearbyIncident:
        entry = incident.find_assignment(actor_id) if actor_id else None
        return NearbyIncident(
            **incident.model_dump(),
            distance_km=round(distance_km, 3),
            is_assigned_to_user=entry is not None,
            user_assignment_status=entry.status if entry else None,
        )

    def within_radius(self, candidates: Iterable[Incident], query: NearbyQuery):
        for incident in candidates:
            distance = haversine_km(
                query.latitude, query.longitude,
                incident.location.latitude, incident.location.longitude,
            )
            if distance <= query.radius_km:
                yield incident, distance

    def nearby(self, actor_id: Optional[str], query: NearbyQuery) -> List[NearbyIncident]:
        min_lat, max_lat, min_lon, max_lon = bounding_box(query.latitude, query.longitude, query.radius_km)
        candidates = self.incidents.list_in_bounds(min_lat, max_lat, min_lon, max_lon)

        hits = [
            (incident, distance)
            for incident, distance in self.within_radius(candidates, query)
            if self.matches(incident, query)
        ]
        hits.sort(key=lambda hit: hit[0].created_at, reverse=True)

        logger.info(
            f"Nearby ({query.latitude:.4f}, {query.longitude:.4f}) r={query.radius_km}km: "
            f"{len(candidates)} candidates, {len(hits)} matches"
        )
        return [self.annotate(incident, distance, actor_id) for incident, distance in hits[:query.limit]]

