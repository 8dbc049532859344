"""
Domain records for the dispatch simulator.

Every record is frozen. State changes are made by building a new snapshot
with `model_copy(update=...)` and swapping it into the owning store, so a
reader holding a snapshot never sees it change underneath.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]

    @property
    def auto_dispatch(self) -> bool:
        return self in (Severity.HIGH, Severity.CRITICAL)


SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class IncidentStatus(str, Enum):
    DETECTING = "detecting"
    CONFIRMED = "confirmed"
    DISPATCHED = "dispatched"
    RESPONDING = "responding"


class UnitKind(str, Enum):
    AMBULANCE = "ambulance"
    POLICE = "police"
    HOSPITAL = "hospital"


class UnitStatus(str, Enum):
    IDLE = "idle"
    DISPATCHED = "dispatched"
    EN_ROUTE = "en-route"
    ARRIVED = "arrived"


class NotificationKind(str, Enum):
    ACCIDENT = "accident"
    DISPATCH = "dispatch"
    ARRIVAL = "arrival"
    INFO = "info"


class EventKind(str, Enum):
    INCIDENT_CREATED = "incident.created"
    INCIDENT_STATUS = "incident.status"
    INCIDENT_REMOVED = "incident.removed"
    UNIT_ASSIGNED = "unit.assigned"
    UNIT_STATUS = "unit.status"
    UNIT_PROGRESS = "unit.progress"


class Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True)


class Coordinates(Snapshot):
    lat: float
    lng: float


class Location(Coordinates):
    address: str


class Detection(Snapshot):
    """What the detector hands to the engine when it spots a collision."""

    location: Location
    severity: Severity
    confidence: float = Field(ge=0, le=100)


class Incident(Snapshot):
    id: str
    created_at: datetime
    location: Location
    severity: Severity
    confidence: float = Field(ge=0, le=100)
    status: IncidentStatus = IncidentStatus.DETECTING


class ResponderUnit(Snapshot):
    id: str
    incident_id: str
    kind: UnitKind
    name: str
    contact: str
    address: str
    distance: float  # km, fixed at assignment
    eta: float = Field(ge=0)  # minutes
    status: UnitStatus = UnitStatus.IDLE
    position: Coordinates


class NotificationEvent(Snapshot):
    id: str
    kind: NotificationKind
    title: str
    message: str
    created_at: datetime
    read: bool = False
    severity: Optional[Severity] = None
    incident_id: Optional[str] = None


class LifecycleEvent(Snapshot):
    kind: EventKind
    incident_id: str
    at: datetime
    incident: Optional[Incident] = None
    unit: Optional[ResponderUnit] = None
    previous_status: Optional[str] = None
