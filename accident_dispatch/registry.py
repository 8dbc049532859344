"""
Incident registry: the single owned store of incident snapshots.

Readers get frozen snapshots. Writers go through `update()`, which reads the
current snapshot, builds the next one and stores it in a single assignment,
so a stale callback can never write over a newer record with an older one
built from outdated data.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterator, List, Optional

from .errors import UnknownIncident
from .models import Incident, IncidentStatus


class IncidentRegistry:
    """Ordered by creation. Incidents are never reordered once added."""

    def __init__(self):
        self._incidents: Dict[str, Incident] = {}

    def __len__(self) -> int:
        return len(self._incidents)

    def __contains__(self, incident_id: str) -> bool:
        return incident_id in self._incidents

    def __iter__(self) -> Iterator[Incident]:
        return iter(self.snapshot())

    def add(self, incident: Incident) -> Incident:
        if incident.id in self._incidents:
            raise ValueError(f"incident {incident.id} already registered")
        self._incidents[incident.id] = incident
        return incident

    def get(self, incident_id: str) -> Optional[Incident]:
        return self._incidents.get(incident_id)

    def require(self, incident_id: str) -> Incident:
        incident = self._incidents.get(incident_id)
        if incident is None:
            raise UnknownIncident(incident_id)
        return incident

    def update(self, incident_id: str, change: Callable[[Incident], Incident]) -> Incident:
        """Replace an incident with `change(current)`. Raises UnknownIncident if gone."""
        current = self.require(incident_id)
        updated = change(current)
        if updated.id != current.id:
            raise ValueError("incident id is immutable")
        self._incidents[incident_id] = updated
        return updated

    def remove(self, incident_id: str) -> Optional[Incident]:
        return self._incidents.pop(incident_id, None)

    def snapshot(self) -> List[Incident]:
        return list(self._incidents.values())

    def active(self) -> List[Incident]:
        """Incidents still awaiting or receiving a response."""
        return [i for i in self._incidents.values() if i.status != IncidentStatus.RESPONDING]
