"""
Responder assignment and the unit motion model.

When an incident is confirmed it gets one dispatch session holding a fixed
set of mock units (see `responder_types.RESPONDER_TYPES`), all starting idle.
A unit moves idle -> dispatched -> en-route -> arrived:

  * dispatch: immediately `dispatched`, then `en-route` after `en_route_delay`;
  * while en-route, every `tick_interval` the ETA drops by `eta_decrement`;
    at zero the unit is `arrived` and its countdown stops for good;
  * on the same tick its map position closes `approach_fraction` of the gap to
    the incident until it is within `arrival_epsilon`.

High and critical incidents have all idle units dispatched automatically
`auto_dispatch_delay` after assignment. Every timer here is owned by the
incident id, so stopping or removing the incident cancels them all.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .clock import Scheduler, TimerHandle
from .config import Timing
from .errors import UnknownIncident, UnknownUnit
from .events import EventSink, NotificationInbox
from .models import (
    Coordinates,
    EventKind,
    Incident,
    LifecycleEvent,
    NotificationKind,
    ResponderUnit,
    UnitStatus,
)
from .motion import decay_eta, has_converged, step_toward
from .random_source import RandomSource
from .registry import IncidentRegistry
from .responder_types import RESPONDER_TYPES

logger = logging.getLogger("dispatch.responders")


class DispatchSession:
    """Units assigned to one incident."""

    def __init__(self, incident: Incident, units: List[ResponderUnit]):
        self.incident_id = incident.id
        self.target = Coordinates(lat=incident.location.lat, lng=incident.location.lng)
        self.units: Dict[str, ResponderUnit] = {u.id: u for u in units}
        self.ticks: Dict[str, TimerHandle] = {}


class ResponderDispatcher:
    def __init__(
        self,
        registry: IncidentRegistry,
        scheduler: Scheduler,
        sink: EventSink,
        inbox: NotificationInbox,
        rng: RandomSource,
        timing: Timing,
        now,
    ):
        self._registry = registry
        self._scheduler = scheduler
        self._sink = sink
        self._inbox = inbox
        self._rng = rng
        self._timing = timing
        self._now = now
        self._sessions: Dict[str, DispatchSession] = {}

    # --- queries ---

    def units(self, incident_id: str) -> List[ResponderUnit]:
        session = self._sessions.get(incident_id)
        return list(session.units.values()) if session else []

    def unit(self, incident_id: str, unit_id: str) -> ResponderUnit:
        session = self._sessions.get(incident_id)
        if session is None:
            if incident_id not in self._registry:
                raise UnknownIncident(incident_id)
            raise UnknownUnit(incident_id, unit_id)
        unit = session.units.get(unit_id)
        if unit is None:
            raise UnknownUnit(incident_id, unit_id)
        return unit

    # --- assignment ---

    def assign(self, incident: Incident) -> List[ResponderUnit]:
        """Create the incident's units. A second call returns the existing ones."""
        existing = self._sessions.get(incident.id)
        if existing is not None:
            return list(existing.units.values())

        units = [self._sample_unit(incident, rtype) for rtype in RESPONDER_TYPES]
        session = DispatchSession(incident, units)
        self._sessions[incident.id] = session
        for unit in units:
            self._emit(EventKind.UNIT_ASSIGNED, unit)
        logger.info(f"{incident.id}: assigned {', '.join(session.units)}")

        if incident.severity.auto_dispatch:
            incident_id = incident.id
            self._scheduler.call_later(
                self._timing.auto_dispatch_delay, lambda: self._auto_dispatch(incident_id),
                owner=incident_id, label=f"{incident_id}:auto-dispatch",
            )
        return units

    def _sample_unit(self, incident: Incident, rtype: dict) -> ResponderUnit:
        d_lat, d_lng = rtype["offset"]
        return ResponderUnit(
            id=rtype["id"],
            incident_id=incident.id,
            kind=rtype["kind"],
            name=rtype["name"],
            contact=rtype["contact"],
            address=rtype["address"],
            distance=self._rng.uniform(*rtype["distance"]),
            eta=self._rng.uniform(*rtype["eta"]),
            position=Coordinates(lat=incident.location.lat + d_lat, lng=incident.location.lng + d_lng),
        )

    # --- dispatch ---

    def dispatch_unit(self, incident_id: str, unit_id: str) -> bool:
        """Send one unit. False if it was already on its way (no-op).

        Raises UnknownIncident / UnknownUnit for stale ids and
        SchedulingFailure if the en-route timer cannot be registered; in both
        cases the unit is left untouched.
        """
        if incident_id not in self._registry:
            raise UnknownIncident(incident_id)
        unit = self.unit(incident_id, unit_id)
        if unit.status != UnitStatus.IDLE:
            logger.debug(f"{incident_id}/{unit_id}: already {unit.status.value}, dispatch ignored")
            return False

        self._scheduler.call_later(
            self._timing.en_route_delay, lambda: self._en_route_due(incident_id, unit_id),
            owner=incident_id, label=f"{incident_id}/{unit_id}:en-route",
        )
        self._set_status(incident_id, unit_id, UnitStatus.DISPATCHED)
        logger.info(f"{incident_id}/{unit_id}: DISPATCHED")
        return True

    def dispatch_all(self, incident_id: str) -> int:
        if incident_id not in self._registry:
            raise UnknownIncident(incident_id)
        sent = 0
        for unit in self.units(incident_id):
            if unit.status == UnitStatus.IDLE and self.dispatch_unit(incident_id, unit.id):
                sent += 1
        return sent

    def _auto_dispatch(self, incident_id: str):
        if incident_id not in self._registry:
            return
        sent = self.dispatch_all(incident_id)
        logger.info(f"{incident_id}: auto-dispatched {sent} unit(s)")

    # --- motion ---

    def _en_route_due(self, incident_id: str, unit_id: str):
        if incident_id not in self._registry:
            return
        unit = self.unit(incident_id, unit_id)
        if unit.status != UnitStatus.DISPATCHED:
            return
        self._set_status(incident_id, unit_id, UnitStatus.EN_ROUTE)
        self._sessions[incident_id].ticks[unit_id] = self._scheduler.call_every(
            self._timing.tick_interval, lambda: self._tick(incident_id, unit_id),
            owner=incident_id, label=f"{incident_id}/{unit_id}:tick",
        )

    def _tick(self, incident_id: str, unit_id: str):
        session = self._sessions[incident_id]
        handle = session.ticks.get(unit_id)
        if incident_id not in self._registry:
            self._stop_ticking(session, unit_id, handle)
            return

        unit = session.units[unit_id]
        timing = self._timing
        changes = {}
        if unit.status == UnitStatus.EN_ROUTE:
            eta = decay_eta(unit.eta, timing.eta_decrement)
            changes["eta"] = eta
            if eta == 0:
                changes["status"] = UnitStatus.ARRIVED
        position = step_toward(unit.position, session.target, timing.approach_fraction, timing.arrival_epsilon)
        if position is not unit.position:
            changes["position"] = position

        if changes:
            updated = unit.model_copy(update=changes)
            session.units[unit_id] = updated
            arrived = changes.get("status") == UnitStatus.ARRIVED
            self._emit(EventKind.UNIT_STATUS if arrived else EventKind.UNIT_PROGRESS, updated,
                       previous=unit.status.value if arrived else None)
            if arrived:
                logger.info(f"{incident_id}/{unit_id}: ARRIVED")
                self._inbox.notify(
                    NotificationKind.INFO,
                    "Unit Arrived",
                    f"{updated.name} has reached the scene of {incident_id}",
                    incident_id=incident_id,
                )
            unit = updated

        if unit.status == UnitStatus.ARRIVED and has_converged(unit.position, session.target, timing.arrival_epsilon):
            self._stop_ticking(session, unit_id, handle)

    @staticmethod
    def _stop_ticking(session: DispatchSession, unit_id: str, handle: Optional[TimerHandle]):
        if handle is not None:
            handle.cancel()
        session.ticks.pop(unit_id, None)

    # --- helpers ---

    def _set_status(self, incident_id: str, unit_id: str, status: UnitStatus) -> ResponderUnit:
        session = self._sessions[incident_id]
        current = session.units[unit_id]
        updated = current.model_copy(update={"status": status})
        session.units[unit_id] = updated
        self._emit(EventKind.UNIT_STATUS, updated, previous=current.status.value)
        return updated

    def _emit(self, kind: EventKind, unit: ResponderUnit, previous: Optional[str] = None):
        self._sink.publish_lifecycle(LifecycleEvent(
            kind=kind,
            incident_id=unit.incident_id,
            at=self._now(),
            unit=unit,
            previous_status=previous,
        ))
