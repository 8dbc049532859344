"""
Incident lifecycle: detecting -> confirmed -> dispatched -> responding.

Status only moves forward. The timed part of the lifecycle is registered with
the scheduler when the incident is created, under the incident id as owner,
in strictly increasing delay order:

    t0 + confirm_delay         detecting -> confirmed
    t0 + dispatch_delay        confirmed -> dispatched     (high/critical only)
    t0 + arrival_notice_delay  "first responders arrived"  (high/critical only)

`responding` is never scheduled; only an external actor moves an incident
there. Every timer looks its incident up by id when it fires and does nothing
if the incident has been removed in the meantime.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, FrozenSet, Optional

from .clock import Scheduler
from .config import Timing
from .errors import InvalidTransition
from .events import EventSink, NotificationInbox
from .models import EventKind, Incident, IncidentStatus, LifecycleEvent, NotificationKind
from .registry import IncidentRegistry

logger = logging.getLogger("dispatch.lifecycle")

VALID_TRANSITIONS: Dict[IncidentStatus, FrozenSet[IncidentStatus]] = {
    IncidentStatus.DETECTING: frozenset({IncidentStatus.CONFIRMED}),
    IncidentStatus.CONFIRMED: frozenset({IncidentStatus.DISPATCHED, IncidentStatus.RESPONDING}),
    IncidentStatus.DISPATCHED: frozenset({IncidentStatus.RESPONDING}),
    IncidentStatus.RESPONDING: frozenset(),
}

STATUS_ORDER = {
    IncidentStatus.DETECTING: 0,
    IncidentStatus.CONFIRMED: 1,
    IncidentStatus.DISPATCHED: 2,
    IncidentStatus.RESPONDING: 3,
}


def can_transition(current: IncidentStatus, requested: IncidentStatus) -> bool:
    return requested in VALID_TRANSITIONS.get(current, frozenset())


class IncidentLifecycle:
    """Applies status transitions and owns the per-incident lifecycle timers."""

    def __init__(
        self,
        registry: IncidentRegistry,
        scheduler: Scheduler,
        sink: EventSink,
        inbox: NotificationInbox,
        timing: Timing,
        now,
        on_confirmed: Optional[Callable[[Incident], object]] = None,
    ):
        self._registry = registry
        self._scheduler = scheduler
        self._sink = sink
        self._inbox = inbox
        self._timing = timing
        self._now = now
        self._on_confirmed = on_confirmed

    def schedule(self, incident: Incident):
        """Register the timed transitions for a freshly created incident.

        Raises SchedulingFailure if any timer is refused; timers registered
        before the failure are cancelled so nothing half-scheduled is left.
        """
        incident_id = incident.id
        try:
            self._scheduler.call_later(
                self._timing.confirm_delay, lambda: self._confirm_due(incident_id),
                owner=incident_id, label=f"{incident_id}:confirm",
            )
            if incident.severity.auto_dispatch:
                self._scheduler.call_later(
                    self._timing.dispatch_delay, lambda: self._dispatch_due(incident_id),
                    owner=incident_id, label=f"{incident_id}:dispatch",
                )
                self._scheduler.call_later(
                    self._timing.arrival_notice_delay, lambda: self._arrival_due(incident_id),
                    owner=incident_id, label=f"{incident_id}:arrival",
                )
        except Exception:
            self._scheduler.cancel_owner(incident_id)
            raise

    def transition(self, incident_id: str, requested: IncidentStatus) -> Incident:
        """Move an incident one step forward. Raises InvalidTransition or UnknownIncident."""
        requested = IncidentStatus(requested)
        current = self._registry.require(incident_id)
        if not can_transition(current.status, requested):
            raise InvalidTransition(incident_id, current.status.value, requested.value)

        def change(snapshot: Incident) -> Incident:
            # re-check against the snapshot actually being replaced
            if not can_transition(snapshot.status, requested):
                raise InvalidTransition(incident_id, snapshot.status.value, requested.value)
            return snapshot.model_copy(update={"status": requested})

        updated = self._registry.update(incident_id, change)
        previous = current.status
        logger.info(f"{requested.value.upper()}: {incident_id} (was {previous.value})")
        self._sink.publish_lifecycle(LifecycleEvent(
            kind=EventKind.INCIDENT_STATUS,
            incident_id=incident_id,
            at=self._now(),
            incident=updated,
            previous_status=previous.value,
        ))
        self._entered(updated)
        return updated

    def _entered(self, incident: Incident):
        if incident.status == IncidentStatus.CONFIRMED:
            self._inbox.notify(
                NotificationKind.INFO,
                "Incident Confirmed",
                f"Accident {incident.id} has been confirmed. Notifying emergency services...",
                incident_id=incident.id,
            )
            if self._on_confirmed is not None:
                self._on_confirmed(incident)
        elif incident.status == IncidentStatus.DISPATCHED:
            self._inbox.notify(
                NotificationKind.DISPATCH,
                "Emergency Units Dispatched",
                f"Ambulance, police, and medical teams are en route to {incident.location.address}",
                incident_id=incident.id,
            )

    # --- timer callbacks ---

    def _confirm_due(self, incident_id: str):
        if incident_id not in self._registry:
            logger.debug(f"{incident_id}: confirm timer fired for removed incident")
            return
        self.transition(incident_id, IncidentStatus.CONFIRMED)

    def _dispatch_due(self, incident_id: str):
        if incident_id not in self._registry:
            logger.debug(f"{incident_id}: dispatch timer fired for removed incident")
            return
        self.transition(incident_id, IncidentStatus.DISPATCHED)

    def _arrival_due(self, incident_id: str):
        if incident_id not in self._registry:
            logger.debug(f"{incident_id}: arrival timer fired for removed incident")
            return
        self._inbox.notify(
            NotificationKind.ARRIVAL,
            "First Responders Arrived",
            f"Emergency services have arrived at the scene of {incident_id}",
            incident_id=incident_id,
        )
