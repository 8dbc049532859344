"""
DispatchEngine: the public face of the simulation.

The engine owns one scheduler, one registry, one event sink and the
notification inbox. Outside code only talks to it through the methods below
and only ever receives frozen snapshots back.
"""

from __future__ import annotations

import itertools
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple, Union

from .clock import Scheduler
from .config import DEFAULT_TIMING, Timing
from .errors import InvalidTransition, SchedulingFailure, UnknownIncident, UnknownUnit
from .events import EventSink, LifecycleCallback, NotificationCallback, NotificationInbox
from .lifecycle import IncidentLifecycle
from .models import (
    Detection,
    EventKind,
    Incident,
    IncidentStatus,
    LifecycleEvent,
    NotificationEvent,
    NotificationKind,
    ResponderUnit,
    Severity,
)
from .priority import priority, rank_by_priority
from .random_source import RandomSource, SeededRandom
from .registry import IncidentRegistry
from .responders import ResponderDispatcher

logger = logging.getLogger("dispatch.engine")


class DispatchEngine:
    def __init__(
        self,
        scheduler: Optional[Scheduler] = None,
        rng: Optional[RandomSource] = None,
        timing: Timing = DEFAULT_TIMING,
        epoch: Optional[datetime] = None,
    ):
        self.scheduler = scheduler or Scheduler()
        self.timing = timing
        self.registry = IncidentRegistry()
        self.sink = EventSink()
        self.inbox = NotificationInbox(self.sink, self.now)
        self._rng = rng or SeededRandom()
        # wall-clock instant that corresponds to the scheduler's current reading
        self._epoch = epoch or datetime.now(timezone.utc)
        self._epoch_reading = self.scheduler.now()
        self._seq = itertools.count(1)

        self.responders = ResponderDispatcher(
            self.registry, self.scheduler, self.sink, self.inbox, self._rng, timing, self.now,
        )
        self.lifecycle = IncidentLifecycle(
            self.registry, self.scheduler, self.sink, self.inbox, timing, self.now,
            on_confirmed=self.responders.assign,
        )

    # --- time ---

    def now(self) -> datetime:
        return self._epoch + timedelta(seconds=self.scheduler.now() - self._epoch_reading)

    @property
    def running(self) -> bool:
        return not self.scheduler.closed

    # --- incidents ---

    def create_incident(self, detection: Union[Detection, dict]) -> Incident:
        """Register a detected accident and start its lifecycle timers.

        Raises SchedulingFailure (and registers nothing) if the timers cannot
        be scheduled, e.g. after `stop()`.
        """
        if not isinstance(detection, Detection):
            detection = Detection.model_validate(detection)
        created_at = self.now()
        incident = Incident(
            id=f"ACC-{int(created_at.timestamp() * 1000)}-{next(self._seq):04d}",
            created_at=created_at,
            location=detection.location,
            severity=detection.severity,
            confidence=detection.confidence,
            status=IncidentStatus.DETECTING,
        )
        self.registry.add(incident)
        try:
            self.lifecycle.schedule(incident)
        except SchedulingFailure:
            self.registry.remove(incident.id)
            logger.error(f"Could not schedule lifecycle for {incident.id}; incident dropped")
            raise

        logger.info(
            f"NEW INCIDENT: {incident.id}: {incident.severity.value.upper()} at "
            f"{incident.location.address} ({incident.confidence:.1f}% confidence)"
        )
        self.sink.publish_lifecycle(LifecycleEvent(
            kind=EventKind.INCIDENT_CREATED, incident_id=incident.id, at=created_at, incident=incident,
        ))
        self.inbox.notify(
            NotificationKind.ACCIDENT,
            "Accident Detected",
            f"{incident.severity.value.upper()} severity accident at {incident.location.address}",
            severity=incident.severity,
            incident_id=incident.id,
        )
        return incident

    def advance_incident(self, incident_id: str, status: Union[IncidentStatus, str]) -> bool:
        """External status change. False (and logged) if unknown, not a forward
        step, or the engine has been stopped.
        """
        if not self.running:
            logger.warning(f"Ignored status change for {incident_id}: engine is stopped")
            return False
        try:
            self.lifecycle.transition(incident_id, IncidentStatus(status))
        except (InvalidTransition, UnknownIncident, ValueError) as e:
            logger.warning(f"Ignored status change for {incident_id}: {e}")
            return False
        return True

    def get_incident(self, incident_id: str) -> Optional[Incident]:
        return self.registry.get(incident_id)

    def incidents(self) -> List[Incident]:
        return self.registry.snapshot()

    def active_incidents(self) -> List[Incident]:
        return self.registry.active()

    def remove_incident(self, incident_id: str) -> bool:
        removed = self.registry.remove(incident_id)
        if removed is None:
            return False
        self.scheduler.cancel_owner(incident_id)
        self.sink.publish_lifecycle(LifecycleEvent(
            kind=EventKind.INCIDENT_REMOVED, incident_id=incident_id, at=self.now(), incident=removed,
        ))
        return True

    def clear_incidents(self) -> int:
        removed = 0
        for incident in self.registry.snapshot():
            removed += self.remove_incident(incident.id)
        logger.info(f"CLEARED: {removed} incident(s) removed")
        return removed

    # --- responders ---

    def units(self, incident_id: str) -> List[ResponderUnit]:
        return self.responders.units(incident_id)

    def get_unit(self, incident_id: str, unit_id: str) -> Optional[ResponderUnit]:
        try:
            return self.responders.unit(incident_id, unit_id)
        except (UnknownIncident, UnknownUnit):
            return None

    def dispatch_unit(self, incident_id: str, unit_id: str) -> bool:
        """Dispatch one unit. False for stale ids or a unit already on its way.

        A SchedulingFailure leaves the unit idle, raises a transient
        "Dispatch Failed" notification and is re-raised to the caller.
        """
        try:
            return self.responders.dispatch_unit(incident_id, unit_id)
        except (UnknownIncident, UnknownUnit) as e:
            logger.warning(f"Dispatch ignored: {e}")
            return False
        except SchedulingFailure as e:
            self._dispatch_failed(incident_id, e)
            raise

    def dispatch_all_units(self, incident_id: str) -> int:
        try:
            return self.responders.dispatch_all(incident_id)
        except UnknownIncident as e:
            logger.warning(f"Dispatch ignored: {e}")
            return 0
        except SchedulingFailure as e:
            self._dispatch_failed(incident_id, e)
            raise

    def _dispatch_failed(self, incident_id: str, error: SchedulingFailure):
        logger.error(f"Dispatch for {incident_id} failed: {error}")
        self.inbox.notify(
            NotificationKind.INFO,
            "Dispatch Failed",
            f"Could not dispatch units for {incident_id}: {error.message}",
            incident_id=incident_id,
        )

    # --- priority ---

    def get_priority(self, incident: Incident, now: Optional[datetime] = None) -> int:
        return priority(incident, now or self.now())

    def priority_queue(self, now: Optional[datetime] = None) -> List[Tuple[Incident, int]]:
        return rank_by_priority(self.registry.snapshot(), now or self.now())

    # --- events & notifications ---

    def on_lifecycle_event(self, callback: LifecycleCallback) -> Callable[[], None]:
        return self.sink.subscribe_lifecycle(callback)

    def on_notification(self, callback: NotificationCallback) -> Callable[[], None]:
        return self.sink.subscribe_notifications(callback)

    def notifications(self) -> List[NotificationEvent]:
        return self.inbox.notifications()

    def mark_notification_read(self, notification_id: str) -> bool:
        return self.inbox.mark_read(notification_id)

    def mark_all_notifications_read(self) -> int:
        return self.inbox.mark_all_read()

    def dismiss_notification(self, notification_id: str) -> bool:
        return self.inbox.dismiss(notification_id)

    # --- summary / teardown ---

    def stats(self) -> Dict[str, int]:
        incidents = self.registry.snapshot()
        return {
            "total": len(incidents),
            "critical": sum(1 for i in incidents if i.severity in (Severity.HIGH, Severity.CRITICAL)),
            "active": sum(1 for i in incidents if i.status != IncidentStatus.RESPONDING),
            "resolved": sum(1 for i in incidents if i.status == IncidentStatus.RESPONDING),
            "unread_notifications": self.inbox.unread_count(),
        }

    def stop(self) -> int:
        """Cancel every pending timer. Transitions that already fired stay."""
        cancelled = self.scheduler.close()
        logger.info(f"Stopped, {cancelled} pending timer(s) cancelled")
        return cancelled
