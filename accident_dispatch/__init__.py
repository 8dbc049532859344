"""Accident detection to emergency dispatch simulator."""

from .clock import ManualClock, Scheduler
from .config import DEFAULT_TIMING, Timing
from .detector import AccidentDetector
from .engine import DispatchEngine
from .errors import DispatchError, InvalidTransition, SchedulingFailure, UnknownIncident, UnknownUnit
from .models import (
    Detection,
    Incident,
    IncidentStatus,
    LifecycleEvent,
    Location,
    NotificationEvent,
    NotificationKind,
    ResponderUnit,
    Severity,
    UnitKind,
    UnitStatus,
)
from .priority import priority, rank_by_priority, sort_by_severity

__version__ = "0.1.0"
