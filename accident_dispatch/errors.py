"""Exceptions raised by the dispatch engine."""


class DispatchError(Exception):
    """Base class. `code` is stable and safe to show to API consumers."""

    code = "dispatch_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidTransition(DispatchError):
    code = "invalid_transition"

    def __init__(self, incident_id: str, current: str, requested: str):
        super().__init__(f"incident {incident_id}: cannot move {current} -> {requested}")
        self.incident_id = incident_id
        self.current = current
        self.requested = requested


class UnknownIncident(DispatchError):
    code = "unknown_incident"

    def __init__(self, incident_id: str):
        super().__init__(f"incident {incident_id} not found")
        self.incident_id = incident_id


class UnknownUnit(DispatchError):
    code = "unknown_unit"

    def __init__(self, incident_id: str, unit_id: str):
        super().__init__(f"unit {unit_id} not assigned to incident {incident_id}")
        self.incident_id = incident_id
        self.unit_id = unit_id


class SchedulingFailure(DispatchError):
    code = "scheduling_failure"
