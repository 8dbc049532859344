"""
Dispatch priority: severity base score plus whole minutes waited.

Everything here is pure. Scores can be recomputed at any instant and two
calls with the same arguments always agree.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Iterable, List, Tuple

from .models import Incident, Severity

SEVERITY_BASE_SCORE = {
    Severity.CRITICAL: 100,
    Severity.HIGH: 75,
    Severity.MEDIUM: 50,
    Severity.LOW: 25,
}


def severity_base_score(severity: Severity) -> int:
    return SEVERITY_BASE_SCORE[Severity(severity)]


def _as_utc(moment: datetime) -> datetime:
    # naive datetimes are taken to be UTC
    return moment.replace(tzinfo=timezone.utc) if moment.tzinfo is None else moment


def age_minutes(incident: Incident, now: datetime) -> int:
    # negative ages (clock skew) count as zero
    waited = (_as_utc(now) - _as_utc(incident.created_at)).total_seconds()
    return max(0, math.floor(waited / 60))


def priority(incident: Incident, now: datetime) -> int:
    return severity_base_score(incident.severity) + age_minutes(incident, now)


def sort_by_severity(incidents: Iterable[Incident]) -> List[Incident]:
    """Most severe first; oldest first among equals."""
    return sorted(incidents, key=lambda i: (-i.severity.rank, i.created_at))


def rank_by_priority(incidents: Iterable[Incident], now: datetime) -> List[Tuple[Incident, int]]:
    """(incident, score) pairs, highest score first, ties broken by id."""
    scored = [(incident, priority(incident, now)) for incident in incidents]
    scored.sort(key=lambda pair: (-pair[1], pair[0].id))
    return scored
