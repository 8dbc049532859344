from datetime import datetime, timezone

import pytest

from accident_dispatch.clock import ManualClock, Scheduler
from accident_dispatch.engine import DispatchEngine
from accident_dispatch.models import Detection, Location, Severity

EPOCH = datetime(2026, 1, 1, 8, 0, tzinfo=timezone.utc)
SCENE = Location(lat=22.6208, lng=88.4035, address="Shyambazar Five Point Crossing, North Kolkata")


class ScriptedRandom:
    """RandomSource that replays queued values, then falls back to fixed ones.

    uniform() falls back to the low end of the range, random() to 1.0 (so
    probability checks fail), choice() to the first option.
    """

    def __init__(self, uniforms=(), randoms=(), choices=()):
        self.uniforms = list(uniforms)
        self.randoms = list(randoms)
        self.choices = list(choices)

    def uniform(self, low, high):
        return self.uniforms.pop(0) if self.uniforms else low

    def random(self):
        return self.randoms.pop(0) if self.randoms else 1.0

    def choice(self, options):
        return options[self.choices.pop(0)] if self.choices else options[0]


class Recorder:
    def __init__(self, engine):
        self.events = []
        self.notifications = []
        engine.on_lifecycle_event(self.events.append)
        engine.on_notification(self.notifications.append)

    def statuses(self, incident_id):
        return [e.incident.status.value for e in self.events
                if e.incident_id == incident_id and e.incident is not None and e.kind.value.startswith("incident.")]

    def unit_events(self, unit_id):
        return [e for e in self.events if e.unit is not None and e.unit.id == unit_id]

    def titles(self):
        return [n.title for n in self.notifications]


def make_detection(severity=Severity.CRITICAL, confidence=92.5, location=SCENE) -> Detection:
    return Detection(location=location, severity=severity, confidence=confidence)


def make_engine(rng=None, clock=None) -> DispatchEngine:
    scheduler = Scheduler(clock or ManualClock())
    return DispatchEngine(scheduler=scheduler, rng=rng or ScriptedRandom(), epoch=EPOCH)


@pytest.fixture
def rng():
    return ScriptedRandom()


@pytest.fixture
def engine(rng):
    return make_engine(rng)


@pytest.fixture
def recorder(engine):
    return Recorder(engine)
