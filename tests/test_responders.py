import pytest

from accident_dispatch.errors import SchedulingFailure
from accident_dispatch.models import EventKind, Severity, UnitKind, UnitStatus
from accident_dispatch.motion import has_converged

from conftest import Recorder, ScriptedRandom, make_detection, make_engine

# distance, eta per unit in assignment order: ambulance, police, hospital
SAMPLES = [2.0, 5.0, 1.0, 3.0, 3.0, 12.0]


def confirmed(severity=Severity.LOW, samples=SAMPLES):
    engine = make_engine(ScriptedRandom(uniforms=samples))
    recorder = Recorder(engine)
    incident = engine.create_incident(make_detection(severity))
    engine.scheduler.advance(2.0)
    return engine, recorder, incident


def unit(engine, incident, unit_id):
    return engine.get_unit(incident.id, unit_id)


def test_units_assigned_once_on_confirm() -> None:
    engine, recorder, incident = confirmed()

    units = engine.units(incident.id)
    assert [u.id for u in units] == ["AMB-001", "POL-001", "HOS-001"]
    assert [u.kind for u in units] == [UnitKind.AMBULANCE, UnitKind.POLICE, UnitKind.HOSPITAL]
    assert [(u.distance, u.eta) for u in units] == [(2.0, 5.0), (1.0, 3.0), (3.0, 12.0)]
    assert all(u.status == UnitStatus.IDLE for u in units)
    assert all(u.incident_id == incident.id for u in units)
    assert engine.responders.assign(engine.get_incident(incident.id)) == units
    assert sum(1 for e in recorder.events if e.kind == EventKind.UNIT_ASSIGNED) == 3


def test_units_start_away_from_the_scene() -> None:
    engine, _, incident = confirmed()
    ambulance = unit(engine, incident, "AMB-001")
    assert ambulance.position.lat == pytest.approx(incident.location.lat - 0.02)
    assert ambulance.position.lng == pytest.approx(incident.location.lng - 0.02)


def test_no_units_before_confirmation(engine) -> None:
    incident = engine.create_incident(make_detection(Severity.CRITICAL))
    assert engine.units(incident.id) == []
    assert not engine.dispatch_unit(incident.id, "AMB-001")


def test_dispatch_sequence_and_eta_reaches_zero_after_fifty_ticks() -> None:
    engine, recorder, incident = confirmed()

    assert engine.dispatch_unit(incident.id, "AMB-001")
    assert unit(engine, incident, "AMB-001").status == UnitStatus.DISPATCHED
    engine.scheduler.advance(1.0)
    assert unit(engine, incident, "AMB-001").status == UnitStatus.EN_ROUTE

    engine.scheduler.advance(4.95)
    ambulance = unit(engine, incident, "AMB-001")
    assert ambulance.status == UnitStatus.EN_ROUTE
    assert ambulance.eta == pytest.approx(0.1)

    engine.scheduler.advance(0.1)
    ambulance = unit(engine, incident, "AMB-001")
    assert ambulance.status == UnitStatus.ARRIVED
    assert ambulance.eta == 0

    etas = [e.unit.eta for e in recorder.unit_events("AMB-001")]
    assert sum(1 for a, b in zip(etas, etas[1:]) if b < a) == 50
    assert etas == sorted(etas, reverse=True)
    assert "Unit Arrived" in recorder.titles()


def test_arrived_is_terminal_and_implies_zero_eta() -> None:
    engine, recorder, incident = confirmed()
    engine.dispatch_all_units(incident.id)
    engine.scheduler.advance(30)

    for event in recorder.events:
        if event.unit is not None and event.unit.status == UnitStatus.ARRIVED:
            assert event.unit.eta == 0
    for u in engine.units(incident.id):
        assert u.status == UnitStatus.ARRIVED
        assert not engine.dispatch_unit(incident.id, u.id)
    assert all(u.status == UnitStatus.ARRIVED for u in engine.units(incident.id))


def test_positions_converge_and_ticking_stops() -> None:
    engine, _, incident = confirmed()
    engine.dispatch_all_units(incident.id)

    engine.scheduler.advance(60)

    target = incident.location
    for u in engine.units(incident.id):
        assert has_converged(u.position, target, engine.timing.arrival_epsilon)
    assert engine.scheduler.pending(incident.id) == 0


def test_dispatch_is_idempotent() -> None:
    once, _, inc_once = confirmed()
    twice, _, inc_twice = confirmed()

    assert once.dispatch_unit(inc_once.id, "POL-001")
    assert twice.dispatch_unit(inc_twice.id, "POL-001")
    assert not twice.dispatch_unit(inc_twice.id, "POL-001")
    once.scheduler.advance(1.5)
    twice.scheduler.advance(1.5)
    assert not twice.dispatch_unit(inc_twice.id, "POL-001")

    once.scheduler.advance(20)
    twice.scheduler.advance(20)

    def strip(units):
        return [u.model_dump(exclude={"incident_id"}) for u in units]

    assert strip(once.units(inc_once.id)) == strip(twice.units(inc_twice.id))


@pytest.mark.parametrize("severity", [Severity.HIGH, Severity.CRITICAL])
def test_auto_dispatch_for_severe_incidents(severity) -> None:
    engine, _, incident = confirmed(severity)

    engine.scheduler.advance(0.5)
    assert all(u.status == UnitStatus.IDLE for u in engine.units(incident.id))
    engine.scheduler.advance(0.5)
    assert all(u.status == UnitStatus.DISPATCHED for u in engine.units(incident.id))
    engine.scheduler.advance(1.0)
    assert all(u.status == UnitStatus.EN_ROUTE for u in engine.units(incident.id))


def test_manual_dispatch_all_for_minor_incident() -> None:
    engine, _, incident = confirmed(Severity.MEDIUM)
    engine.scheduler.advance(8)
    assert all(u.status == UnitStatus.IDLE for u in engine.units(incident.id))

    assert engine.dispatch_all_units(incident.id) == 3
    assert engine.dispatch_all_units(incident.id) == 0


def test_stale_ids_are_no_ops() -> None:
    engine, _, incident = confirmed()
    assert not engine.dispatch_unit("ACC-missing", "AMB-001")
    assert not engine.dispatch_unit(incident.id, "FIRE-009")
    assert engine.dispatch_all_units("ACC-missing") == 0
    assert engine.get_unit(incident.id, "FIRE-009") is None


def test_scheduling_failure_leaves_unit_idle_and_notifies() -> None:
    engine, recorder, incident = confirmed()
    engine.stop()

    with pytest.raises(SchedulingFailure):
        engine.dispatch_unit(incident.id, "AMB-001")

    assert unit(engine, incident, "AMB-001").status == UnitStatus.IDLE
    assert recorder.titles()[-1] == "Dispatch Failed"


def test_ticks_stop_when_incident_disappears() -> None:
    engine, _, incident = confirmed()
    engine.dispatch_all_units(incident.id)
    engine.scheduler.advance(1.5)
    frozen = engine.units(incident.id)

    engine.registry.remove(incident.id)
    engine.scheduler.advance(0.2)

    assert engine.scheduler.pending(incident.id) == 0
    assert engine.units(incident.id) == frozen
