import logging

import pytest

from accident_dispatch.clock import ManualClock, Scheduler
from accident_dispatch.errors import InvalidTransition, SchedulingFailure


def make_scheduler():
    return Scheduler(ManualClock())


def test_timers_fire_in_due_order_and_fifo_on_ties() -> None:
    scheduler = make_scheduler()
    fired = []
    scheduler.call_later(2.0, lambda: fired.append("b"))
    scheduler.call_later(1.0, lambda: fired.append("a"))
    scheduler.call_later(2.0, lambda: fired.append("c"))

    scheduler.advance(5)

    assert fired == ["a", "b", "c"]


def test_callbacks_see_their_own_due_time() -> None:
    scheduler = make_scheduler()
    seen = []
    scheduler.call_later(1.5, lambda: seen.append(scheduler.now()))

    scheduler.advance(10)

    assert seen == [1.5]
    assert scheduler.now() == 10


def test_nothing_runs_before_it_is_due() -> None:
    scheduler = make_scheduler()
    fired = []
    scheduler.call_later(1.0, lambda: fired.append(1))

    scheduler.advance(0.99)
    assert fired == []
    scheduler.advance(0.01)
    assert fired == [1]


def test_cancel_owner_only_touches_that_owner() -> None:
    scheduler = make_scheduler()
    fired = []
    scheduler.call_later(1, lambda: fired.append("a1"), owner="A")
    scheduler.call_later(2, lambda: fired.append("a2"), owner="A")
    scheduler.call_later(1, lambda: fired.append("b1"), owner="B")

    assert scheduler.cancel_owner("A") == 2
    scheduler.advance(5)

    assert fired == ["b1"]
    assert scheduler.pending() == 0


def test_handle_cancel() -> None:
    scheduler = make_scheduler()
    fired = []
    handle = scheduler.call_later(1, lambda: fired.append(1), owner="A")
    handle.cancel()
    handle.cancel()

    scheduler.advance(2)

    assert fired == []
    assert scheduler.pending("A") == 0


def test_periodic_timer_keeps_fixed_cadence() -> None:
    scheduler = make_scheduler()
    ticks = []
    scheduler.call_every(0.1, lambda: ticks.append(scheduler.now()))

    scheduler.advance(1.05)

    assert len(ticks) == 10
    assert ticks[-1] == pytest.approx(1.0)


def test_periodic_timer_can_cancel_itself() -> None:
    scheduler = make_scheduler()
    ticks = []

    def tick():
        ticks.append(1)
        if len(ticks) == 3:
            handle.cancel()

    handle = scheduler.call_every(1, tick)
    scheduler.advance(10)

    assert len(ticks) == 3
    assert scheduler.next_due() is None


def test_failing_callback_is_logged_and_others_still_run(caplog) -> None:
    scheduler = make_scheduler()
    fired = []

    def boom():
        raise RuntimeError("kaput")

    scheduler.call_later(1, boom, label="boom")
    scheduler.call_later(2, lambda: fired.append("after"))

    with caplog.at_level(logging.ERROR, logger="dispatch.clock"):
        scheduler.advance(3)

    assert fired == ["after"]
    assert "boom" in caplog.text


def test_invalid_transition_in_timer_is_a_warning(caplog) -> None:
    scheduler = make_scheduler()

    def stale():
        raise InvalidTransition("ACC-1", "responding", "dispatched")

    scheduler.call_later(1, stale, label="stale")
    with caplog.at_level(logging.WARNING, logger="dispatch.clock"):
        scheduler.advance(2)

    assert "Ignored transition" in caplog.text


def test_closed_scheduler_refuses_new_timers() -> None:
    scheduler = make_scheduler()
    fired = []
    scheduler.call_later(1, lambda: fired.append(1))

    assert scheduler.close() == 1
    with pytest.raises(SchedulingFailure):
        scheduler.call_later(1, lambda: None)
    scheduler.advance(5)

    assert fired == []
    assert scheduler.closed


@pytest.mark.parametrize("delay", [-1, float("nan"), float("inf")])
def test_bad_delays_are_refused(delay) -> None:
    with pytest.raises(SchedulingFailure):
        make_scheduler().call_later(delay, lambda: None)


def test_advance_needs_manual_clock() -> None:
    with pytest.raises(SchedulingFailure):
        Scheduler().advance(1)


def test_manual_clock_never_goes_back() -> None:
    clock = ManualClock(5)
    with pytest.raises(ValueError):
        clock.set(4)
