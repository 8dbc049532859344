import pytest

from accident_dispatch.config import DEFAULT_TIMING, Timing, load_timing


def test_defaults_are_the_literal_delays() -> None:
    assert (DEFAULT_TIMING.confirm_delay, DEFAULT_TIMING.dispatch_delay, DEFAULT_TIMING.arrival_notice_delay) == (2, 4, 15)
    assert DEFAULT_TIMING.auto_dispatch_delay == 1
    assert DEFAULT_TIMING.tick_interval == 0.1


def test_load_timing_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("DISPATCH_CONFIRM_DELAY", "0.5")
    monkeypatch.setenv("DISPATCH_TICK_INTERVAL", "0.25")
    monkeypatch.delenv("DISPATCH_DISPATCH_DELAY", raising=False)

    timing = load_timing()

    assert timing.confirm_delay == 0.5
    assert timing.tick_interval == 0.25
    assert timing.dispatch_delay == Timing().dispatch_delay


@pytest.mark.parametrize("overrides", [
    {"confirm_delay": 5.0},
    {"dispatch_delay": 15.0},
    {"confirm_delay": -1.0},
    {"tick_interval": 0.0},
    {"eta_decrement": -0.1},
    {"approach_fraction": 0.0},
])
def test_timing_rejects_values_that_break_timer_order(overrides) -> None:
    with pytest.raises(ValueError):
        Timing(**overrides)


def test_load_timing_rejects_out_of_order_environment(monkeypatch) -> None:
    monkeypatch.setenv("DISPATCH_CONFIRM_DELAY", "5")
    with pytest.raises(ValueError):
        load_timing()
