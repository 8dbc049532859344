"""
Runtime settings for the accident dispatch simulator.

Every value can be overridden with an environment variable so the service can
be retuned without code changes.
"""

import os
from dataclasses import dataclass

# --- Service ---
API_HOST = os.environ.get("DISPATCH_API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("DISPATCH_API_PORT", "8081"))
LOG_LEVEL = os.environ.get("DISPATCH_LOG_LEVEL", "INFO").upper()
RUNNER_POLL_INTERVAL = float(os.environ.get("DISPATCH_RUNNER_POLL", "0.05"))  # seconds

# --- Rosbridge mirror ---
ROSBRIDGE_ENABLED = os.environ.get("DISPATCH_ROSBRIDGE", "1") not in ("0", "false", "no")
ROSBRIDGE_HOST = os.environ.get("ROSBRIDGE_HOST", "localhost")
ROSBRIDGE_PORT = int(os.environ.get("ROSBRIDGE_PORT", "9090"))
INCIDENT_TOPIC = "/dispatch/incidents"
NOTIFICATION_TOPIC = "/dispatch/notifications"

# --- Detector ---
DETECTION_INTERVAL = float(os.environ.get("DISPATCH_DETECTION_INTERVAL", "3"))  # seconds
DETECTION_PROBABILITY = float(os.environ.get("DISPATCH_DETECTION_PROBABILITY", "0.05"))
MONITORING_ON_START = os.environ.get("DISPATCH_MONITORING", "1") not in ("0", "false", "no")


@dataclass(frozen=True)
class Timing:
    """Delays (seconds) and motion constants used by the engine."""

    confirm_delay: float = 2.0
    dispatch_delay: float = 4.0
    arrival_notice_delay: float = 15.0
    auto_dispatch_delay: float = 1.0
    en_route_delay: float = 1.0
    tick_interval: float = 0.1
    eta_decrement: float = 0.1       # simulated minutes per tick
    approach_fraction: float = 0.05  # share of remaining vector covered per tick
    arrival_epsilon: float = 0.001   # degrees

    def __post_init__(self):
        if not 0 <= self.confirm_delay < self.dispatch_delay < self.arrival_notice_delay:
            raise ValueError(
                "lifecycle delays must satisfy 0 <= confirm < dispatch < arrival notice, got "
                f"{self.confirm_delay}, {self.dispatch_delay}, {self.arrival_notice_delay}"
            )
        if self.auto_dispatch_delay < 0 or self.en_route_delay < 0:
            raise ValueError("auto-dispatch and en-route delays must not be negative")
        if self.tick_interval <= 0 or self.eta_decrement <= 0:
            raise ValueError("tick_interval and eta_decrement must be positive")
        if not 0 < self.approach_fraction <= 1 or self.arrival_epsilon <= 0:
            raise ValueError("approach_fraction must be in (0, 1] and arrival_epsilon positive")


def load_timing() -> Timing:
    """Build a Timing from DISPATCH_* environment overrides."""
    defaults = Timing()
    return Timing(
        confirm_delay=float(os.environ.get("DISPATCH_CONFIRM_DELAY", defaults.confirm_delay)),
        dispatch_delay=float(os.environ.get("DISPATCH_DISPATCH_DELAY", defaults.dispatch_delay)),
        arrival_notice_delay=float(os.environ.get("DISPATCH_ARRIVAL_DELAY", defaults.arrival_notice_delay)),
        auto_dispatch_delay=float(os.environ.get("DISPATCH_AUTO_DISPATCH_DELAY", defaults.auto_dispatch_delay)),
        en_route_delay=float(os.environ.get("DISPATCH_EN_ROUTE_DELAY", defaults.en_route_delay)),
        tick_interval=float(os.environ.get("DISPATCH_TICK_INTERVAL", defaults.tick_interval)),
        eta_decrement=float(os.environ.get("DISPATCH_ETA_DECREMENT", defaults.eta_decrement)),
        approach_fraction=defaults.approach_fraction,
        arrival_epsilon=defaults.arrival_epsilon,
    )


DEFAULT_TIMING = Timing()
