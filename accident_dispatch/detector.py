"""
Simulated accident detector.

Stands in for the vision model: while monitoring it scans every
`DETECTION_INTERVAL` seconds and, with probability `DETECTION_PROBABILITY`,
reports a collision at one of the camera landmarks.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from .clock import TimerHandle
from .config import DETECTION_INTERVAL, DETECTION_PROBABILITY
from .engine import DispatchEngine
from .locations import LANDMARKS
from .models import Detection, Incident, Location, Severity
from .random_source import RandomSource, SeededRandom

logger = logging.getLogger("dispatch.detector")

SEVERITIES = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


class AccidentDetector:
    def __init__(
        self,
        engine: DispatchEngine,
        rng: Optional[RandomSource] = None,
        interval: float = DETECTION_INTERVAL,
        probability: float = DETECTION_PROBABILITY,
        locations: Sequence[Location] = LANDMARKS,
    ):
        self.engine = engine
        self.rng = rng or SeededRandom()
        self.interval = interval
        self.probability = probability
        self.locations = list(locations)
        self._scan: Optional[TimerHandle] = None

    @property
    def monitoring(self) -> bool:
        return self._scan is not None and not self._scan.cancelled

    def generate(self) -> Detection:
        """Draw a random detection."""
        return Detection(
            location=self.rng.choice(self.locations),
            severity=self.rng.choice(SEVERITIES),
            confidence=85 + self.rng.uniform(0, 15),
        )

    def trigger(self) -> Incident:
        """Report a detection right now, monitoring or not."""
        incident = self.engine.create_incident(self.generate())
        logger.info(f"TRIGGERED: {incident.id}")
        return incident

    def start(self):
        if self.monitoring:
            return
        self._scan = self.engine.scheduler.call_every(self.interval, self._on_scan, label="detector:scan")
        logger.info("Monitoring started")

    def pause(self):
        if self._scan is not None:
            self._scan.cancel()
            self._scan = None
        logger.info("Monitoring paused, no new incidents will be detected")

    def _on_scan(self):
        if self.rng.random() < self.probability:
            incident = self.engine.create_incident(self.generate())
            logger.info(f"COLLISION DETECTED: {incident.id}")
