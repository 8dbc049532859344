"""
Clock and scheduler.

The scheduler is the only source of time-driven change in the engine. Timers
sit in a heap keyed by `(due, sequence)`, so entries due at the same instant
run in the order they were registered. Each timer may carry an owner key
(an incident id) so everything belonging to one incident can be cancelled in
one call.

Time is a float number of seconds taken from an injectable clock. The default
is `time.monotonic`; `ManualClock` gives tests and replays a virtual timeline
that only moves when `Scheduler.advance()` is called.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Hashable, List, Optional, Set

from .errors import InvalidTransition, SchedulingFailure

logger = logging.getLogger("dispatch.clock")


class ManualClock:
    """A clock that stands still until told to move."""

    def __init__(self, start: float = 0.0):
        self._now = float(start)

    def __call__(self) -> float:
        return self._now

    def set(self, value: float):
        if value < self._now:
            raise ValueError("manual clock cannot run backwards")
        self._now = float(value)


@dataclass(order=True)
class TimerHandle:
    due: float
    seq: int
    callback: Callable[[], object] = field(compare=False)
    owner: Optional[Hashable] = field(default=None, compare=False)
    label: str = field(default="", compare=False)
    interval: Optional[float] = field(default=None, compare=False)
    start: float = field(default=0.0, compare=False)
    runs: int = field(default=0, compare=False)
    cancelled: bool = field(default=False, compare=False)
    _scheduler: Optional["Scheduler"] = field(default=None, compare=False, repr=False)

    def cancel(self):
        if self.cancelled:
            return
        self.cancelled = True
        if self._scheduler is not None:
            self._scheduler._forget(self)


class Scheduler:
    """Single-threaded timer queue. Nothing runs until `run_due`/`advance`."""

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.monotonic
        self._heap: List[TimerHandle] = []
        self._seq = itertools.count()
        self._owners: Dict[Hashable, Set[int]] = {}
        self._live: Dict[int, TimerHandle] = {}
        self._closed = False

    # --- registration ---

    def now(self) -> float:
        return self._clock()

    @property
    def closed(self) -> bool:
        return self._closed

    def call_later(self, delay: float, callback, owner=None, label: str = "") -> TimerHandle:
        self._check_delay(delay, label)
        return self._push(self.now() + delay, callback, owner, label)

    def call_every(self, interval: float, callback, owner=None, label: str = "") -> TimerHandle:
        """Run `callback` every `interval` seconds, first run one interval from now.

        Due times are computed as `start + n * interval` so the cadence does
        not drift however late the loop services it.
        """
        self._check_delay(interval, label)
        if interval <= 0:
            raise SchedulingFailure(f"timer {label or '?'}: interval must be positive")
        start = self.now()
        handle = self._push(start + interval, callback, owner, label)
        handle.interval = interval
        handle.start = start
        return handle

    def cancel_owner(self, owner) -> int:
        """Cancel every pending timer registered under `owner`."""
        seqs = self._owners.pop(owner, set())
        for seq in seqs:
            handle = self._live.pop(seq, None)
            if handle is not None:
                handle.cancelled = True
        return len(seqs)

    def cancel_all(self) -> int:
        count = len(self._live)
        for handle in self._live.values():
            handle.cancelled = True
        self._live.clear()
        self._owners.clear()
        self._heap.clear()
        return count

    def close(self) -> int:
        """Cancel everything and refuse new timers."""
        self._closed = True
        return self.cancel_all()

    def pending(self, owner=None) -> int:
        if owner is None:
            return len(self._live)
        return len(self._owners.get(owner, ()))

    def next_due(self) -> Optional[float]:
        while self._heap and self._heap[0].cancelled:
            heapq.heappop(self._heap)
        return self._heap[0].due if self._heap else None

    # --- execution ---

    def run_due(self, until: Optional[float] = None) -> int:
        """Run every timer due at or before `until` (default: now). Returns the count run."""
        if until is None:
            until = self.now()
        ran = 0
        while True:
            due = self.next_due()
            if due is None or due > until:
                break
            handle = heapq.heappop(self._heap)
            if isinstance(self._clock, ManualClock):
                self._clock.set(max(handle.due, self._clock()))
            self._fire(handle)
            ran += 1
        return ran

    def advance(self, seconds: float) -> int:
        """Move a ManualClock forward, running timers at their own due times."""
        if not isinstance(self._clock, ManualClock):
            raise SchedulingFailure("advance() needs a ManualClock")
        target = self._clock() + seconds
        ran = self.run_due(target)
        self._clock.set(target)
        return ran

    def _fire(self, handle: TimerHandle):
        periodic = handle.interval is not None
        if not periodic:
            self._forget(handle)
        try:
            handle.runs += 1
            handle.callback()
        except InvalidTransition as e:
            logger.warning(f"Ignored transition in timer {handle.label}: {e}")
        except Exception as e:
            logger.error(f"Timer {handle.label} failed: {e}", exc_info=True)
        if periodic and not handle.cancelled:
            handle.due = handle.start + (handle.runs + 1) * handle.interval
            heapq.heappush(self._heap, handle)

    # --- internals ---

    def _check_delay(self, delay, label):
        if self._closed:
            raise SchedulingFailure(f"timer {label or '?'}: scheduler is stopped")
        if delay is None or not math.isfinite(delay) or delay < 0:
            raise SchedulingFailure(f"timer {label or '?'}: invalid delay {delay!r}")

    def _push(self, due, callback, owner, label) -> TimerHandle:
        handle = TimerHandle(due=due, seq=next(self._seq), callback=callback,
                             owner=owner, label=label, _scheduler=self)
        heapq.heappush(self._heap, handle)
        self._live[handle.seq] = handle
        if owner is not None:
            self._owners.setdefault(owner, set()).add(handle.seq)
        return handle

    def _forget(self, handle: TimerHandle):
        self._live.pop(handle.seq, None)
        if handle.owner is not None:
            seqs = self._owners.get(handle.owner)
            if seqs is not None:
                seqs.discard(handle.seq)
                if not seqs:
                    del self._owners[handle.owner]
