"""
Randomness used by the simulation, behind one small interface.

The engine and detector only call `uniform`, `random` and `choice`, so tests
can hand in a scripted source and get fully deterministic incidents.
"""

from __future__ import annotations

import random
from typing import Optional, Protocol, Sequence, TypeVar

T = TypeVar("T")


class RandomSource(Protocol):
    def random(self) -> float: ...

    def uniform(self, low: float, high: float) -> float: ...

    def choice(self, options: Sequence[T]) -> T: ...


class SeededRandom:
    """`random.Random` wrapped to the RandomSource interface."""

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)

    def random(self) -> float:
        return self._rng.random()

    def uniform(self, low: float, high: float) -> float:
        return self._rng.uniform(low, high)

    def choice(self, options):
        return self._rng.choice(options)
