"""Simulated unit motion: ETA countdown and exponential approach on the map."""

from __future__ import annotations

import math

from .models import Coordinates

ETA_PRECISION = 6  # decimal places kept after each decrement


def decay_eta(eta: float, decrement: float) -> float:
    """One tick of countdown. Never negative."""
    remaining = round(eta - decrement, ETA_PRECISION)
    return remaining if remaining > 0 else 0.0


def remaining_distance(position: Coordinates, target: Coordinates) -> float:
    return math.hypot(target.lat - position.lat, target.lng - position.lng)


def has_converged(position: Coordinates, target: Coordinates, epsilon: float) -> bool:
    return remaining_distance(position, target) < epsilon


def step_toward(position: Coordinates, target: Coordinates, fraction: float, epsilon: float) -> Coordinates:
    """Move `fraction` of the remaining vector toward `target`.

    Returns `position` unchanged once within `epsilon`. The step never
    overshoots and never lands exactly on the target.
    """
    if has_converged(position, target, epsilon):
        return position
    return Coordinates(
        lat=position.lat + (target.lat - position.lat) * fraction,
        lng=position.lng + (target.lng - position.lng) * fraction,
    )
