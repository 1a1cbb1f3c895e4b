# disruption.py
"""
Transient predators that periodically scatter the flock.

A predator appears on a circle around the flock centroid, drifts inward and
fades out. Particles flee it through the avoidance term of the force model.
"""
import logging
import math
from dataclasses import dataclass
from typing import Dict, Any, List

import numpy as np

from constants import PREDATOR_SPAWN_RADIUS

# --- Data Contracts ---
#
# class DisruptionSystem:
#   - __init__(self, params: Dict[str, Any], rng: np.random.Generator)
#     - Inputs: the "disruption" section of config.json.
#       - "enabled": bool
#       - "interval": seconds between spawns
#       - "duration": lifetime of a predator in seconds
#       - "spawn_radius", "spawn_speed", "initial_strength": floats
#   - tick(self, now: float, flock_center: np.ndarray) -> None
#     - Side Effects: spawns, moves, fades and removes predators.
#     - Invariants: 0 <= strength <= initial_strength; no predator outlives
#       its duration by more than one tick.
#   - as_array(self) -> np.ndarray of shape (P, 4).


@dataclass
class Predator:
    position: np.ndarray
    velocity: np.ndarray
    strength: float
    initial_strength: float
    created_at: float


class DisruptionSystem:
    """Spawns and ages predators on the caller's unclamped clock."""

    def __init__(self, params: Dict[str, Any], rng: np.random.Generator):
        self.enabled = bool(params.get('enabled', True))
        self.interval = float(params.get('interval', 15.0))
        self.duration = float(params.get('duration', 5.0))
        self.spawn_radius = float(params.get('spawn_radius', PREDATOR_SPAWN_RADIUS))
        self.spawn_speed = float(params.get('spawn_speed', 0.3))
        self.initial_strength = float(params.get('initial_strength', 0.6))

        if self.interval <= 0 or self.duration <= 0:
            msg = (
                f"Configuration error: disruption interval ({self.interval}) and "
                f"duration ({self.duration}) must be positive."
            )
            logging.critical(msg)
            raise ValueError(msg)

        self.rng = rng
        self.predators: List[Predator] = []
        self.last_disruption_time = 0.0
        self._last_tick = None

    def tick(self, now: float, flock_center: np.ndarray) -> None:
        elapsed = 0.0 if self._last_tick is None else max(now - self._last_tick, 0.0)
        self._last_tick = now

        if self.enabled and now - self.last_disruption_time >= self.interval:
            self._spawn(now, np.asarray(flock_center, dtype=np.float64))
            self.last_disruption_time = now

        survivors = []
        for predator in self.predators:
            age = now - predator.created_at
            if age > self.duration:
                logging.debug(f"Predator spawned at t={predator.created_at:.2f}s expired.")
                continue
            predator.position = predator.position + predator.velocity * elapsed
            t = age / self.duration
            predator.strength = predator.initial_strength * (1.0 - t * t)
            survivors.append(predator)
        self.predators = survivors

    def _spawn(self, now: float, flock_center: np.ndarray) -> None:
        angle = self.rng.uniform(0.0, 2.0 * math.pi)
        c, s = math.cos(angle), math.sin(angle)
        offset = np.array([c, 0.0, s]) * self.spawn_radius
        # Inward plus half tangential, in the x-z plane.
        inward = np.array([-c, 0.0, -s])
        tangent = np.array([-s, 0.0, c])
        velocity = (inward + 0.5 * tangent) * self.spawn_speed

        self.predators.append(Predator(
            position=flock_center + offset,
            velocity=velocity,
            strength=self.initial_strength,
            initial_strength=self.initial_strength,
            created_at=now,
        ))
        logging.info(
            f"Disruption at t={now:.2f}s: predator spawned {self.spawn_radius:.1f} units "
            f"from the flock centre."
        )

    def as_array(self) -> np.ndarray:
        out = np.zeros((len(self.predators), 4), dtype=np.float64)
        for k, predator in enumerate(self.predators):
            out[k, :3] = predator.position
            out[k, 3] = predator.strength
        return out

    def __len__(self) -> int:
        return len(self.predators)
