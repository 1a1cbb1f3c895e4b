# parameters.py
"""
Immutable parameter sets for the simulation.

SimulationParameters holds the scalar tuning of the force model and the
integrator. It is never mutated: the transition controller swaps a whole new
value in when a transition starts or ends. Boundary holds the axis-aligned
box particles are softly kept inside.
"""
import logging
from dataclasses import dataclass, fields, replace
from typing import Dict, Any, Tuple

import numpy as np

from constants import GRID_SIZE_FACTOR

# --- Data Contracts ---
#
# SimulationParameters.from_dict(data: Dict[str, Any]) -> SimulationParameters
#   - Inputs: the "simulation_parameters" section of config.json. Unknown
#     keys are ignored, missing keys take the dataclass defaults.
#   - Raises: ValueError when a value is out of range (logged as CRITICAL).
#
# SimulationParameters.as_array() -> np.ndarray
#   - Outputs: float64 array of shape (len(fields),) in field declaration
#     order. kernels.py unpacks it positionally, so the field order is part
#     of the contract.
#
# Boundary(minimum, maximum)
#   - Invariants: minimum[k] < maximum[k] for every axis.


@dataclass(frozen=True)
class SimulationParameters:
    """Scalar configuration of the flocking and formation force model."""
    separation_distance: float = 2.5
    alignment_distance: float = 5.0
    cohesion_distance: float = 5.0
    max_speed: float = 1.2
    max_force: float = 0.05
    separation_weight: float = 1.8
    alignment_weight: float = 1.0
    cohesion_weight: float = 0.8
    speed_multiplier: float = 8.0
    damping: float = 0.98
    vertical_damping: float = 0.95
    turbulence: float = 0.01
    center_attraction: float = 0.0002
    predator_avoid_distance: float = 20.0
    predator_avoid_strength: float = 2.0
    formation_strength: float = 1.0

    def __post_init__(self):
        positive = (
            "separation_distance", "alignment_distance", "cohesion_distance",
            "max_speed", "speed_multiplier", "predator_avoid_distance",
        )
        for name in positive:
            if getattr(self, name) <= 0:
                _reject(f"Configuration error: {name} must be positive, got {getattr(self, name)}.")
        for name in ("damping", "vertical_damping"):
            value = getattr(self, name)
            if not 0.0 < value <= 1.0:
                _reject(f"Configuration error: {name} must lie in (0, 1], got {value}.")
        non_negative = (
            "max_force", "separation_weight", "alignment_weight", "cohesion_weight",
            "turbulence", "center_attraction", "predator_avoid_strength",
            "formation_strength",
        )
        for name in non_negative:
            if getattr(self, name) < 0:
                _reject(f"Configuration error: {name} must not be negative, got {getattr(self, name)}.")

    @property
    def grid_size(self) -> float:
        """Edge length of a spatial grid cell."""
        return GRID_SIZE_FACTOR * max(
            self.separation_distance, self.alignment_distance, self.cohesion_distance
        )

    def with_overrides(self, overrides: Dict[str, Any]) -> "SimulationParameters":
        """Returns a copy with the given fields replaced."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            logging.warning(f"Ignoring unknown parameter overrides: {sorted(unknown)}")
        return replace(self, **{k: v for k, v in overrides.items() if k in known})

    def as_array(self) -> np.ndarray:
        return np.array([getattr(self, f.name) for f in fields(self)], dtype=np.float64)

    def to_dict(self) -> Dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimulationParameters":
        known = {f.name for f in fields(cls)}
        return cls(**{k: float(v) for k, v in data.items() if k in known})


@dataclass(frozen=True)
class Boundary:
    """Axis-aligned box, recomputed whenever the viewport changes."""
    minimum: Tuple[float, float, float] = (-40.0, -30.0, -20.0)
    maximum: Tuple[float, float, float] = (40.0, 30.0, 20.0)

    def __post_init__(self):
        if len(self.minimum) != 3 or len(self.maximum) != 3:
            _reject("Configuration error: boundary corners must be 3-vectors.")
        for axis in range(3):
            if self.minimum[axis] >= self.maximum[axis]:
                _reject(
                    f"Configuration error: boundary minimum {self.minimum} must be "
                    f"below maximum {self.maximum} on every axis."
                )

    @classmethod
    def from_half_extents(cls, x: float, y: float, z: float) -> "Boundary":
        return cls((-x, -y, -z), (x, y, z))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Boundary":
        if 'half_extents' in data:
            return cls.from_half_extents(*data['half_extents'])
        defaults = cls()
        return cls(
            tuple(float(v) for v in data.get('min', defaults.minimum)),
            tuple(float(v) for v in data.get('max', defaults.maximum)),
        )

    def arrays(self) -> Tuple[np.ndarray, np.ndarray]:
        return (np.array(self.minimum, dtype=np.float64),
                np.array(self.maximum, dtype=np.float64))


def _reject(msg: str) -> None:
    logging.critical(msg)
    raise ValueError(msg)
