# particle.py
"""
Manages the state of all particles in the simulation.

This module defines the ParticleSystem class, which is responsible for
initializing and storing particle data (position, velocity, size, filled
flag) in NumPy arrays. Positions and velocities live in ping-pong buffers:
the engine reads one copy and writes the other, then swaps.
"""
import logging
import math
import numpy as np
from typing import Dict, Any

# --- Data Contracts ---
#
# class PingPongBuffer:
#   - read: np.ndarray (N, 4) float64, the published snapshot.
#   - write: np.ndarray (N, 4) float64, the scratch copy for the next frame.
#   - swap() exchanges the two references; no data is copied.
#
# class ParticleSystem:
#   - __init__(self, params: Dict[str, Any]):
#     - Inputs: the "engine" section of config.json.
#       - "particle_count": int
#       - "seed": int
#       - "initial_pattern": "murmuration" | "random"
#       - "initial_speed": float
#       - "spawn_extent": [x, y, z] half extents for the random pattern
#     - Side Effects: Initializes internal NumPy arrays for particle state.
#     - Invariants:
#       - position.read / position.write have shape (N, 4), w == 1.
#       - velocity.read / velocity.write have shape (N, 4), w == 0.
#       - sizes is (N,) float64, filled is (N,) bool.
#       - N never changes after construction; row index is identity.


class PingPongBuffer:
    """A read/write pair of equally shaped arrays."""

    def __init__(self, initial: np.ndarray):
        self.read = np.array(initial, dtype=np.float64, copy=True)
        self.write = self.read.copy()

    def swap(self) -> None:
        self.read, self.write = self.write, self.read


class ParticleSystem:
    """
    A container for all particles, managing their state via NumPy arrays.
    """
    def __init__(self, params: Dict[str, Any]):
        """
        Initializes the particle system.

        Args:
            params (Dict[str, Any]): Engine parameters from config.
        """
        self.particle_count = int(params.get('particle_count', 2500))
        self.seed = int(params.get('seed', 42))
        self.initial_pattern = params.get('initial_pattern', 'murmuration')
        initial_speed = float(params.get('initial_speed', 1.0))
        spawn_extent = params.get('spawn_extent', [20.0, 15.0, 10.0])

        if self.particle_count <= 0:
            msg = f"Configuration error: particle_count must be positive, got {self.particle_count}."
            logging.critical(msg)
            raise ValueError(msg)

        # All randomness in the engine derives from this seed.
        self.rng = np.random.default_rng(self.seed)

        if self.initial_pattern == 'murmuration':
            xyz = self._murmuration_positions()
        elif self.initial_pattern == 'random':
            extent = np.asarray(spawn_extent, dtype=np.float64)
            xyz = self.rng.uniform(low=-extent, high=extent, size=(self.particle_count, 3))
        else:
            msg = f"Configuration error: unknown initial_pattern '{self.initial_pattern}'."
            logging.critical(msg)
            raise ValueError(msg)

        positions = np.ones((self.particle_count, 4), dtype=np.float64)
        positions[:, :3] = xyz
        velocities = np.zeros((self.particle_count, 4), dtype=np.float64)
        velocities[:, :3] = self._initial_velocities(initial_speed)

        self.position = PingPongBuffer(positions)
        self.velocity = PingPongBuffer(velocities)

        self.base_sizes = 0.3 + self.rng.random(self.particle_count) * 0.4
        self.sizes = self.base_sizes.copy()
        self.filled = self.rng.random(self.particle_count) < 0.8

        logging.info(
            f"ParticleSystem initialized with {self.particle_count} particles "
            f"({self.initial_pattern} pattern, seed {self.seed})."
        )
        logging.debug(
            f"Particle data arrays created. "
            f"Positions shape: {positions.shape}, "
            f"Velocities shape: {velocities.shape}"
        )

    def swap(self) -> None:
        """Publishes the write buffers as the new snapshot."""
        self.position.swap()
        self.velocity.swap()

    def _initial_velocities(self, initial_speed: float) -> np.ndarray:
        n = self.particle_count
        angle = self.rng.uniform(0.0, 2.0 * math.pi, size=n)
        speed = self.rng.uniform(0.5, 1.0, size=n) * initial_speed
        out = np.empty((n, 3), dtype=np.float64)
        out[:, 0] = np.cos(angle) * speed
        out[:, 1] = np.sin(angle) * speed
        out[:, 2] = (self.rng.random(n) - 0.5) * 0.5 * initial_speed
        return out

    def _murmuration_positions(self) -> np.ndarray:
        """
        Seeds a diagonal, wave-shaped band that is thick in the middle and
        pointed at both ends, with a few stragglers.
        """
        n = self.particle_count
        t = np.arange(n, dtype=np.float64) / n
        base_x = -20.0 + t * 40.0
        base_y = -10.0 + t * 20.0
        wave1 = np.sin(t * math.pi * 3.0) * 4.0
        wave2 = np.cos(t * math.pi * 5.0) * 2.0

        envelope = np.sin(t * math.pi)
        pointiness = envelope ** 0.3
        spread = pointiness * 5.0 + 0.2

        angle = self.rng.uniform(0.0, 2.0 * math.pi, size=n)
        radius = self.rng.random(n) * spread

        xyz = np.empty((n, 3), dtype=np.float64)
        xyz[:, 0] = base_x + wave1 + np.cos(angle) * radius
        xyz[:, 1] = base_y + wave2 + np.sin(angle) * radius
        xyz[:, 2] = (self.rng.random(n) - 0.5) * 2.0 * pointiness

        stragglers = (self.rng.random(n) < 0.02) & (t > 0.1) & (t < 0.9)
        count = int(stragglers.sum())
        xyz[stragglers, :2] += (self.rng.random((count, 2)) - 0.5) * 5.0
        return xyz
