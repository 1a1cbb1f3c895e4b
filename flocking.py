# flocking.py
"""
Per-particle force model and integration for the sequential path.

Every function here is a pure function of the previous frame's snapshot, so
the same update can be evaluated for particles in any order. kernels.py
evaluates the identical model inside a Numba prange loop; the scalar helpers
(hash_noise, bounce_axis) are compiled from this module's source so both
paths share them.
"""
import math
from typing import Tuple

import numpy as np

from constants import (
    EPSILON, PREDATOR_MIN_DISTANCE_SQ, CENTER_ATTRACTION_RADIUS,
    TURBULENCE_AXIS_SCALE, VERTICAL_AXIS, ARRIVAL_RADIUS, ARRIVAL_GAIN,
    ARRIVAL_DAMPING, ATTRACTION_GAIN, ATTRACTION_MAX, DENSITY_BASE,
    DENSITY_GAIN, BOUNCE_INSET, BOUNCE_DAMPING,
)
from parameters import SimulationParameters

# --- Data Contracts ---
#
# flocking_acceleration(index, position, velocity, neighbor_positions,
#                       neighbor_velocities, predators, center_of_mass,
#                       params, frame, seed, turbulence_interval) -> np.ndarray
#   - position, velocity, center_of_mass: (3,) arrays.
#   - neighbor_positions, neighbor_velocities: (K, 3) candidate neighbors,
#     possibly including the particle itself and far-away false positives.
#   - predators: (P, 4) rows of [x, y, z, strength].
#   - Outputs: (3,) acceleration. Never NaN: every normalize is guarded.
#
# formation_acceleration(position, velocity, target, density) -> np.ndarray
#   - Outputs: (3,) pull toward `target`, damped inside ARRIVAL_RADIUS.
#
# integrate(position, velocity, acceleration, params, delta_time)
#   -> (position', velocity')
#   - |velocity'| <= params.max_speed.
#
# apply_boundary(position, velocity, minimum, maximum) -> (position, velocity)
#   - Modifies and returns its inputs; positions end up inside the box.

ZERO3 = np.zeros(3, dtype=np.float64)


def hash_noise(index, frame, channel, seed):
    """Deterministic noise in [-0.5, 0.5) keyed by particle, frame and channel."""
    x = math.sin(index * 12.9898 + (frame % 4096) * 78.233 + channel * 37.719 + seed * 4.581) * 43758.5453
    return x - math.floor(x) - 0.5


def bounce_axis(p, v, lo, hi):
    """Soft-bounce one axis back inside [lo, hi]."""
    half = (hi - lo) * 0.5
    if p > hi:
        return hi - half * BOUNCE_INSET, v * BOUNCE_DAMPING
    if p < lo:
        return lo + half * BOUNCE_INSET, v * BOUNCE_DAMPING
    return p, v


def _scaled(vector: np.ndarray, magnitude: float) -> np.ndarray:
    """`vector` normalized to `magnitude`, or zero if it is degenerate."""
    length_sq = float(vector @ vector)
    if length_sq <= EPSILON:
        return ZERO3
    return vector * (magnitude / math.sqrt(length_sq))


def flocking_acceleration(
    index: int,
    position: np.ndarray,
    velocity: np.ndarray,
    neighbor_positions: np.ndarray,
    neighbor_velocities: np.ndarray,
    predators: np.ndarray,
    center_of_mass: np.ndarray,
    params: SimulationParameters,
    frame: int,
    seed: int,
    turbulence_interval: int,
) -> np.ndarray:
    acceleration = np.zeros(3, dtype=np.float64)

    if neighbor_positions.shape[0] > 0:
        diff = position - neighbor_positions
        dist_sq = np.einsum('ij,ij->i', diff, diff)
        valid = dist_sq > EPSILON

        sep = params.separation_distance
        in_sep = valid & (dist_sq < sep * sep)
        if in_sep.any():
            dist = np.sqrt(dist_sq[in_sep])
            falloff = ((sep - dist) / sep) ** 2 / dist
            steer = (diff[in_sep] * falloff[:, None]).sum(axis=0)
            acceleration += _scaled(steer, params.separation_weight * params.max_force)

        ali = params.alignment_distance
        in_ali = valid & (dist_sq < ali * ali)
        if in_ali.any():
            mean_velocity = neighbor_velocities[in_ali].mean(axis=0)
            acceleration += _scaled(mean_velocity, params.alignment_weight * params.max_force)

        coh = params.cohesion_distance
        in_coh = valid & (dist_sq < coh * coh)
        if in_coh.any():
            toward = neighbor_positions[in_coh].mean(axis=0) - position
            acceleration += _scaled(toward, params.cohesion_weight * params.max_force)

    avoid_sq = params.predator_avoid_distance * params.predator_avoid_distance
    for k in range(predators.shape[0]):
        away = position - predators[k, :3]
        d_sq = float(away @ away)
        if PREDATOR_MIN_DISTANCE_SQ < d_sq < avoid_sq:
            d = math.sqrt(d_sq)
            force = (1.0 - d / params.predator_avoid_distance) * predators[k, 3] * params.predator_avoid_strength
            acceleration += away * (force / d)

    to_center = center_of_mass - position
    center_sq = float(to_center @ to_center)
    if center_sq > CENTER_ATTRACTION_RADIUS * CENTER_ATTRACTION_RADIUS:
        acceleration += to_center * (params.center_attraction / math.sqrt(center_sq))

    if params.turbulence > 0.0 and (frame + index) % turbulence_interval == 0:
        for axis in range(3):
            acceleration[axis] += (
                params.turbulence * TURBULENCE_AXIS_SCALE[axis] * hash_noise(index, frame, axis, seed)
            )

    return acceleration


def formation_acceleration(
    position: np.ndarray, velocity: np.ndarray, target: np.ndarray, density: float
) -> np.ndarray:
    to_target = target - position
    d = math.sqrt(float(to_target @ to_target))
    if d < ARRIVAL_RADIUS:
        return to_target * ARRIVAL_GAIN - velocity * ARRIVAL_DAMPING
    pull = min(d * ATTRACTION_GAIN, ATTRACTION_MAX) * (DENSITY_BASE + density * DENSITY_GAIN)
    return to_target * (pull / d)


def dispersal_impulse(index: int, frame: int, seed: int, strength: float) -> np.ndarray:
    """Random kick that breaks a formation apart; depth is kicked half as hard."""
    return np.array([
        hash_noise(index, frame, 3, seed) * strength,
        hash_noise(index, frame, 4, seed) * strength,
        hash_noise(index, frame, 5, seed) * strength * 0.5,
    ])


def integrate(
    position: np.ndarray,
    velocity: np.ndarray,
    acceleration: np.ndarray,
    params: SimulationParameters,
    delta_time: float,
) -> Tuple[np.ndarray, np.ndarray]:
    new_velocity = (velocity + acceleration) * params.damping
    new_velocity[VERTICAL_AXIS] = (velocity[VERTICAL_AXIS] + acceleration[VERTICAL_AXIS]) * params.vertical_damping

    # Compare squared lengths; sqrt only when clamping.
    speed_sq = float(new_velocity @ new_velocity)
    if speed_sq > params.max_speed * params.max_speed:
        new_velocity *= params.max_speed / math.sqrt(speed_sq)

    new_position = position + new_velocity * (delta_time * params.speed_multiplier)
    return new_position, new_velocity


def apply_boundary(
    position: np.ndarray, velocity: np.ndarray, minimum: np.ndarray, maximum: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    for axis in range(3):
        position[axis], velocity[axis] = bounce_axis(
            position[axis], velocity[axis], minimum[axis], maximum[axis]
        )
    return position, velocity
