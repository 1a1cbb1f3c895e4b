# transition.py
"""
State machine that moves the flock between free flocking and a target shape.

The controller owns the active assignment and target buffer. Each frame it
turns its state and progress into a FramePlan for the engine, and it swaps
whole SimulationParameters values in and out when transitions start and end.
"""
import logging
from enum import Enum
from typing import Dict, Any, Callable, Optional, Union

import numpy as np

from assignment import Assignment, assign_targets, build_target_buffer
from constants import (
    WAVE_ANGULAR_FREQUENCY, WAVE_RADIAL_FREQUENCY, WAVE_SPEED, WAVE_FALLOFF, WAVE_AMPLITUDE,
)
from parameters import Boundary, SimulationParameters
from shape_sampler import ShapeSampler, TargetPointCloud
from simulation import Simulation, FramePlan, FLOCKING_PLAN
from utils import ease_in_out_cubic

# --- Data Contracts ---
#
# class TransitionController:
#   - __init__(self, simulation, sampler, params, on_shape_formed=None,
#              on_dispersed=None)
#     - Inputs: params is the "transition" section of config.json.
#       - "form_duration", "disperse_duration": seconds
#       - "formation_lerp", "hold_lerp": per-frame position lerp factors
#       - "jitter_radius": spread of particles sharing a target
#       - "radius": default world radius of a sampled image
#       - "parameter_overrides": fields replaced while a shape is active
#   - form_shape(self, target, center=None, radius=None) -> bool
#     - Inputs: a TargetPointCloud, an image path or an image array.
#     - Raises: ShapeSamplingError before any state is changed.
#     - Returns True if a transition started.
#   - disperse(self) -> bool
#   - step(self, delta_time: float) -> None
#     - Invariants: the state only advances FLOCKING -> FORMING -> FORMED
#       -> DISPERSING -> FLOCKING, or FORMING -> DISPERSING.
#       Durations are measured on Simulation.elapsed, the unclamped clock.
#
# formed_wave(targets: np.ndarray, center: np.ndarray, t: float) -> np.ndarray
#   - z offset of each held target, (N,). Decays with distance from center.

ShapeTarget = Union[TargetPointCloud, str, np.ndarray]

IMPULSE_PEAK = 0.8


def formed_wave(targets: np.ndarray, center: np.ndarray, t: float) -> np.ndarray:
    """Spiral wave that keeps a held shape gently moving along z."""
    dx = targets[:, 0] - center[0]
    dy = targets[:, 1] - center[1]
    distance = np.hypot(dx, dy)
    angle = np.arctan2(dy, dx)
    phase = angle * WAVE_ANGULAR_FREQUENCY + distance * WAVE_RADIAL_FREQUENCY - t * WAVE_SPEED
    return np.sin(phase) * np.exp(-distance / WAVE_FALLOFF) * WAVE_AMPLITUDE


def _log_parameter_swap(reason: str, old: SimulationParameters, new: SimulationParameters) -> None:
    before = old.to_dict()
    changed = {k: f"{before[k]:g} -> {v:g}" for k, v in new.to_dict().items() if before[k] != v}
    if changed:
        logging.info(f"Parameters swapped for {reason}: {changed}")


class SimulationState(Enum):
    FLOCKING = "flocking"
    FORMING = "forming"
    FORMED = "formed"
    DISPERSING = "dispersing"


class TransitionController:
    """
    Drives shape formation and dispersal on top of a Simulation.

    Progress is measured on the unclamped clock, so a transition takes its
    configured duration even when frames arrive slower than the integration
    limit.
    """

    def __init__(
        self,
        simulation: Simulation,
        sampler: ShapeSampler,
        params: Dict[str, Any],
        on_shape_formed: Optional[Callable[[np.ndarray], None]] = None,
        on_dispersed: Optional[Callable[[], None]] = None,
    ):
        self.simulation = simulation
        self.sampler = sampler
        self.form_duration = float(params.get('form_duration', 3.0))
        self.disperse_duration = float(params.get('disperse_duration', 2.0))
        self.formation_lerp = float(params.get('formation_lerp', 0.08))
        self.hold_lerp = float(params.get('hold_lerp', 0.05))
        self.jitter_radius = float(params.get('jitter_radius', 0.5))
        self.radius = float(params.get('radius', 15.0))
        overrides = params.get('parameter_overrides', {"turbulence": 0.0, "center_attraction": 0.0})

        if self.form_duration <= 0 or self.disperse_duration <= 0:
            msg = (
                f"Configuration error: transition durations must be positive, got "
                f"form={self.form_duration}, disperse={self.disperse_duration}."
            )
            logging.critical(msg)
            raise ValueError(msg)

        self.on_shape_formed = on_shape_formed
        self.on_dispersed = on_dispersed

        self.base_params: SimulationParameters = simulation.params
        self.formation_params = self.base_params.with_overrides(overrides)

        self._state = SimulationState.FLOCKING
        self._started_at = 0.0
        self._start_level = 0.0
        self._center = np.zeros(3, dtype=np.float64)
        self._assignment: Optional[Assignment] = None
        self._targets: Optional[np.ndarray] = None
        self._target_sizes: Optional[np.ndarray] = None
        self._sizes_at_dispersal: Optional[np.ndarray] = None

    @property
    def state(self) -> SimulationState:
        return self._state

    @property
    def assignment(self) -> Optional[Assignment]:
        return self._assignment

    @property
    def targets(self) -> Optional[np.ndarray]:
        return self._targets

    def _elapsed(self) -> float:
        return self.simulation.elapsed - self._started_at

    def _progress(self, duration: float) -> float:
        return min(max(self._elapsed() / duration, 0.0), 1.0)

    @property
    def level(self) -> float:
        """Current weight of the formation force, 0 when flocking freely."""
        if self._state is SimulationState.FLOCKING:
            return 0.0
        elif self._state is SimulationState.FORMING:
            return ease_in_out_cubic(self._progress(self.form_duration))
        elif self._state is SimulationState.FORMED:
            return 1.0
        elif self._state is SimulationState.DISPERSING:
            return self._start_level * (1.0 - ease_in_out_cubic(self._progress(self.disperse_duration)))
        raise ValueError(f"Unhandled simulation state: {self._state}")

    # --- Commands ---

    def form_shape(self, target: ShapeTarget, center=None, radius: Optional[float] = None) -> bool:
        if self._state is SimulationState.FORMED:
            logging.info("form_shape received while formed; dispersing.")
            self._begin_dispersal()
            return True
        if self._state is not SimulationState.FLOCKING:
            logging.info(f"form_shape ignored while {self._state.value}.")
            return False

        center = np.zeros(3) if center is None else np.asarray(center, dtype=np.float64)
        cloud = self._resolve(target, self.radius if radius is None else radius).translated(center)

        positions = self.simulation.positions
        self._assignment = assign_targets(positions, cloud.positions)
        self._targets = build_target_buffer(
            self._assignment, cloud, self.jitter_radius, self.simulation.particles.rng
        )
        self._target_sizes = 0.2 + self._targets[:, 3] * 0.6
        self._center = center
        self._started_at = self.simulation.elapsed
        self._state = SimulationState.FORMING
        _log_parameter_swap("formation", self.simulation.params, self.formation_params)
        self.simulation.set_parameters(self.formation_params)

        logging.info(
            f"Forming shape of {len(cloud)} points with {positions.shape[0]} particles "
            f"({int(self._assignment.reused.sum())} reused)."
        )
        return True

    def disperse(self) -> bool:
        if self._state in (SimulationState.FORMING, SimulationState.FORMED):
            self._begin_dispersal()
            return True
        logging.debug(f"disperse ignored while {self._state.value}.")
        return False

    def set_viewport_boundary(self, minimum, maximum) -> None:
        self.simulation.set_boundary(Boundary(tuple(float(v) for v in minimum),
                                              tuple(float(v) for v in maximum)))

    def _resolve(self, target: ShapeTarget, radius: float) -> TargetPointCloud:
        if isinstance(target, TargetPointCloud):
            return target
        return self.sampler.sample(target, self.simulation.particles.particle_count, radius)

    def _begin_dispersal(self) -> None:
        self._start_level = self.level
        self._sizes_at_dispersal = self.simulation.particles.sizes.copy()
        self._started_at = self.simulation.elapsed
        self._state = SimulationState.DISPERSING
        _log_parameter_swap("dispersal", self.simulation.params, self.base_params)
        self.simulation.set_parameters(self.base_params)
        logging.info(f"Dispersing from formation level {self._start_level:.2f}.")

    # --- Per-frame ---

    def frame_plan(self) -> FramePlan:
        strength = self.simulation.params.formation_strength
        if self._state is SimulationState.FLOCKING:
            return FLOCKING_PLAN
        elif self._state is SimulationState.FORMING:
            f = self.level
            return FramePlan(1.0 - f, f * strength, f * self.formation_lerp, 0.0, self._targets)
        elif self._state is SimulationState.FORMED:
            return FramePlan(0.0, strength, self.hold_lerp, 0.0, self._hold_targets())
        elif self._state is SimulationState.DISPERSING:
            f = self.level
            progress = self._progress(self.disperse_duration)
            impulse = (1.0 - 2.0 * progress) * IMPULSE_PEAK if progress < 0.5 else 0.0
            return FramePlan(1.0 - f, f * strength, 0.0, impulse, self._targets)
        raise ValueError(f"Unhandled simulation state: {self._state}")

    def _hold_targets(self) -> np.ndarray:
        held = self._targets.copy()
        held[:, 2] += formed_wave(held, self._center, self.simulation.elapsed)
        return held

    def step(self, delta_time: float) -> None:
        self.simulation.step(delta_time, self.frame_plan())
        self._blend_sizes()
        self._advance_state()

    def _blend_sizes(self) -> None:
        particles = self.simulation.particles
        if self._state is SimulationState.FORMING:
            progress = self._progress(self.form_duration)
            if progress > 0.5:
                blend = (progress - 0.5) * 2.0
                particles.sizes[:] = particles.base_sizes + (self._target_sizes - particles.base_sizes) * blend
        elif self._state is SimulationState.DISPERSING:
            eased = ease_in_out_cubic(self._progress(self.disperse_duration))
            start = self._sizes_at_dispersal
            particles.sizes[:] = start + (particles.base_sizes - start) * eased

    def _advance_state(self) -> None:
        if self._state is SimulationState.FORMING and self._elapsed() >= self.form_duration:
            self._state = SimulationState.FORMED
            logging.info(f"Shape formed at t={self.simulation.elapsed:.2f}s.")
            if self.on_shape_formed is not None:
                self.on_shape_formed(self._center.copy())
        elif self._state is SimulationState.DISPERSING and self._elapsed() >= self.disperse_duration:
            self._state = SimulationState.FLOCKING
            self._assignment = None
            self._targets = None
            self._target_sizes = None
            self.simulation.particles.sizes[:] = self.simulation.particles.base_sizes
            logging.info(f"Dispersal complete at t={self.simulation.elapsed:.2f}s; flocking.")
            if self.on_dispersed is not None:
                self.on_dispersed()
