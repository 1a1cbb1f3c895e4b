# simulation.py
"""
Handles the core simulation step.

This module defines the Simulation class, which advances the particle system
by one timestep. Every frame is a pure function of the previous snapshot:
forces are computed from the read buffers, results go to the write buffers,
and the buffers swap once the whole population has been updated.

Two interchangeable advancers implement the per-frame update. The parallel
one runs a Numba prange kernel; the sequential one walks particles in Python
and is used when the kernel cannot be compiled or is disabled.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Any, Optional

import numpy as np
from numba.core.errors import NumbaError

from constants import MAX_DELTA_TIME
from disruption import DisruptionSystem
from flocking import (
    flocking_acceleration, formation_acceleration, dispersal_impulse,
    integrate, apply_boundary,
)
from kernels import advance_particles_numba
from parameters import SimulationParameters, Boundary
from particle import ParticleSystem
from spatial_grid import SpatialGrid, layout_for_bounds, build_cell_lists

# --- Data Contracts ---
#
# class Simulation:
#   - __init__(self, particles, params, engine_params, boundary):
#     - Inputs:
#       - particles: An initialized ParticleSystem.
#       - params: SimulationParameters for the force model.
#       - engine_params: the "engine" section of config.json.
#         - "accelerated": bool, try the Numba kernel first
#         - "centroid_refresh_interval": int frames
#         - "predator_refresh_interval": int frames
#         - "turbulence_interval": int frames
#         - "disruption": dict, see DisruptionSystem
#       - boundary: Boundary box.
#
#   - step(self, delta_time: float, plan: FramePlan = FLOCKING_PLAN) -> None:
#     - Side Effects: fills the write buffers from the read buffers, then
#       swaps them. Advances frame, time (by the clamped step) and elapsed
#       (by the caller's unclamped step).
#     - Invariants: the read snapshot is never written during a step.
#       Every |velocity| <= max_speed and every position lies inside the
#       boundary afterwards.


@dataclass(frozen=True)
class FramePlan:
    """How forces are composed for one frame."""
    flocking_weight: float = 1.0
    formation_weight: float = 0.0
    target_lerp: float = 0.0
    impulse_strength: float = 0.0
    targets: Optional[np.ndarray] = None


FLOCKING_PLAN = FramePlan()


@dataclass
class FrameInputs:
    """Everything an advancer needs besides the particle buffers."""
    params: SimulationParameters
    plan: FramePlan
    predators: np.ndarray
    center_of_mass: np.ndarray
    boundary_min: np.ndarray
    boundary_max: np.ndarray
    frame: int
    seed: int
    turbulence_interval: int
    delta_time: float


class SequentialAdvancer:
    """Single-threaded reference implementation of the frame update."""
    name = "sequential"

    def __init__(self):
        self.grid: Optional[SpatialGrid] = None

    def advance(self, particles: ParticleSystem, inputs: FrameInputs) -> None:
        params = inputs.params
        plan = inputs.plan
        pos_read = particles.position.read
        vel_read = particles.velocity.read
        pos_write = particles.position.write
        vel_write = particles.velocity.write

        if self.grid is None or self.grid.cell_size != params.grid_size:
            self.grid = SpatialGrid(params.grid_size)
        use_flocking = plan.flocking_weight > 0.0
        if use_flocking:
            self.grid.rebuild(pos_read)

        has_targets = plan.targets is not None
        for i in range(pos_read.shape[0]):
            position = pos_read[i, :3]
            velocity = vel_read[i, :3]
            acceleration = np.zeros(3, dtype=np.float64)

            if use_flocking:
                neighbors = self.grid.query_neighbors(position)
                acceleration += plan.flocking_weight * flocking_acceleration(
                    i, position, velocity, pos_read[neighbors, :3], vel_read[neighbors, :3],
                    inputs.predators, inputs.center_of_mass, params,
                    inputs.frame, inputs.seed, inputs.turbulence_interval,
                )
            if has_targets and plan.formation_weight > 0.0:
                acceleration += plan.formation_weight * formation_acceleration(
                    position, velocity, plan.targets[i, :3], plan.targets[i, 3]
                )
            if plan.impulse_strength > 0.0:
                acceleration += dispersal_impulse(i, inputs.frame, inputs.seed, plan.impulse_strength)

            new_position, new_velocity = integrate(position, velocity, acceleration, params, inputs.delta_time)
            if has_targets and plan.target_lerp > 0.0:
                new_position += (plan.targets[i, :3] - new_position) * plan.target_lerp
            apply_boundary(new_position, new_velocity, inputs.boundary_min, inputs.boundary_max)

            pos_write[i, :3] = new_position
            pos_write[i, 3] = 1.0
            vel_write[i, :3] = new_velocity
            vel_write[i, 3] = 0.0


class ParallelAdvancer:
    """Runs the frame update as a Numba prange kernel."""
    name = "parallel"

    _NO_TARGETS = np.zeros((0, 4), dtype=np.float64)

    @classmethod
    def is_available(cls) -> bool:
        """Compiles and runs the kernel on a two-particle input."""
        try:
            tiny = ParticleSystem({'particle_count': 2, 'initial_pattern': 'random', 'seed': 0})
            params = SimulationParameters()
            boundary_min, boundary_max = Boundary().arrays()
            cls().advance(tiny, FrameInputs(
                params=params, plan=FLOCKING_PLAN,
                predators=np.zeros((0, 4), dtype=np.float64),
                center_of_mass=np.zeros(3, dtype=np.float64),
                boundary_min=boundary_min, boundary_max=boundary_max,
                frame=0, seed=0, turbulence_interval=1, delta_time=0.016,
            ))
        except (NumbaError, RuntimeError) as e:
            logging.warning(f"Accelerated kernel unavailable: {e}")
            return False
        return True

    def advance(self, particles: ParticleSystem, inputs: FrameInputs) -> None:
        params = inputs.params
        plan = inputs.plan
        pos_read = particles.position.read
        layout = layout_for_bounds(inputs.boundary_min, inputs.boundary_max, params.grid_size)
        sorted_indices, cell_starts, cell_counts = build_cell_lists(
            pos_read, layout.origin, layout.cell_size, layout.dims
        )
        targets = plan.targets if plan.targets is not None else self._NO_TARGETS

        advance_particles_numba(
            pos_read, particles.velocity.read,
            particles.position.write, particles.velocity.write,
            sorted_indices, cell_starts, cell_counts,
            layout.origin, layout.cell_size, layout.dims,
            params.as_array(), inputs.predators, inputs.center_of_mass,
            np.ascontiguousarray(targets, dtype=np.float64),
            float(plan.flocking_weight), float(plan.formation_weight),
            float(plan.target_lerp), float(plan.impulse_strength),
            inputs.frame, inputs.seed, inputs.turbulence_interval, float(inputs.delta_time),
            inputs.boundary_min, inputs.boundary_max,
        )


class Simulation:
    """
    Double-buffered engine: owns the centroid cache, the predators and the
    choice of advancer.
    """
    def __init__(self, particles: ParticleSystem, params: SimulationParameters,
                 engine_params: Dict[str, Any], boundary: Boundary):
        self.particles = particles
        self.params = params
        self.boundary = boundary
        self.boundary_min, self.boundary_max = boundary.arrays()
        self.seed = particles.seed

        self.centroid_refresh_interval = int(engine_params.get('centroid_refresh_interval', 2))
        self.predator_refresh_interval = int(engine_params.get('predator_refresh_interval', 2))
        self.turbulence_interval = int(engine_params.get('turbulence_interval', 3))
        for name in ("centroid_refresh_interval", "predator_refresh_interval", "turbulence_interval"):
            if getattr(self, name) < 1:
                msg = f"Configuration error: {name} must be at least 1, got {getattr(self, name)}."
                logging.critical(msg)
                raise ValueError(msg)

        self.disruption = DisruptionSystem(engine_params.get('disruption', {}), particles.rng)

        self.frame = 0
        self.time = 0.0
        self.elapsed = 0.0
        self.center_of_mass = particles.position.read[:, :3].mean(axis=0)

        self.advancer = SequentialAdvancer()
        if engine_params.get('accelerated', True):
            if ParallelAdvancer.is_available():
                self.advancer = ParallelAdvancer()
            else:
                logging.warning("Falling back to the sequential advancer.")

        logging.info(
            f"Simulation initialized: {particles.particle_count} particles, "
            f"{self.advancer.name} advancer, grid cell {params.grid_size:.2f}."
        )

    @property
    def advancer_name(self) -> str:
        return self.advancer.name

    @property
    def positions(self) -> np.ndarray:
        """Read-only view of the published positions, (N, 4)."""
        view = self.particles.position.read.view()
        view.flags.writeable = False
        return view

    @property
    def velocities(self) -> np.ndarray:
        view = self.particles.velocity.read.view()
        view.flags.writeable = False
        return view

    @property
    def sizes(self) -> np.ndarray:
        return self.particles.sizes

    @property
    def filled(self) -> np.ndarray:
        return self.particles.filled

    def set_parameters(self, params: SimulationParameters) -> None:
        """Swaps in a whole new parameter set; takes effect next step."""
        self.params = params

    def set_boundary(self, boundary: Boundary) -> None:
        self.boundary = boundary
        self.boundary_min, self.boundary_max = boundary.arrays()
        logging.info(f"Boundary set to {boundary.minimum} .. {boundary.maximum}.")

    def step(self, delta_time: float, plan: FramePlan = FLOCKING_PLAN) -> None:
        """
        Executes one timestep of the simulation.
        """
        raw_delta = max(float(delta_time), 0.0)
        delta_time = min(raw_delta, MAX_DELTA_TIME)

        # 1. Centroid, cached between refreshes
        if self.frame % self.centroid_refresh_interval == 0:
            self.center_of_mass = self.particles.position.read[:, :3].mean(axis=0)

        # 2. Predators, on the unclamped clock
        if self.frame % self.predator_refresh_interval == 0:
            self.disruption.tick(self.elapsed, self.center_of_mass)

        # 3. Per-particle update from the read snapshot into the write buffers
        inputs = FrameInputs(
            params=self.params,
            plan=plan,
            predators=self.disruption.as_array(),
            center_of_mass=self.center_of_mass,
            boundary_min=self.boundary_min,
            boundary_max=self.boundary_max,
            frame=self.frame,
            seed=self.seed,
            turbulence_interval=self.turbulence_interval,
            delta_time=delta_time,
        )
        try:
            self.advancer.advance(self.particles, inputs)
        except NumbaError as e:
            logging.warning(f"Accelerated kernel failed mid-frame ({e}); switching to sequential.")
            self.advancer = SequentialAdvancer()
            self.advancer.advance(self.particles, inputs)

        # 4. Publish
        self.particles.swap()
        self.frame += 1
        self.time += delta_time
        self.elapsed += raw_delta
