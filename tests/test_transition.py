import logging

import numpy as np
import pytest

from constants import WAVE_AMPLITUDE
from shape_sampler import ShapeSamplingError
from transition import SimulationState, formed_wave

DT = 1.0 / 30.0


def step_until(controller, state, limit):
    for n in range(limit):
        if controller.state is state:
            return n
        controller.step(DT)
    assert controller.state is state, f"still {controller.state} after {limit} steps"
    return limit


def test_starts_flocking(make_controller):
    controller = make_controller()
    assert controller.state is SimulationState.FLOCKING
    assert controller.level == 0.0
    assert controller.assignment is None


def test_full_cycle_reaches_every_state(make_controller, square_cloud):
    formed, dispersed = [], []
    controller = make_controller(
        on_shape_formed=formed.append, on_dispersed=lambda: dispersed.append(True)
    )

    assert controller.form_shape(square_cloud, center=[2.0, 0.0, 0.0])
    assert controller.state is SimulationState.FORMING
    step_until(controller, SimulationState.FORMED, 120)
    assert len(formed) == 1
    assert formed[0] == pytest.approx([2.0, 0.0, 0.0])

    assert controller.disperse()
    assert controller.state is SimulationState.DISPERSING
    step_until(controller, SimulationState.FLOCKING, 90)
    assert dispersed == [True]
    assert controller.assignment is None
    assert controller.targets is None


def test_form_shape_is_ignored_while_forming(make_controller, square_cloud):
    controller = make_controller()
    controller.form_shape(square_cloud)
    assignment = controller.assignment
    controller.step(DT)
    assert controller.form_shape(square_cloud) is False
    assert controller.state is SimulationState.FORMING
    assert controller.assignment is assignment


def test_form_shape_while_formed_disperses(make_controller, square_cloud):
    controller = make_controller()
    controller.form_shape(square_cloud)
    step_until(controller, SimulationState.FORMED, 120)
    assert controller.form_shape(square_cloud)
    assert controller.state is SimulationState.DISPERSING


def test_disperse_is_a_no_op_while_flocking(make_controller):
    controller = make_controller()
    assert controller.disperse() is False
    assert controller.state is SimulationState.FLOCKING


def test_disperse_mid_forming_continues_from_current_level(make_controller, square_cloud):
    controller = make_controller()
    controller.form_shape(square_cloud)
    for _ in range(50):
        controller.step(DT)
    level = controller.level
    assert 0.0 < level < 1.0
    controller.disperse()
    assert controller.level == pytest.approx(level)
    step_until(controller, SimulationState.FLOCKING, 90)


def test_parameters_are_swapped_wholesale(make_controller, square_cloud):
    controller = make_controller()
    base = controller.simulation.params
    controller.form_shape(square_cloud)
    active = controller.simulation.params
    assert active is not base
    assert active.turbulence == 0.0
    assert active.center_attraction == 0.0
    assert active.max_speed == base.max_speed
    controller.disperse()
    assert controller.simulation.params is base


def test_sampling_failure_leaves_state_untouched(make_controller, tmp_path):
    controller = make_controller()
    base = controller.simulation.params
    with pytest.raises(ShapeSamplingError):
        controller.form_shape(str(tmp_path / "missing.png"))
    assert controller.state is SimulationState.FLOCKING
    assert controller.assignment is None
    assert controller.simulation.params is base


def test_forms_from_an_image_array(make_controller, disc_image):
    controller = make_controller()
    assert controller.form_shape(disc_image, radius=5.0)
    assert controller.assignment.is_injective()
    assert not controller.assignment.reused.any()
    assert np.all(np.linalg.norm(controller.targets[:, :2], axis=1) <= 5.0)


def test_sizes_follow_density_and_return_to_base(make_controller, square_cloud):
    controller = make_controller()
    particles = controller.simulation.particles
    controller.form_shape(square_cloud)
    step_until(controller, SimulationState.FORMED, 120)
    assert particles.sizes == pytest.approx(0.2 + controller.targets[:, 3] * 0.6)
    controller.disperse()
    step_until(controller, SimulationState.FLOCKING, 90)
    assert particles.sizes == pytest.approx(particles.base_sizes)


def test_hundred_particles_settle_on_four_points(make_controller, square_cloud):
    controller = make_controller(particle_count=100)
    controller.form_shape(square_cloud)
    step_until(controller, SimulationState.FORMED, 120)
    for _ in range(240):
        controller.step(DT)
    assert controller.state is SimulationState.FORMED

    assignment = controller.assignment
    assert set(assignment.targets[~assignment.reused].tolist()) == {0, 1, 2, 3}
    assert int(assignment.reused.sum()) == 96

    positions = controller.simulation.positions[:, :3]
    slots = square_cloud.positions[assignment.targets]
    planar = np.linalg.norm(positions[:, :2] - slots[:, :2], axis=1)
    assert planar.max() <= controller.jitter_radius + 0.05
    vertical = np.abs(positions[:, 2] - slots[:, 2])
    assert vertical.max() <= controller.jitter_radius + WAVE_AMPLITUDE + 0.05


def test_viewport_boundary_reaches_the_engine(make_controller):
    controller = make_controller()
    controller.set_viewport_boundary((-10, -5, -2), (10, 5, 2))
    assert controller.simulation.boundary_max == pytest.approx([10.0, 5.0, 2.0])
    controller.step(DT)
    assert np.all(np.abs(controller.simulation.positions[:, 0]) <= 10.0)


def test_invalid_durations_are_rejected(make_controller):
    with pytest.raises(ValueError):
        make_controller(transition_params={'form_duration': 0.0})


def test_forming_finishes_on_caller_time_with_slow_frames(make_controller, square_cloud):
    controller = make_controller()
    controller.form_shape(square_cloud)
    for _ in range(61):
        controller.step(0.05)
    assert controller.state is SimulationState.FORMED
    assert controller.simulation.time < controller.form_duration

    controller.disperse()
    for _ in range(41):
        controller.step(0.05)
    assert controller.state is SimulationState.FLOCKING


def test_formed_wave_decays_with_distance():
    targets = np.array([[1.0, 0.0, 0.0, 1.0], [40.0, 0.0, 0.0, 1.0]])
    offsets = np.array([formed_wave(targets, np.zeros(3), t) for t in np.linspace(0.0, 2.0, 200)])
    assert np.abs(offsets[:, 0]).max() > 0.4
    assert np.abs(offsets[:, 1]).max() <= WAVE_AMPLITUDE * np.exp(-2.0) + 1e-12


def test_held_shape_ripples_along_z(make_controller, square_cloud):
    controller = make_controller()
    controller.form_shape(square_cloud, center=[1.0, 2.0, 0.0])
    step_until(controller, SimulationState.FORMED, 120)

    plan_targets = controller.frame_plan().targets
    assert plan_targets[:, :2] == pytest.approx(controller.targets[:, :2])
    assert not np.allclose(plan_targets[:, 2], controller.targets[:, 2])

    for _ in range(90):
        controller.step(DT)
    deviations = []
    for _ in range(60):
        controller.step(DT)
        deviations.append(controller.simulation.positions[:, 2] - controller.targets[:, 2])
    deviations = np.array(deviations)
    assert controller.state is SimulationState.FORMED
    assert np.all(deviations.max(axis=0) > 0.02)
    assert np.all(deviations.min(axis=0) < -0.02)
    assert np.abs(deviations).max() <= WAVE_AMPLITUDE + 0.1


def test_parameter_swaps_are_logged(make_controller, square_cloud, caplog):
    controller = make_controller()
    with caplog.at_level(logging.INFO):
        controller.form_shape(square_cloud)
        controller.disperse()
    swaps = [r.getMessage() for r in caplog.records if "Parameters swapped" in r.getMessage()]
    assert len(swaps) == 2
    assert "formation" in swaps[0] and "turbulence" in swaps[0]
    assert "dispersal" in swaps[1] and "center_attraction" in swaps[1]
