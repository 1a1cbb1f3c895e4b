import numpy as np
import pytest

from parameters import SimulationParameters, Boundary
from particle import ParticleSystem
from shape_sampler import ShapeSampler, TargetPointCloud
from simulation import Simulation
from transition import TransitionController

SMALL_ENGINE = {
    'particle_count': 60,
    'seed': 3,
    'initial_pattern': 'random',
    'spawn_extent': [8.0, 6.0, 4.0],
    'accelerated': False,
}


@pytest.fixture
def params():
    return SimulationParameters()


@pytest.fixture
def boundary():
    return Boundary()


@pytest.fixture
def make_simulation(params, boundary):
    def _make(params_override=None, **engine_overrides):
        engine = dict(SMALL_ENGINE)
        engine.update(engine_overrides)
        return Simulation(ParticleSystem(engine), params_override or params, engine, boundary)
    return _make


@pytest.fixture
def make_controller(make_simulation):
    def _make(transition_params=None, on_shape_formed=None, on_dispersed=None, **engine_overrides):
        sim = make_simulation(**engine_overrides)
        return TransitionController(
            sim, ShapeSampler({'depth_jitter': 0.0}), transition_params or {},
            on_shape_formed=on_shape_formed, on_dispersed=on_dispersed,
        )
    return _make


@pytest.fixture
def square_cloud():
    """Four points on the corners of a 2x2 square in the z = 0 plane."""
    return TargetPointCloud.from_points([
        [-1.0, -1.0, 0.0],
        [1.0, -1.0, 0.0],
        [-1.0, 1.0, 0.0],
        [1.0, 1.0, 0.0],
    ])


@pytest.fixture
def disc_image():
    """64x64 RGB image with a bright filled disc on black."""
    ys, xs = np.mgrid[0:64, 0:64]
    mask = np.hypot(xs - 31.5, ys - 31.5) < 20
    image = np.zeros((64, 64, 3), dtype=np.uint8)
    image[mask] = 220
    return image
