import numpy as np
import pytest

from disruption import DisruptionSystem


@pytest.fixture
def disruption():
    return DisruptionSystem({'interval': 15.0, 'duration': 5.0}, np.random.default_rng(0))


def test_no_predator_before_the_first_interval(disruption):
    for t in np.arange(0.0, 15.0, 0.5):
        disruption.tick(float(t), np.zeros(3))
    assert len(disruption) == 0
    assert disruption.as_array().shape == (0, 4)


def test_predator_spawns_on_the_spawn_circle(disruption):
    disruption.tick(15.0, np.zeros(3))
    assert len(disruption) == 1
    predator = disruption.predators[0]
    assert np.linalg.norm(predator.position) == pytest.approx(25.0)
    assert predator.position[1] == pytest.approx(0.0)
    assert predator.strength == pytest.approx(0.6)
    assert predator.created_at == 15.0


def test_spawn_follows_the_flock_center(disruption):
    center = np.array([3.0, -2.0, 1.0])
    disruption.tick(15.0, center)
    offset = disruption.predators[0].position - center
    assert np.linalg.norm(offset) == pytest.approx(25.0)


def test_predator_drifts_inward(disruption):
    disruption.tick(15.0, np.zeros(3))
    start = disruption.predators[0].position.copy()
    disruption.tick(16.0, np.zeros(3))
    moved = disruption.predators[0].position
    assert np.linalg.norm(moved) < np.linalg.norm(start)
    assert np.linalg.norm(moved - start) == pytest.approx(0.3 * np.sqrt(1.25))


def test_strength_decays_quadratically_to_zero(disruption):
    disruption.tick(15.0, np.zeros(3))
    disruption.tick(17.5, np.zeros(3))
    assert disruption.predators[0].strength == pytest.approx(0.6 * (1 - 0.5 ** 2))
    disruption.tick(20.0, np.zeros(3))
    assert disruption.predators[0].strength == pytest.approx(0.0)
    disruption.tick(20.1, np.zeros(3))
    assert len(disruption) == 0


def test_as_array_packs_position_and_strength(disruption):
    disruption.tick(15.0, np.zeros(3))
    packed = disruption.as_array()
    assert packed.shape == (1, 4)
    assert packed[0, :3] == pytest.approx(disruption.predators[0].position)
    assert packed[0, 3] == pytest.approx(0.6)


def test_disabled_system_never_spawns():
    system = DisruptionSystem({'enabled': False}, np.random.default_rng(0))
    system.tick(100.0, np.zeros(3))
    assert len(system) == 0


def test_rejects_non_positive_timing():
    with pytest.raises(ValueError):
        DisruptionSystem({'duration': 0.0}, np.random.default_rng(0))
