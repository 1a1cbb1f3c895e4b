import numpy as np
import pytest

from particle import ParticleSystem, PingPongBuffer


def test_buffers_have_homogeneous_layout():
    particles = ParticleSystem({'particle_count': 500, 'seed': 1})
    assert particles.position.read.shape == (500, 4)
    assert np.all(particles.position.read[:, 3] == 1.0)
    assert np.all(particles.velocity.read[:, 3] == 0.0)
    assert particles.position.write is not particles.position.read


def test_sizes_and_fill_flags():
    particles = ParticleSystem({'particle_count': 2000, 'seed': 2})
    assert np.all((particles.base_sizes >= 0.3) & (particles.base_sizes < 0.7))
    assert 0.75 < particles.filled.mean() < 0.85


def test_same_seed_same_population():
    a = ParticleSystem({'particle_count': 100, 'seed': 9})
    b = ParticleSystem({'particle_count': 100, 'seed': 9})
    assert np.array_equal(a.position.read, b.position.read)
    assert np.array_equal(a.velocity.read, b.velocity.read)


def test_random_pattern_respects_spawn_extent():
    particles = ParticleSystem({'particle_count': 300, 'initial_pattern': 'random',
                                'spawn_extent': [2.0, 3.0, 4.0]})
    assert np.all(np.abs(particles.position.read[:, :3]) <= [2.0, 3.0, 4.0])


def test_murmuration_pattern_is_a_diagonal_band():
    particles = ParticleSystem({'particle_count': 1000, 'seed': 4})
    xyz = particles.position.read[:, :3]
    assert np.corrcoef(xyz[:, 0], xyz[:, 1])[0, 1] > 0.7


def test_unknown_pattern_is_rejected():
    with pytest.raises(ValueError):
        ParticleSystem({'particle_count': 10, 'initial_pattern': 'spiral'})


def test_zero_particles_is_rejected():
    with pytest.raises(ValueError):
        ParticleSystem({'particle_count': 0})


def test_swap_exchanges_references():
    buffer = PingPongBuffer(np.zeros((3, 4)))
    read, write = buffer.read, buffer.write
    buffer.swap()
    assert buffer.read is write and buffer.write is read
