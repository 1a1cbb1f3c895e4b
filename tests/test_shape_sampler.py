import numpy as np
import pygame
import pytest

from shape_sampler import (
    ShapeSampler, ShapeSamplingError, TargetPointCloud, brightness_of, stratified_subsample,
)
from shapes import ring_density_map


@pytest.fixture
def sampler():
    return ShapeSampler({'depth_jitter': 0.0})


def test_threshold_is_exclusive(sampler):
    image = np.zeros((4, 4), dtype=np.uint8)
    image[0, 0] = 32
    image[1, 1] = 33
    cloud = sampler.sample(image, particle_count=10, radius=2.0)
    assert len(cloud) == 1
    assert cloud.densities[0] == pytest.approx(33 / 255)


def test_pixels_map_to_centered_world_coordinates(sampler):
    image = np.full((2, 2, 3), 255, dtype=np.uint8)
    cloud = sampler.sample(image, particle_count=10, radius=1.0)
    points = {tuple(np.round(p, 6)) for p in cloud.positions}
    assert points == {(-0.5, 0.5, 0.0), (0.5, 0.5, 0.0), (-0.5, -0.5, 0.0), (0.5, -0.5, 0.0)}


def test_image_rows_grow_downward():
    sampler = ShapeSampler({'depth_jitter': 0.0})
    image = np.zeros((10, 10, 3), dtype=np.uint8)
    image[0, 5] = 255
    cloud = sampler.sample(image, particle_count=5, radius=5.0)
    assert cloud.positions[0, 1] > 4.0


def test_longer_side_spans_twice_the_radius(sampler):
    image = np.full((20, 40, 3), 200, dtype=np.uint8)
    cloud = sampler.sample(image, particle_count=10_000, radius=10.0)
    assert cloud.positions[:, 0].max() - cloud.positions[:, 0].min() == pytest.approx(20.0 - 0.5)
    assert np.all(np.abs(cloud.positions[:, 1]) < 5.0)


def test_depth_jitter_stays_small(disc_image):
    cloud = ShapeSampler({}).sample(disc_image, particle_count=5000, radius=10.0)
    assert np.all(np.abs(cloud.positions[:, 2]) <= 0.25)


def test_thinning_preserves_tonal_mix(sampler):
    image = np.zeros((100, 100), dtype=np.uint8)
    image[:, :50] = 100
    image[:, 50:] = 255
    cloud = sampler.sample(image, particle_count=50, radius=10.0)
    assert len(cloud) == 60
    bright = int(np.sum(cloud.densities == 1.0))
    assert abs(bright - 30) <= 4


def test_stratified_subsample_returns_distinct_indices():
    rng = np.random.default_rng(0)
    brightness = rng.uniform(33, 255, size=1000)
    picked = stratified_subsample(brightness, 137, 8, rng)
    assert picked.size == 137
    assert np.unique(picked).size == 137


def test_results_are_cached(sampler, disc_image):
    first = sampler.sample(disc_image, particle_count=100, radius=10.0)
    second = sampler.sample(disc_image.copy(), particle_count=100, radius=10.0)
    other = sampler.sample(disc_image, particle_count=100, radius=12.0)
    assert first is second
    assert other is not first


def test_black_image_is_an_error(sampler):
    with pytest.raises(ShapeSamplingError):
        sampler.sample(np.zeros((8, 8, 3), dtype=np.uint8), particle_count=10, radius=1.0)


def test_missing_file_is_an_error(sampler, tmp_path):
    with pytest.raises(ShapeSamplingError):
        sampler.sample(str(tmp_path / "missing.png"), particle_count=10, radius=1.0)


def test_unsupported_array_shape_is_an_error():
    with pytest.raises(ShapeSamplingError):
        brightness_of(np.zeros((4, 4, 2)))


def test_loads_images_from_disk(sampler, tmp_path):
    surface = pygame.Surface((16, 8))
    surface.fill((0, 0, 0))
    surface.fill((255, 255, 255), pygame.Rect(0, 0, 4, 2))
    path = tmp_path / "shape.bmp"
    pygame.image.save(surface, str(path))

    cloud = sampler.sample(str(path), particle_count=100, radius=8.0)
    assert len(cloud) == 8
    # The white block is in the top-left corner.
    assert np.all(cloud.positions[:, 0] < 0)
    assert np.all(cloud.positions[:, 1] > 0)


def test_point_cloud_validates_shapes():
    with pytest.raises(ValueError):
        TargetPointCloud(np.zeros((3, 2)), np.zeros(3))
    with pytest.raises(ValueError):
        TargetPointCloud(np.zeros((3, 3)), np.zeros(2))


def test_translated_cloud_keeps_densities(square_cloud):
    moved = square_cloud.translated([1.0, 2.0, 3.0])
    assert moved.positions[0] == pytest.approx([0.0, 1.0, 3.0])
    assert moved.densities is square_cloud.densities


def test_ring_density_map_has_three_tones():
    image = ring_density_map(128, seed=1)
    assert image.shape == (128, 128, 3)
    assert set(np.unique(image)) <= {0, 100, 150, 255}
    assert {100, 150, 255} <= set(np.unique(image))
    assert image[64, 64, 0] == 0
