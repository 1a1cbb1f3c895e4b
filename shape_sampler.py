# shape_sampler.py
"""
Converts a raster image into a weighted point cloud of formation targets.

Bright pixels become candidate targets; their brightness becomes the density
weight that strengthens the formation pull. Large images are thinned by
brightness-stratified subsampling so the tonal distribution survives.
"""
import hashlib
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Any, Union

import numpy as np
import pygame

from constants import BRIGHTNESS_THRESHOLD

# --- Data Contracts ---
#
# class TargetPointCloud:
#   - positions: (M, 3) float64, centred on the origin.
#   - densities: (M,) float64 in [0, 1].
#
# load_image(path: str) -> np.ndarray
#   - Outputs: (H, W, 3) uint8 array, row 0 at the top of the image.
#   - Raises: ShapeSamplingError if the file is missing or undecodable.
#
# class ShapeSampler:
#   - __init__(self, params: Dict[str, Any]) from the "shape" section.
#   - sample(self, image, particle_count: int, radius: float) -> TargetPointCloud
#     - Inputs: a path, or an (H, W), (H, W, 3) or (H, W, 4) array.
#     - Outputs: at most ceil(particle_count * oversample_ratio) points,
#       shuffled.
#     - Raises: ShapeSamplingError when nothing qualifies.

ImageSource = Union[str, np.ndarray]


class ShapeSamplingError(Exception):
    """Raised when an image cannot be turned into a target point cloud."""


@dataclass(frozen=True)
class TargetPointCloud:
    positions: np.ndarray
    densities: np.ndarray

    def __post_init__(self):
        if self.positions.ndim != 2 or self.positions.shape[1] != 3:
            raise ValueError(f"positions must be (M, 3), got {self.positions.shape}")
        if self.densities.shape != (self.positions.shape[0],):
            raise ValueError(
                f"densities must be ({self.positions.shape[0]},), got {self.densities.shape}"
            )

    def __len__(self) -> int:
        return self.positions.shape[0]

    def translated(self, offset) -> "TargetPointCloud":
        return TargetPointCloud(self.positions + np.asarray(offset, dtype=np.float64), self.densities)

    @classmethod
    def from_points(cls, points, densities=None) -> "TargetPointCloud":
        """Builds a cloud from raw points; missing densities default to 1."""
        positions = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        if densities is None:
            weights = np.ones(positions.shape[0], dtype=np.float64)
        else:
            weights = np.clip(np.asarray(densities, dtype=np.float64), 0.0, 1.0)
        return cls(positions, weights)


def load_image(path: str) -> np.ndarray:
    try:
        surface = pygame.image.load(path)
    except (pygame.error, OSError) as e:
        raise ShapeSamplingError(f"Could not load target image '{path}': {e}") from e
    # surfarray is indexed [x, y]; transpose to rows first.
    return np.transpose(pygame.surfarray.array3d(surface), (1, 0, 2))


def brightness_of(image: np.ndarray) -> np.ndarray:
    """Mean of the RGB channels, in [0, 255]."""
    image = np.asarray(image)
    if image.ndim == 2:
        return image.astype(np.float64)
    if image.ndim == 3 and image.shape[2] in (3, 4):
        return image[:, :, :3].astype(np.float64).mean(axis=2)
    raise ShapeSamplingError(f"Unsupported image shape {image.shape}.")


def stratified_subsample(brightness: np.ndarray, count: int, strata: int,
                         rng: np.random.Generator) -> np.ndarray:
    """
    Picks `count` indices so each brightness quantile band keeps its share.

    Quotas are proportional to band sizes, rounded by largest remainder.
    """
    order = np.argsort(brightness, kind='stable')
    bands = [band for band in np.array_split(order, strata) if band.size > 0]
    sizes = np.array([band.size for band in bands], dtype=np.float64)

    exact = sizes * (count / sizes.sum())
    quotas = np.floor(exact).astype(np.int64)
    shortfall = count - int(quotas.sum())
    if shortfall > 0:
        for k in np.argsort(-(exact - quotas), kind='stable')[:shortfall]:
            quotas[k] += 1

    picked = [rng.choice(band, size=int(quota), replace=False)
              for band, quota in zip(bands, quotas) if quota > 0]
    return np.concatenate(picked)


class ShapeSampler:
    """Samples images into TargetPointClouds, with an LRU cache."""

    def __init__(self, params: Dict[str, Any]):
        self.threshold = float(params.get('brightness_threshold', BRIGHTNESS_THRESHOLD))
        self.oversample_ratio = float(params.get('oversample_ratio', 1.2))
        self.strata = int(params.get('strata', 8))
        self.depth_jitter = float(params.get('depth_jitter', 0.25))
        self.cache_size = int(params.get('cache_size', 8))
        self.seed = int(params.get('seed', 7))
        self._cache: "OrderedDict[tuple, TargetPointCloud]" = OrderedDict()

        if self.oversample_ratio < 1.0 or self.strata < 1:
            msg = (
                f"Configuration error: oversample_ratio must be >= 1 and strata >= 1, "
                f"got {self.oversample_ratio} and {self.strata}."
            )
            logging.critical(msg)
            raise ValueError(msg)

    def sample(self, image: ImageSource, particle_count: int, radius: float) -> TargetPointCloud:
        if isinstance(image, str):
            key = (image, particle_count, float(radius))
        else:
            array = np.ascontiguousarray(image)
            digest = hashlib.sha1(array.tobytes() + str(array.shape).encode()).hexdigest()
            key = (digest, particle_count, float(radius))

        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            logging.debug(f"Shape sampler cache hit for {key[0]}.")
            return cached

        pixels = load_image(image) if isinstance(image, str) else image
        cloud = self._sample_array(pixels, particle_count, radius)

        self._cache[key] = cloud
        if len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)
        return cloud

    def _sample_array(self, image: np.ndarray, particle_count: int, radius: float) -> TargetPointCloud:
        brightness = brightness_of(image)
        height, width = brightness.shape
        rows, cols = np.nonzero(brightness > self.threshold)
        if rows.size == 0:
            raise ShapeSamplingError(
                f"No pixels brighter than {self.threshold:.0f} in a {width}x{height} image."
            )

        rng = np.random.default_rng(self.seed)
        values = brightness[rows, cols]
        limit = int(np.ceil(particle_count * self.oversample_ratio))
        if rows.size > limit:
            keep = stratified_subsample(values, limit, self.strata, rng)
            logging.debug(f"Thinned {rows.size} qualifying pixels to {keep.size}.")
            rows, cols, values = rows[keep], cols[keep], values[keep]

        scale = 2.0 * radius / max(width, height)
        positions = np.empty((rows.size, 3), dtype=np.float64)
        positions[:, 0] = (cols + 0.5 - width / 2.0) * scale
        positions[:, 1] = (height / 2.0 - rows - 0.5) * scale
        positions[:, 2] = rng.uniform(-self.depth_jitter, self.depth_jitter, size=rows.size)
        densities = values / 255.0

        order = rng.permutation(rows.size)
        logging.info(
            f"Sampled {rows.size} target points from a {width}x{height} image "
            f"(radius {radius:.1f})."
        )
        return TargetPointCloud(positions[order], densities[order])
