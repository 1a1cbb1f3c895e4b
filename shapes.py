# shapes.py
"""
Procedural density maps used as formation targets when no image is given.
"""
import numpy as np


def _ring(distance: np.ndarray, radius: float, width: float) -> np.ndarray:
    return np.abs(distance - radius) <= width / 2.0


def ring_density_map(size: int = 512, seed: int = 0) -> np.ndarray:
    """
    Three concentric rings on black: a bright outer ring roughened by noise
    blobs, then two dimmer inner rings.

    Returns:
        np.ndarray: (size, size, 3) uint8 image.
    """
    rng = np.random.default_rng(seed)
    scale = size / 512.0
    centre = size / 2.0
    ys, xs = np.mgrid[0:size, 0:size]
    distance = np.hypot(xs + 0.5 - centre, ys + 0.5 - centre)

    image = np.zeros((size, size), dtype=np.uint8)
    image[_ring(distance, 200 * scale, 30 * scale)] = 255

    # Blobs along the outer ring break up its silhouette.
    for _ in range(40):
        angle = rng.uniform(0.0, 2.0 * np.pi)
        r = 200 * scale + rng.uniform(-15.0, 15.0) * scale
        bx = centre + np.cos(angle) * r
        by = centre + np.sin(angle) * r
        blob = np.hypot(xs + 0.5 - bx, ys + 0.5 - by) <= rng.uniform(3.0, 10.0) * scale
        image[blob] = 255

    image[_ring(distance, 120 * scale, 40 * scale)] = 150
    image[_ring(distance, 60 * scale, 20 * scale)] = 100
    return np.repeat(image[:, :, None], 3, axis=2)
