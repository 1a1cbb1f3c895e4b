# assignment.py
"""
Greedy nearest-unclaimed-target assignment of particles to a point cloud.

Particles and targets are both sorted along x. Each particle, in x order,
scans the unclaimed targets outward from its own x rank and stops a direction
once the x gap alone exceeds the best squared distance found so far. Claimed
targets are skipped with path-compressed "next unclaimed" links. This is an
approximation of the optimal matching, not an exact solver.
"""
import bisect
import logging
from typing import NamedTuple, Optional

import numpy as np

from shape_sampler import TargetPointCloud

# --- Data Contracts ---
#
# assign_targets(current_positions, target_positions) -> Assignment
#   - Inputs: (N, >=3) particle positions, (M, 3) target positions, M >= 1.
#   - Outputs: Assignment with targets (N,) int64 and reused (N,) bool.
#   - Invariants: targets of non-reused particles are pairwise distinct.
#     If N <= M no particle is reused. If N > M exactly N - M are.
#
# build_target_buffer(assignment, cloud, jitter_radius, rng) -> np.ndarray
#   - Outputs: (N, 4) rows of [x, y, z, density]. Reused particles get a
#     uniform offset inside a sphere of radius jitter_radius.


class Assignment(NamedTuple):
    targets: np.ndarray
    reused: np.ndarray

    def is_injective(self) -> bool:
        claimed = self.targets[~self.reused]
        return np.unique(claimed).size == claimed.size


def _find(parent: np.ndarray, node: int) -> int:
    root = node
    while parent[root] != root:
        root = parent[root]
    while parent[node] != root:
        parent[node], node = root, parent[node]
    return root


class _UnclaimedIndex:
    """Sorted slots 0..M-1 with O(1) amortised next-unclaimed lookups."""

    def __init__(self, size: int):
        self.size = size
        # right[k]: first unclaimed slot >= k, sentinel `size`.
        self.right = np.arange(size + 1)
        # left[k + 1]: last unclaimed slot <= k, node 0 is the sentinel.
        self.left = np.arange(size + 1)

    def next_at_or_after(self, k: int) -> int:
        if k >= self.size:
            return self.size
        return _find(self.right, k)

    def next_at_or_before(self, k: int) -> int:
        if k < 0:
            return -1
        return _find(self.left, k + 1) - 1

    def claim(self, k: int) -> None:
        self.right[k] = k + 1
        self.left[k + 1] = k


def _nearest(x, point, xs, positions, start, unclaimed: Optional[_UnclaimedIndex]):
    """Branch-and-bound scan outward from `start` along the sorted xs."""
    best_k = -1
    best_sq = np.inf
    size = len(xs)

    k = unclaimed.next_at_or_after(start) if unclaimed is not None else start
    while k < size:
        gap = xs[k] - x
        if gap * gap > best_sq:
            break
        diff = positions[k] - point
        d_sq = float(diff @ diff)
        if d_sq < best_sq:
            best_k, best_sq = k, d_sq
        k = unclaimed.next_at_or_after(k + 1) if unclaimed is not None else k + 1

    k = unclaimed.next_at_or_before(start - 1) if unclaimed is not None else start - 1
    while k >= 0:
        gap = x - xs[k]
        if gap * gap > best_sq:
            break
        diff = positions[k] - point
        d_sq = float(diff @ diff)
        if d_sq < best_sq:
            best_k, best_sq = k, d_sq
        k = unclaimed.next_at_or_before(k - 1) if unclaimed is not None else k - 1

    return best_k


def assign_targets(current_positions: np.ndarray, target_positions: np.ndarray) -> Assignment:
    points = np.asarray(current_positions, dtype=np.float64)[:, :3]
    targets = np.asarray(target_positions, dtype=np.float64)[:, :3]
    n, m = points.shape[0], targets.shape[0]
    if m == 0:
        raise ValueError("Cannot assign particles to an empty target cloud.")

    particle_order = np.argsort(points[:, 0], kind='stable')
    target_order = np.argsort(targets[:, 0], kind='stable')
    sorted_targets = targets[target_order]
    xs = sorted_targets[:, 0].tolist()

    unclaimed = _UnclaimedIndex(m)
    assigned = np.empty(n, dtype=np.int64)
    reused = np.zeros(n, dtype=bool)

    for rank, i in enumerate(particle_order):
        point = points[i]
        x = point[0]
        start = bisect.bisect_left(xs, x)
        if rank < m:
            k = _nearest(x, point, xs, sorted_targets, start, unclaimed)
            unclaimed.claim(k)
        else:
            k = _nearest(x, point, xs, sorted_targets, start, None)
            reused[i] = True
        assigned[i] = target_order[k]

    if n > m:
        logging.info(
            f"Target cloud has {m} points for {n} particles; "
            f"{n - m} particles share already-claimed targets."
        )
    return Assignment(assigned, reused)


def build_target_buffer(
    assignment: Assignment,
    cloud: TargetPointCloud,
    jitter_radius: float = 0.5,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    rng = rng if rng is not None else np.random.default_rng()
    n = assignment.targets.shape[0]
    out = np.empty((n, 4), dtype=np.float64)
    out[:, :3] = cloud.positions[assignment.targets]
    out[:, 3] = cloud.densities[assignment.targets]

    count = int(assignment.reused.sum())
    if count and jitter_radius > 0:
        direction = rng.normal(size=(count, 3))
        direction /= np.maximum(np.linalg.norm(direction, axis=1, keepdims=True), 1e-12)
        r = jitter_radius * np.cbrt(rng.random(count))
        out[assignment.reused, :3] += direction * r[:, None]
    return out
