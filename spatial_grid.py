# spatial_grid.py
"""
Uniform 3D grid for neighbor queries.

Two forms are provided. SpatialGrid is a dictionary of cells used by the
sequential path; it is unbounded and answers queries one position at a time.
build_cell_lists is a Numba-jitted counting sort over a bounded grid, used by
the parallel kernel, which walks the same 27-cell neighborhood directly.

Both return supersets of the true neighbors: membership in a zone is decided
afterwards by squared-distance tests.
"""
import math
from typing import Dict, List, NamedTuple, Tuple

import numpy as np
from numba import jit

# --- Data Contracts ---
#
# class SpatialGrid:
#   - __init__(self, cell_size: float)
#   - rebuild(self, positions: np.ndarray) -> None
#     - Inputs: (N, >=3) array; only the first three columns are read.
#     - Side Effects: discards previous contents, inserts indices 0..N-1.
#   - query_neighbors(self, position) -> List[int]
#     - Outputs: every index stored in the 3x3x3 block of cells around the
#       cell containing `position`, including that cell. May contain the
#       querying particle itself.
#
# layout_for_bounds(minimum, maximum, cell_size) -> GridLayout
#   - Outputs: origin, effective cell size and per-axis cell counts covering
#     the box. The cell size grows if the box would need more than
#     MAX_CELLS_PER_AXIS cells on any axis.
#
# build_cell_lists(positions, origin, cell_size, dims)
#   -> (sorted_indices, cell_starts, cell_counts)
#   - sorted_indices[cell_starts[c] : cell_starts[c] + cell_counts[c]] are the
#     particles in flat cell c. Positions outside the box clamp to edge cells.

MAX_CELLS_PER_AXIS = 64


class SpatialGrid:
    """
    Spatial hash grid for efficient neighbor lookup.

    Divides space into cubes of edge `cell_size` and answers queries by
    only checking the cells adjacent to the query position.
    """

    def __init__(self, cell_size: float):
        if cell_size <= 0:
            raise ValueError(f"cell_size must be positive, got {cell_size}")
        self.cell_size = float(cell_size)
        self.cells: Dict[Tuple[int, int, int], List[int]] = {}

    def cell_of(self, position) -> Tuple[int, int, int]:
        """World coordinates to integer cell coordinates."""
        return (
            math.floor(position[0] / self.cell_size),
            math.floor(position[1] / self.cell_size),
            math.floor(position[2] / self.cell_size),
        )

    def rebuild(self, positions: np.ndarray) -> None:
        self.cells = {}
        for index in range(positions.shape[0]):
            key = self.cell_of(positions[index])
            bucket = self.cells.get(key)
            if bucket is None:
                self.cells[key] = [index]
            else:
                bucket.append(index)

    def query_neighbors(self, position) -> List[int]:
        cx, cy, cz = self.cell_of(position)
        found: List[int] = []
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                for dz in (-1, 0, 1):
                    bucket = self.cells.get((cx + dx, cy + dy, cz + dz))
                    if bucket:
                        found.extend(bucket)
        return found

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self.cells.values())


class GridLayout(NamedTuple):
    origin: np.ndarray
    cell_size: float
    dims: np.ndarray


def layout_for_bounds(minimum: np.ndarray, maximum: np.ndarray, cell_size: float) -> GridLayout:
    """Covers the box [minimum, maximum] with cubic cells."""
    extent = np.asarray(maximum, dtype=np.float64) - np.asarray(minimum, dtype=np.float64)
    cell_size = max(float(cell_size), float(extent.max()) / MAX_CELLS_PER_AXIS)
    dims = np.maximum(np.ceil(extent / cell_size).astype(np.int64) + 1, 1)
    return GridLayout(np.asarray(minimum, dtype=np.float64).copy(), cell_size, dims)


@jit(nopython=True, cache=True)
def cell_coordinate(value, origin, cell_size, dim):
    """One axis of a position to a clamped cell coordinate."""
    c = int(math.floor((value - origin) / cell_size))
    if c < 0:
        return 0
    if c >= dim:
        return dim - 1
    return c


@jit(nopython=True, cache=True)
def build_cell_lists(positions, origin, cell_size, dims):
    """
    Numba-jitted counting sort of particle indices by flat cell id.
    """
    n = positions.shape[0]
    num_cells = dims[0] * dims[1] * dims[2]
    cell_of = np.empty(n, dtype=np.int64)
    cell_counts = np.zeros(num_cells, dtype=np.int64)

    for i in range(n):
        cx = cell_coordinate(positions[i, 0], origin[0], cell_size, dims[0])
        cy = cell_coordinate(positions[i, 1], origin[1], cell_size, dims[1])
        cz = cell_coordinate(positions[i, 2], origin[2], cell_size, dims[2])
        cell = cx + cy * dims[0] + cz * dims[0] * dims[1]
        cell_of[i] = cell
        cell_counts[cell] += 1

    cell_starts = np.zeros(num_cells, dtype=np.int64)
    running = 0
    for c in range(num_cells):
        cell_starts[c] = running
        running += cell_counts[c]

    sorted_indices = np.empty(n, dtype=np.int64)
    fill = np.zeros(num_cells, dtype=np.int64)
    for i in range(n):
        cell = cell_of[i]
        sorted_indices[cell_starts[cell] + fill[cell]] = i
        fill[cell] += 1

    return sorted_indices, cell_starts, cell_counts
