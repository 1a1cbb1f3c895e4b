# kernels.py
"""
Numba-accelerated per-particle update.

advance_particles_numba evaluates exactly the model in flocking.py, one
particle per prange iteration. It reads only the read buffers and writes only
row i of the write buffers, so iterations are independent.
"""
import math

from numba import jit, prange

from constants import (
    EPSILON, PREDATOR_MIN_DISTANCE_SQ, CENTER_ATTRACTION_RADIUS,
    TURBULENCE_AXIS_SCALE, ARRIVAL_RADIUS, ARRIVAL_GAIN, ARRIVAL_DAMPING,
    ATTRACTION_GAIN, ATTRACTION_MAX, DENSITY_BASE, DENSITY_GAIN,
)
from flocking import hash_noise, bounce_axis
from spatial_grid import cell_coordinate

# --- Data Contracts ---
#
# advance_particles_numba(pos_read, vel_read, pos_write, vel_write,
#                         sorted_indices, cell_starts, cell_counts,
#                         grid_origin, cell_size, grid_dims,
#                         params, predators, center, targets,
#                         flocking_weight, formation_weight, target_lerp,
#                         impulse_strength, frame, seed, turbulence_interval,
#                         delta_time, boundary_min, boundary_max) -> None
#   - pos_*, vel_*: (N, 4) float64. Only the write buffers are modified.
#   - sorted_indices, cell_starts, cell_counts: output of build_cell_lists.
#   - params: SimulationParameters.as_array().
#   - predators: (P, 4) [x, y, z, strength]; P may be 0.
#   - targets: (N, 4) [x, y, z, density], or (0, 4) when no shape is active.

_hash_noise = jit(nopython=True)(hash_noise)
_bounce_axis = jit(nopython=True)(bounce_axis)

TURB_X, TURB_Y, TURB_Z = TURBULENCE_AXIS_SCALE


@jit(nopython=True, cache=True)
def _flocking_force(
    i, px, py, pz, pos_read, vel_read, sorted_indices, cell_starts, cell_counts,
    grid_origin, cell_size, grid_dims, params, predators, center,
    frame, seed, turbulence_interval,
):
    sep_d = params[0]
    ali_d = params[1]
    coh_d = params[2]
    max_force = params[4]
    sep_sq = sep_d * sep_d
    ali_sq = ali_d * ali_d
    coh_sq = coh_d * coh_d

    sx = 0.0
    sy = 0.0
    sz = 0.0
    sep_count = 0
    avx = 0.0
    avy = 0.0
    avz = 0.0
    ali_count = 0
    cpx = 0.0
    cpy = 0.0
    cpz = 0.0
    coh_count = 0

    cx = cell_coordinate(px, grid_origin[0], cell_size, grid_dims[0])
    cy = cell_coordinate(py, grid_origin[1], cell_size, grid_dims[1])
    cz = cell_coordinate(pz, grid_origin[2], cell_size, grid_dims[2])
    stride_y = grid_dims[0]
    stride_z = grid_dims[0] * grid_dims[1]

    for gz in range(max(cz - 1, 0), min(cz + 2, grid_dims[2])):
        for gy in range(max(cy - 1, 0), min(cy + 2, grid_dims[1])):
            for gx in range(max(cx - 1, 0), min(cx + 2, grid_dims[0])):
                cell = gx + gy * stride_y + gz * stride_z
                start = cell_starts[cell]
                for k in range(start, start + cell_counts[cell]):
                    j = sorted_indices[k]
                    dx = px - pos_read[j, 0]
                    dy = py - pos_read[j, 1]
                    dz = pz - pos_read[j, 2]
                    d_sq = dx * dx + dy * dy + dz * dz
                    if d_sq <= EPSILON:
                        continue
                    if d_sq < sep_sq:
                        d = math.sqrt(d_sq)
                        falloff = (sep_d - d) / sep_d
                        w = falloff * falloff / d
                        sx += dx * w
                        sy += dy * w
                        sz += dz * w
                        sep_count += 1
                    if d_sq < ali_sq:
                        avx += vel_read[j, 0]
                        avy += vel_read[j, 1]
                        avz += vel_read[j, 2]
                        ali_count += 1
                    if d_sq < coh_sq:
                        cpx += pos_read[j, 0]
                        cpy += pos_read[j, 1]
                        cpz += pos_read[j, 2]
                        coh_count += 1

    ax = 0.0
    ay = 0.0
    az = 0.0

    if sep_count > 0:
        length_sq = sx * sx + sy * sy + sz * sz
        if length_sq > EPSILON:
            s = params[5] * max_force / math.sqrt(length_sq)
            ax += sx * s
            ay += sy * s
            az += sz * s

    if ali_count > 0:
        avx /= ali_count
        avy /= ali_count
        avz /= ali_count
        length_sq = avx * avx + avy * avy + avz * avz
        if length_sq > EPSILON:
            s = params[6] * max_force / math.sqrt(length_sq)
            ax += avx * s
            ay += avy * s
            az += avz * s

    if coh_count > 0:
        tx = cpx / coh_count - px
        ty = cpy / coh_count - py
        tz = cpz / coh_count - pz
        length_sq = tx * tx + ty * ty + tz * tz
        if length_sq > EPSILON:
            s = params[7] * max_force / math.sqrt(length_sq)
            ax += tx * s
            ay += ty * s
            az += tz * s

    avoid_d = params[13]
    avoid_sq = avoid_d * avoid_d
    for k in range(predators.shape[0]):
        dx = px - predators[k, 0]
        dy = py - predators[k, 1]
        dz = pz - predators[k, 2]
        d_sq = dx * dx + dy * dy + dz * dz
        if PREDATOR_MIN_DISTANCE_SQ < d_sq < avoid_sq:
            d = math.sqrt(d_sq)
            s = (1.0 - d / avoid_d) * predators[k, 3] * params[14] / d
            ax += dx * s
            ay += dy * s
            az += dz * s

    tx = center[0] - px
    ty = center[1] - py
    tz = center[2] - pz
    center_sq = tx * tx + ty * ty + tz * tz
    if center_sq > CENTER_ATTRACTION_RADIUS * CENTER_ATTRACTION_RADIUS:
        s = params[12] / math.sqrt(center_sq)
        ax += tx * s
        ay += ty * s
        az += tz * s

    turbulence = params[11]
    if turbulence > 0.0 and (frame + i) % turbulence_interval == 0:
        ax += turbulence * TURB_X * _hash_noise(i, frame, 0, seed)
        ay += turbulence * TURB_Y * _hash_noise(i, frame, 1, seed)
        az += turbulence * TURB_Z * _hash_noise(i, frame, 2, seed)

    return ax, ay, az


@jit(nopython=True, parallel=True, cache=True)
def advance_particles_numba(
    pos_read, vel_read, pos_write, vel_write,
    sorted_indices, cell_starts, cell_counts,
    grid_origin, cell_size, grid_dims,
    params, predators, center, targets,
    flocking_weight, formation_weight, target_lerp, impulse_strength,
    frame, seed, turbulence_interval, delta_time,
    boundary_min, boundary_max,
):
    """
    Numba-jitted parallel update of every particle from the read snapshot.
    """
    n = pos_read.shape[0]
    max_speed = params[3]
    speed_multiplier = params[8]
    damping = params[9]
    vertical_damping = params[10]
    has_targets = targets.shape[0] == n

    for i in prange(n):
        px = pos_read[i, 0]
        py = pos_read[i, 1]
        pz = pos_read[i, 2]
        vx = vel_read[i, 0]
        vy = vel_read[i, 1]
        vz = vel_read[i, 2]

        fx = 0.0
        fy = 0.0
        fz = 0.0
        if flocking_weight > 0.0:
            fx, fy, fz = _flocking_force(
                i, px, py, pz, pos_read, vel_read, sorted_indices, cell_starts,
                cell_counts, grid_origin, cell_size, grid_dims, params,
                predators, center, frame, seed, turbulence_interval,
            )
        ax = fx * flocking_weight
        ay = fy * flocking_weight
        az = fz * flocking_weight

        if has_targets and formation_weight > 0.0:
            tx = targets[i, 0] - px
            ty = targets[i, 1] - py
            tz = targets[i, 2] - pz
            d = math.sqrt(tx * tx + ty * ty + tz * tz)
            if d < ARRIVAL_RADIUS:
                ax += (tx * ARRIVAL_GAIN - vx * ARRIVAL_DAMPING) * formation_weight
                ay += (ty * ARRIVAL_GAIN - vy * ARRIVAL_DAMPING) * formation_weight
                az += (tz * ARRIVAL_GAIN - vz * ARRIVAL_DAMPING) * formation_weight
            else:
                pull = min(d * ATTRACTION_GAIN, ATTRACTION_MAX) * (DENSITY_BASE + targets[i, 3] * DENSITY_GAIN)
                s = pull / d * formation_weight
                ax += tx * s
                ay += ty * s
                az += tz * s

        if impulse_strength > 0.0:
            ax += _hash_noise(i, frame, 3, seed) * impulse_strength
            ay += _hash_noise(i, frame, 4, seed) * impulse_strength
            az += _hash_noise(i, frame, 5, seed) * impulse_strength * 0.5

        # z is the vertical axis
        nvx = (vx + ax) * damping
        nvy = (vy + ay) * damping
        nvz = (vz + az) * vertical_damping
        speed_sq = nvx * nvx + nvy * nvy + nvz * nvz
        if speed_sq > max_speed * max_speed:
            s = max_speed / math.sqrt(speed_sq)
            nvx *= s
            nvy *= s
            nvz *= s

        step = delta_time * speed_multiplier
        npx = px + nvx * step
        npy = py + nvy * step
        npz = pz + nvz * step

        if has_targets and target_lerp > 0.0:
            npx += (targets[i, 0] - npx) * target_lerp
            npy += (targets[i, 1] - npy) * target_lerp
            npz += (targets[i, 2] - npz) * target_lerp

        npx, nvx = _bounce_axis(npx, nvx, boundary_min[0], boundary_max[0])
        npy, nvy = _bounce_axis(npy, nvy, boundary_min[1], boundary_max[1])
        npz, nvz = _bounce_axis(npz, nvz, boundary_min[2], boundary_max[2])

        pos_write[i, 0] = npx
        pos_write[i, 1] = npy
        pos_write[i, 2] = npz
        pos_write[i, 3] = 1.0
        vel_write[i, 0] = nvx
        vel_write[i, 1] = nvy
        vel_write[i, 2] = nvz
        vel_write[i, 3] = 0.0
