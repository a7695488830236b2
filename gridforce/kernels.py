# -*- coding: utf-8 -*-
"""Array-backend kernels registered on a ComputeProgram.

Kernels receive the program, the global/group sizes and their bound buffers in
argument order, and operate on device views (numpy or CuPy).
"""

# Import typing primitives.
from typing import Dict, Tuple

# Import numpy.
import numpy as np

# Import local modules.
from .compute_backend import to_numpy
from .device import ComputeProgram, DeviceBuffer, KernelFunction
from .streaming_gridded import KERNEL_NAME, GriddedValue, configuration_dtype

# Free-surface level marking a disabled cell.
DISABLED_FSL = -9999.0

# Cell state components: free-surface level, max free-surface level, qx, qy.
CELL_STATE_WIDTH = 4

# mm/h -> m/s
MMPH_TO_MPS = 1.0 / 3600000.0


def bdy_streaming_gridded(
    program: ComputeProgram,
    global_size: Tuple[int, int],
    group_size: Tuple[int, int],
    configuration: DeviceBuffer,
    values: DeviceBuffer,
    time: DeviceBuffer,
    timestep: DeviceBuffer,
    time_hydrological: DeviceBuffer,
    cells: DeviceBuffer,
    bed: DeviceBuffer,
    manning: DeviceBuffer,
) -> None:
    """Add gridded rain intensity (mm/h) or mass flux (m3/s) to each wet/dry cell.

    Time, hydrological time and Manning are bound to match the boundary
    argument layout; only the timestep enters this update.
    """
    xp = program.device.xp
    real = program.float_form.dtype
    rows = int(program.constants["DOMAIN_ROWS"])
    cols = int(program.constants["DOMAIN_COLS"])
    delta = float(program.constants["DOMAIN_DELTAX"])

    dt = float(to_numpy(timestep.device_view(real))[0])
    if dt <= 0.0:
        return

    record = np.asarray(to_numpy(configuration.device_view(np.uint8))).view(configuration_dtype(program.float_form))[0]
    grid_rows = int(record["grid_rows"])
    grid_cols = int(record["grid_cols"])
    res = float(record["grid_resolution"])
    definition = int(record["definition"])

    # Work items beyond the domain do nothing.
    ny = min(int(global_size[1]), rows)
    nx = min(int(global_size[0]), cols)

    x = (xp.arange(nx, dtype=np.float64) + 0.5) * delta + float(record["grid_offset_x"])
    y = (xp.arange(ny, dtype=np.float64) + 0.5) * delta + float(record["grid_offset_y"])
    bc = xp.floor(x / res).astype(np.int64)
    br = xp.floor(y / res).astype(np.int64)
    inside = ((br >= 0) & (br < grid_rows))[:, None] & ((bc >= 0) & (bc < grid_cols))[None, :]

    grid = values.device_view(real).reshape(grid_rows, grid_cols)
    v = grid[xp.clip(br, 0, grid_rows - 1)[:, None], xp.clip(bc, 0, grid_cols - 1)[None, :]]

    if definition == GriddedValue.RAIN_INTENSITY:
        depth = v.astype(np.float64) * MMPH_TO_MPS * dt
    elif definition == GriddedValue.MASS_FLUX:
        depth = v.astype(np.float64) * dt / (delta * delta)
    else:
        return

    state = cells.device_view(real).reshape(rows, cols, CELL_STATE_WIDTH)[:ny, :nx]
    bed_z = bed.device_view(real).reshape(rows, cols)[:ny, :nx].astype(np.float64)
    fsl = state[..., 0].astype(np.float64)

    enabled = inside & xp.isfinite(bed_z) & (fsl > DISABLED_FSL)
    # Extraction cannot take the surface below the bed.
    new_fsl = xp.where(enabled, xp.maximum(fsl + depth, xp.where(enabled, bed_z, 0.0)), fsl)

    state[..., 0] = new_fsl.astype(real)
    state[..., 1] = xp.maximum(state[..., 1], state[..., 0])


KERNELS: Dict[str, KernelFunction] = {
    KERNEL_NAME: bdy_streaming_gridded,
}
