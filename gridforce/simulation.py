# -*- coding: utf-8 -*-
"""Simulation driver: device setup, boundary lifecycle and time stepping."""

# Import typing primitives.
from typing import Any, Dict, List, Optional, Type

# Import dataclasses.
from dataclasses import dataclass

# Import stdlib helpers.
from time import perf_counter

# Import logging.
import logging

# Import numpy.
import numpy as np

# Import local modules.
from .boundary import Boundary
from .compute_backend import normalize_precision
from .device import ComputeDevice, ComputeProgram, DeviceBuffer
from .domain import CartesianDomain
from .kernels import CELL_STATE_WIDTH, DISABLED_FSL, KERNELS
from .streaming_gridded import RasterFactory, StreamingGriddedBoundary
from .time_utils import datetime_to_unix_seconds, parse_iso8601_to_utc_datetime, seconds_to_time

# Create a logger for this module.
logger = logging.getLogger("gridforce")

BOUNDARY_TYPES: Dict[str, Type[StreamingGriddedBoundary]] = {
    "streaming-gridded": StreamingGriddedBoundary,
    "streaminggridded": StreamingGriddedBoundary,
}


@dataclass(frozen=True)
class SimulationManager:
    """Simulation length, absolute start and model step."""

    simulation_length: float
    real_start: int
    timestep: float

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "SimulationManager":
        mcfg = cfg["model"]
        length = float(mcfg["T_s"])
        dt = float(mcfg["dt_s"])
        if length < 0.0:
            raise ValueError("model.T_s must be non-negative")
        if dt <= 0.0:
            raise ValueError("model.dt_s must be positive")
        start = datetime_to_unix_seconds(parse_iso8601_to_utc_datetime(mcfg.get("start_time", None)))
        return cls(simulation_length=length, real_start=start, timestep=dt)


@dataclass
class DeviceState:
    """Device objects and the shared buffers every boundary binds."""

    device: ComputeDevice
    program: ComputeProgram
    bed: DeviceBuffer
    manning: DeviceBuffer
    time: DeviceBuffer
    time_hydrological: DeviceBuffer
    timestep: DeviceBuffer
    cells: DeviceBuffer


def _buffer_from_array(name: str, program: ComputeProgram, array: np.ndarray, read_only: bool = True) -> DeviceBuffer:
    """Create a device buffer initialised from a host array."""
    data = np.ascontiguousarray(array, dtype=program.float_form.dtype).reshape(-1)
    buf = DeviceBuffer(name, program, size=data.nbytes, read_only=read_only, host_visible=True)
    buf.host_view(data.dtype)[:] = data
    buf.create_buffer()
    buf.queue_write_all()
    return buf


def _write_scalar(buf: DeviceBuffer, value: float) -> None:
    buf.host_view(buf.precision.dtype)[0] = value
    buf.queue_write_all()


def initial_cell_states(domain: CartesianDomain) -> np.ndarray:
    """Dry initial state (surface at bed); disabled cells get the marker level."""
    states = np.zeros((domain.cell_count, CELL_STATE_WIDTH), dtype=np.float64)
    fsl = np.where(np.isfinite(domain.bed), domain.bed, DISABLED_FSL)
    states[:, 0] = fsl
    states[:, 1] = fsl
    return states


def create_device_state(cfg: Dict[str, Any], domain: CartesianDomain) -> DeviceState:
    """Build the device, program and shared buffers for `domain`."""
    compute_cfg = cfg.get("compute", {})
    device = ComputeDevice(compute_cfg.get("device", "cpu"))
    precision = normalize_precision(compute_cfg.get("precision", "double"))
    program = ComputeProgram(
        device,
        precision,
        constants={
            "DOMAIN_ROWS": domain.rows,
            "DOMAIN_COLS": domain.cols,
            "DOMAIN_DELTAX": domain.resolution,
        },
        kernels=KERNELS,
    )
    zero = np.zeros(1, dtype=np.float64)
    return DeviceState(
        device=device,
        program=program,
        bed=_buffer_from_array("Bed", program, domain.bed),
        manning=_buffer_from_array("Manning", program, domain.manning),
        time=_buffer_from_array("Time", program, zero),
        time_hydrological=_buffer_from_array("TimeHydrological", program, zero),
        timestep=_buffer_from_array("Timestep", program, zero),
        cells=_buffer_from_array("CellStates", program, initial_cell_states(domain), read_only=False),
    )


def build_boundaries(
    cfg: Dict[str, Any],
    domain: CartesianDomain,
    manager: SimulationManager,
    raster_factory: Optional[RasterFactory] = None,
) -> List[Boundary]:
    """Create and configure every boundary listed in cfg['boundaries']."""
    bcfg = cfg.get("boundaries", {})
    source_dir = str(bcfg.get("source_dir", "."))
    out: List[Boundary] = []
    for idx, attrs in enumerate(bcfg.get("definitions", [])):
        btype = str(attrs.get("type", "")).lower().strip()
        cls = BOUNDARY_TYPES.get(btype)
        if cls is None:
            logger.warning("Unrecognised boundary type '%s' (entry %d); skipping.", btype, idx + 1)
            continue
        bdy = cls(domain, manager, name=f"Boundary_{idx + 1}", raster_factory=raster_factory)
        if not bdy.setup_from_config(attrs, source_dir):
            logger.warning("Boundary '%s' disabled: invalid configuration.", bdy.name)
            continue
        out.append(bdy)
    return out


def run_simulation(
    cfg: Dict[str, Any],
    domain: CartesianDomain,
    raster_factory: Optional[RasterFactory] = None,
) -> np.ndarray:
    """Run the boundary-forced stepping loop and return final cell states (rows, cols, 4)."""

    # ------------------------------
    # Model parameters
    # ------------------------------
    manager = SimulationManager.from_config(cfg)
    log_every = int(cfg.get("model", {}).get("log_every", 10))

    state = create_device_state(cfg, domain)
    logger.info(
        "Compute device: %s, precision: %s, domain: %dx%d @ %.3f",
        state.device.name,
        state.program.float_form.value,
        domain.rows,
        domain.cols,
        domain.resolution,
    )

    boundaries = build_boundaries(cfg, domain, manager, raster_factory=raster_factory)
    for bdy in boundaries:
        bdy.prepare(
            state.device,
            state.program,
            state.bed,
            state.manning,
            state.time,
            state.time_hydrological,
            state.timestep,
        )
    state.device.flush()
    logger.info("Prepared %d boundary condition(s).", len(boundaries))

    # ------------------------------
    # Time stepping
    # ------------------------------
    t0 = perf_counter()
    step = 0
    current = 0.0
    while current < manager.simulation_length:
        dt = min(manager.timestep, manager.simulation_length - current)
        _write_scalar(state.time, current)
        _write_scalar(state.time_hydrological, current)
        _write_scalar(state.timestep, dt)

        # Streaming writes are queued before the kernels that read them.
        for bdy in boundaries:
            bdy.advance(current)
        for bdy in boundaries:
            bdy.apply(state.cells)
        state.device.flush()

        step += 1
        current = min(step * manager.timestep, manager.simulation_length)
        if log_every > 0 and step % log_every == 0:
            logger.info(
                "Step %d: t=%s / %s (wall %.2fs)",
                step,
                seconds_to_time(current),
                seconds_to_time(manager.simulation_length),
                perf_counter() - t0,
            )

    for bdy in boundaries:
        bdy.clean()

    state.cells.queue_read_all()
    state.device.flush()
    logger.info("Simulation finished: %d steps in %.2fs", step, perf_counter() - t0)
    cells = state.cells.host_view(state.program.float_form.dtype)
    return cells.reshape(domain.rows, domain.cols, CELL_STATE_WIDTH).astype(np.float64)
