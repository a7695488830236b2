# -*- coding: utf-8 -*-
"""Streaming gridded boundary (one raster per sample interval, loaded on demand).

The boundary keeps at most one sample on the host and one values buffer on the
device. A new raster is read and written to the device only when the sample
index for the current time differs from the staged one.
"""

from __future__ import annotations

# Import dataclass for the timeseries entry.
from dataclasses import dataclass

# Import enum for value semantics.
from enum import IntEnum

# Import stdlib helpers.
import math
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

# Import logging.
import logging

# Import numpy.
import numpy as np

# Import local modules.
from .boundary import Boundary
from .compute_backend import FloatPrecision
from .device import ComputeDevice, ComputeProgram, DeviceBuffer
from .domain import CartesianDomain
from .raster import GridTransform, RasterDataset
from .time_utils import expand_timestamp_mask, seconds_to_time

logger = logging.getLogger("gridforce.boundary")

KERNEL_NAME = "bdy_StreamingGridded"
GROUP_SIZE = 8
CELL_STATE_ARG = 5

RasterFactory = Callable[[Optional[str]], RasterDataset]


class GriddedValue(IntEnum):
    """What the gridded values represent (code written to the device)."""

    RAIN_INTENSITY = 0
    MASS_FLUX = 1


GRIDDED_VALUES: Dict[str, GriddedValue] = {
    "rain-intensity": GriddedValue.RAIN_INTENSITY,
    "mass-flux": GriddedValue.MASS_FLUX,
}


def configuration_dtype(precision: FloatPrecision) -> np.dtype:
    """Packed layout of the device configuration record."""
    real = precision.dtype
    return np.dtype(
        [
            ("timeseries_interval", real),
            ("grid_resolution", real),
            ("grid_offset_x", real),
            ("grid_offset_y", real),
            ("timeseries_entries", np.uint64),
            ("definition", np.uint64),
            ("grid_rows", np.uint64),
            ("grid_cols", np.uint64),
        ],
        align=False,
    )


def timeseries_length(simulation_length: float, interval: float) -> int:
    """Number of nominal samples at 0, interval, ... up to the simulation length."""
    return int(math.floor(float(simulation_length) / float(interval))) + 1


def parse_interval(text: Any) -> Optional[float]:
    """Return a positive finite interval, or None when malformed."""
    if text is None:
        return None
    try:
        value = float(str(text).strip())
    except ValueError:
        return None
    if not math.isfinite(value) or value <= 0.0:
        return None
    return value


def dispatch_size(rows: int, cols: int, group: int = GROUP_SIZE) -> Tuple[Tuple[int, int], Tuple[int, int]]:
    """Global/group sizes covering a rows x cols simulation grid (x = columns)."""
    gx = -(-int(cols) // group) * group
    gy = -(-int(rows) // group) * group
    return (gx, gy), (group, group)


def _lower(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).lower().strip()


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower().strip() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass
class TimeseriesEntry:
    """One sample: time since simulation start and its grid values."""

    time: float
    values: np.ndarray

    def buffer_data(self, precision: FloatPrecision) -> np.ndarray:
        """Values at `precision`; double precision returns the array itself."""
        if precision is FloatPrecision.SINGLE:
            return self.values.astype(np.float32)
        return self.values


class StreamingGriddedBoundary(Boundary):
    """Gridded rain-intensity or mass-flux forcing streamed from raster files."""

    def __init__(
        self,
        domain: CartesianDomain,
        manager: Any,
        name: Optional[str] = None,
        raster_factory: Optional[RasterFactory] = None,
    ) -> None:
        super().__init__(domain, manager, name=name)
        self.boundary_type: Optional[str] = None
        self.value = GriddedValue.RAIN_INTENSITY
        self.interval = 0.0
        self.timeseries_length = 0
        self.effective_length = 0.0
        self._reachable_steps = 0
        self.file_paths: List[str] = []
        self.transform: Optional[GridTransform] = None
        self.precision: Optional[FloatPrecision] = None
        self.staged_index: Optional[int] = None
        self.entry: Optional[TimeseriesEntry] = None
        self.var: Optional[str] = None
        self.diagnostics = False
        self.buffer_configuration: Optional[DeviceBuffer] = None
        self.buffer_values: Optional[DeviceBuffer] = None
        self._raster_factory: RasterFactory = raster_factory or RasterDataset
        self._warned_unreachable = False

    # ------------------------------
    # Configuration
    # ------------------------------
    def setup_from_config(self, attributes: Mapping[str, Any], source_dir: str) -> bool:
        """Validate attributes and resolve one raster file per sample time."""
        self.boundary_type = _lower(attributes.get("type"))
        if attributes.get("name"):
            self.name = str(attributes["name"])
        mask = attributes.get("mask")
        interval_text = _lower(attributes.get("interval"))
        value_text = _lower(attributes.get("value"))
        self.var = attributes.get("var") or None
        self.diagnostics = _flag(attributes.get("diagnostics", False))

        interval = parse_interval(interval_text)
        if interval is None:
            logger.warning("Gridded boundary '%s' interval is not a valid number (%r).", self.name, interval_text)
            return False
        if not mask:
            logger.warning("Gridded boundary '%s' has no filename mask.", self.name)
            return False

        if value_text is None or value_text in GRIDDED_VALUES:
            self.value = GRIDDED_VALUES.get(value_text or "rain-intensity", GriddedValue.RAIN_INTENSITY)
        else:
            logger.warning(
                "Unrecognised value parameter '%s' for gridded boundary '%s'. "
                "Currently supported are: rain-intensity, mass-flux.",
                value_text,
                self.name,
            )

        length = float(self.manager.simulation_length)
        self.interval = interval
        self.timeseries_length = timeseries_length(length, interval)
        self.effective_length = length
        self._reachable_steps = self.timeseries_length
        self.file_paths = []
        self.transform = None
        self.staged_index = None

        for step in range(self.timeseries_length):
            sample_time = step * interval
            filename = expand_timestamp_mask(str(mask), int(self.manager.real_start) + int(sample_time))
            path = Path(source_dir) / filename
            if not path.is_file():
                logger.warning(
                    "Gridded boundary raster missing for %s (t=%gs) with filename '%s'",
                    seconds_to_time(int(sample_time)),
                    sample_time,
                    path,
                )
                # Only the samples before the first gap stay reachable.
                self._reachable_steps = min(self._reachable_steps, step)
                self.effective_length = min(self.effective_length, sample_time - interval)
                continue
            self.file_paths.append(str(path))

            # First raster defines the transform for every later file.
            if self.transform is None:
                with self._raster_factory(self.var) as raster:
                    raster.open_file_read(str(path))
                    self.transform = raster.compute_transform_for(self.domain)

        if self.transform is None:
            logger.warning("Gridded boundary '%s' found no rasters; no forcing will be applied.", self.name)
        else:
            logger.info(
                "Gridded boundary '%s': %d/%d rasters, interval=%.1fs, reachable samples=%d, grid=%dx%d",
                self.name,
                len(self.file_paths),
                self.timeseries_length,
                self.interval,
                self.max_index + 1,
                self.transform.rows,
                self.transform.columns,
            )
        return True

    @property
    def max_index(self) -> int:
        """Last reachable sample index (-1 when none)."""
        return min(len(self.file_paths), self._reachable_steps) - 1

    def index_for(self, current_time: float) -> Optional[int]:
        """Sample index due at `current_time`, clamped to the last reachable one."""
        last = self.max_index
        if last < 0:
            return None
        t = int(math.floor(max(float(current_time), 0.0) / self.interval))
        return min(t, last)

    # ------------------------------
    # Device resources
    # ------------------------------
    def build_configuration_record(self, precision: FloatPrecision) -> np.ndarray:
        """Configuration record (length-1 structured array) at `precision`."""
        if self.transform is None:
            raise ValueError(f"Gridded boundary '{self.name}' has no grid transform")
        record = np.zeros(1, dtype=configuration_dtype(precision))
        record["timeseries_interval"] = self.interval
        record["grid_resolution"] = self.transform.source_resolution
        record["grid_offset_x"] = self.transform.offset_west
        record["grid_offset_y"] = self.transform.offset_south
        record["timeseries_entries"] = max(self.max_index + 1, 0)
        record["definition"] = int(self.value)
        record["grid_rows"] = self.transform.rows
        record["grid_cols"] = self.transform.columns
        return record

    def prepare(
        self,
        device: ComputeDevice,
        program: ComputeProgram,
        bed: DeviceBuffer,
        manning: DeviceBuffer,
        time: DeviceBuffer,
        time_hydrological: DeviceBuffer,
        timestep: DeviceBuffer,
    ) -> None:
        """Allocate configuration/values buffers and bind the kernel."""
        if self.transform is None:
            return

        if self.precision is not None and self.precision is not program.float_form:
            raise ValueError(f"Gridded boundary '{self.name}' was already prepared at {self.precision.value} precision")
        self.precision = program.float_form
        # Fresh buffers hold no sample yet.
        self.staged_index = None
        self.entry = None

        record = self.build_configuration_record(self.precision)
        self.buffer_configuration = DeviceBuffer(
            f"Bdy_{self.name}_Conf", program, size=record.nbytes, read_only=True, host_visible=True
        )
        self.buffer_configuration.host_block[:] = record.view(np.uint8)

        self.buffer_values = DeviceBuffer(
            f"Bdy_{self.name}_Stream",
            program,
            size=self.precision.itemsize * self.transform.cell_count,
            read_only=True,
            host_visible=True,
        )

        self.buffer_configuration.create_buffer()
        self.buffer_configuration.queue_write_all()
        self.buffer_values.create_buffer()
        self.buffer_values.queue_write_all()

        # Cell states (slot 5) are bound per step in apply().
        self.kernel = program.get_kernel(KERNEL_NAME)
        self.kernel.assign_arguments(
            [
                self.buffer_configuration,
                self.buffer_values,
                time,
                timestep,
                time_hydrological,
                None,
                bed,
                manning,
            ]
        )
        global_size, group_size = dispatch_size(self.domain.rows, self.domain.cols)
        self.kernel.set_global_size(*global_size)
        self.kernel.set_group_size(*group_size)

    # ------------------------------
    # Per-step work
    # ------------------------------
    def apply(self, cells: DeviceBuffer) -> None:
        if self.kernel is None:
            return
        self.kernel.assign_argument(CELL_STATE_ARG, cells)
        self.kernel.schedule_execution()

    def advance(self, current_time: float) -> None:
        """Load and stage the sample due at `current_time` if it changed."""
        if self.buffer_values is None or self.precision is None:
            return
        t = self.index_for(current_time)
        if t is None:
            if not self._warned_unreachable:
                logger.warning("Gridded boundary '%s' has no reachable samples; nothing streamed.", self.name)
                self._warned_unreachable = True
            return
        if t == self.staged_index:
            return

        logger.debug(
            "Gridded boundary '%s' streaming index %d (previous=%s, time=%.3fs, interval=%.1fs)",
            self.name,
            t,
            self.staged_index,
            current_time,
            self.interval,
        )
        self.entry = self._load_entry(t)
        data = self.entry.buffer_data(self.precision)
        self.buffer_values.host_view(self.precision.dtype)[:] = data
        self.buffer_values.queue_write_all()
        self.staged_index = t

    def _load_entry(self, index: int) -> TimeseriesEntry:
        if self.transform is None:
            raise RuntimeError(f"Boundary '{self.name}' has no grid transform; call setup_from_config first")
        path = self.file_paths[index]
        with self._raster_factory(self.var) as raster:
            raster.open_file_read(path)
            values = np.asarray(raster.extract_array_for(self.transform), dtype=np.float64).reshape(-1)
        if values.size != self.transform.cell_count:
            raise ValueError(
                f"Raster {path} yielded {values.size} values; expected {self.transform.cell_count}"
            )
        if self.diagnostics:
            logger.debug(
                "Gridded boundary '%s' sample %d: %s (max=%g)",
                self.name,
                index,
                "non-zero data found" if np.any(values > 0) else "no positive values",
                float(values.max()) if values.size else 0.0,
            )
        return TimeseriesEntry(time=index * self.interval, values=values)

    def clean(self) -> None:
        """Drop the host-side sample cache; the device keeps the staged values."""
        self.entry = None
