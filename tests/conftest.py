"""Shared fixtures: synthetic domains, raster series and a counting raster reader."""

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest
import xarray as xr

from gridforce.domain import CartesianDomain
from gridforce.raster import RasterDataset
from gridforce.simulation import SimulationManager, create_device_state
from gridforce.streaming_gridded import StreamingGriddedBoundary
from gridforce.time_utils import datetime_to_unix_seconds, parse_iso8601_to_utc_datetime

START = "2025-12-21T00:00:00Z"
MASK = "rain_%Y%m%d_%H%M.nc"


def write_raster(path, values, resolution=20.0, west=0.0, south=0.0, var="rate"):
    """Write a (rows, cols) south-first grid as a north-first NetCDF raster."""
    values = np.asarray(values, dtype=np.float64)
    rows, cols = values.shape
    x = west + (np.arange(cols) + 0.5) * resolution
    y = south + (np.arange(rows) + 0.5) * resolution
    da = xr.DataArray(values[::-1], dims=("y", "x"), coords={"y": y[::-1], "x": x})
    xr.Dataset({var: da}).to_netcdf(path)


def sample_name(step, interval=3600.0, mask=MASK):
    start = parse_iso8601_to_utc_datetime(START)
    return (start + timedelta(seconds=step * interval)).strftime(mask)


def write_series(directory, grids, interval=3600.0, missing=(), mask=MASK, **kwargs):
    """Write one raster per step; indices in `missing` are skipped."""
    paths = []
    for step, grid in enumerate(grids):
        if step in missing:
            continue
        path = directory / sample_name(step, interval, mask)
        write_raster(path, grid, **kwargs)
        paths.append(str(path))
    return paths


class CountingRaster(RasterDataset):
    """RasterDataset that records every file it opens."""

    def __init__(self, var=None, log=None):
        super().__init__(var)
        self.log = log if log is not None else []

    def open_file_read(self, path):
        self.log.append(str(path))
        super().open_file_read(path)


@pytest.fixture
def opened():
    return []


@pytest.fixture
def raster_factory(opened):
    return lambda var=None: CountingRaster(var, opened)


@pytest.fixture
def domain():
    # 4 x 6 cells of 10 m -> 40 m x 60 m, flat bed.
    return CartesianDomain.from_grid(np.zeros((4, 6)), resolution=10.0)


@pytest.fixture
def manager():
    start = datetime_to_unix_seconds(parse_iso8601_to_utc_datetime(START))
    return SimulationManager(simulation_length=7200.0, real_start=start, timestep=60.0)


@pytest.fixture
def grids():
    # Three samples on a 2 x 3 grid of 20 m cells covering the domain.
    return [np.full((2, 3), 1.0), np.full((2, 3), 2.0), np.arange(6, dtype=float).reshape(2, 3)]


def attributes(**overrides):
    attrs = {
        "type": "streaming-gridded",
        "name": "rain",
        "mask": MASK,
        "interval": "3600",
        "value": "rain-intensity",
    }
    attrs.update(overrides)
    return attrs


def device_state(domain, precision="double"):
    cfg = {"compute": {"device": "cpu", "precision": precision}}
    return create_device_state(cfg, domain)


def prepared_boundary(domain, manager, source_dir, raster_factory, precision="double", **overrides):
    """Configure and prepare a streaming boundary; returns (boundary, device state)."""
    bdy = StreamingGriddedBoundary(domain, manager, raster_factory=raster_factory)
    assert bdy.setup_from_config(attributes(**overrides), str(source_dir))
    state = device_state(domain, precision)
    bdy.prepare(state.device, state.program, state.bed, state.manning, state.time,
                state.time_hydrological, state.timestep)
    state.device.flush()
    return bdy, state


def utc(year, month, day, hour=0):
    return datetime(year, month, day, hour, tzinfo=timezone.utc)
