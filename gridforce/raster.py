# -*- coding: utf-8 -*-
"""Raster input for gridded boundaries (NetCDF via xarray, GeoTIFF via rioxarray)."""

# NOTE: Rasters are read one file per sample; the first file defines the grid transform.

from __future__ import annotations

# Import dataclass for the transform record.
from dataclasses import dataclass

# Import stdlib helpers.
import math
from pathlib import Path
from typing import Any, Optional

# Import logging.
import logging

# Import numpy.
import numpy as np

# Import xarray.
import xarray as xr

# Import domain type.
from .domain import CartesianDomain

logger = logging.getLogger("gridforce.raster")

# Suffixes routed to rioxarray instead of the NetCDF engine.
RASTERIO_SUFFIXES = (".tif", ".tiff", ".asc", ".img", ".vrt")


@dataclass(frozen=True)
class GridTransform:
    """Placement of a raster window over the simulation grid.

    Offsets locate the domain's south-west corner inside the window, in domain
    length units. `base_south`/`base_west` are the first raster row/column of
    the window, counted from the south-west.
    """

    source_resolution: float
    target_resolution: float
    offset_south: float
    offset_west: float
    rows: int
    columns: int
    base_south: int = 0
    base_west: int = 0

    def __post_init__(self) -> None:
        if self.rows <= 0 or self.columns <= 0:
            raise ValueError(f"Grid transform needs positive dimensions (got {self.rows}x{self.columns})")
        for label in ("source_resolution", "target_resolution", "offset_south", "offset_west"):
            val = float(getattr(self, label))
            if not math.isfinite(val) or val < 0.0:
                raise ValueError(f"Grid transform {label} must be finite and non-negative (got {val})")
        if self.source_resolution <= 0.0 or self.target_resolution <= 0.0:
            raise ValueError("Grid transform resolutions must be positive")

    @property
    def cell_count(self) -> int:
        return self.rows * self.columns


def _open_rasterio(path: str) -> xr.DataArray:
    """Open a GeoTIFF-like raster as a DataArray."""
    try:
        import rioxarray as rxr  # Lazy import to keep raster optional.
    except ImportError as exc:
        raise ImportError(
            "Reading GeoTIFF inputs requires rioxarray and rasterio. "
            "Install them with 'pip install gridforce[geotiff]'."
        ) from exc
    return rxr.open_rasterio(path, masked=True)


def _pick_variable(ds: xr.Dataset, var: Optional[str], path: str) -> xr.DataArray:
    """Select the data variable holding the grid."""
    if var:
        if var not in ds:
            raise ValueError(f"Raster variable '{var}' not found in {path}")
        return ds[var]
    candidates = [name for name, da in ds.data_vars.items() if da.ndim >= 2]
    if not candidates:
        raise ValueError(f"No 2D variable found in {path}")
    return ds[candidates[0]]


def _normalize_grid(da: xr.DataArray, path: str) -> xr.DataArray:
    """Reduce to a (y, x) grid sorted south-to-north and west-to-east."""
    # Drop singleton leading dims (time, band).
    while da.ndim > 2:
        lead = da.dims[0]
        if da.sizes[lead] != 1:
            raise ValueError(f"Raster {path} has {da.sizes[lead]} entries along '{lead}'; expected one sample per file")
        da = da.isel({lead: 0}, drop=True)
    if da.ndim != 2:
        raise ValueError(f"Raster {path} must be 2D (y, x)")
    y_dim, x_dim = da.dims
    if y_dim not in da.coords or x_dim not in da.coords:
        raise ValueError(f"Raster {path} is missing coordinates for '{y_dim}'/'{x_dim}'")
    return da.sortby(y_dim).sortby(x_dim)


def _spacing(vals: np.ndarray, label: str, path: str) -> float:
    if vals.size < 2:
        raise ValueError(f"Raster {path} needs at least two cells along {label} to infer resolution")
    return float(np.median(np.abs(np.diff(vals))))


class RasterDataset:
    """A single gridded sample file."""

    def __init__(self, var: Optional[str] = None) -> None:
        self.var = var
        self.path: Optional[str] = None
        self._da: Optional[xr.DataArray] = None

    def __enter__(self) -> "RasterDataset":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def open_file_read(self, path: str) -> None:
        """Open `path` and load its grid into memory."""
        self.path = str(path)
        if Path(self.path).suffix.lower() in RASTERIO_SUFFIXES:
            da = _open_rasterio(self.path)
            self._da = _normalize_grid(da, self.path).load()
            da.close()
        else:
            with xr.open_dataset(self.path) as ds:
                da = _pick_variable(ds, self.var, self.path)
                self._da = _normalize_grid(da, self.path).load()
        logger.debug("Opened raster %s with shape %s", self.path, self._da.shape)

    def close(self) -> None:
        self._da = None

    def _grid(self) -> xr.DataArray:
        if self._da is None:
            raise ValueError("Raster has not been opened")
        return self._da

    def compute_transform_for(self, domain: CartesianDomain) -> GridTransform:
        """Compute the window of this raster covering `domain`."""
        da = self._grid()
        y_dim, x_dim = da.dims
        x = np.asarray(da[x_dim].values, dtype=np.float64)
        y = np.asarray(da[y_dim].values, dtype=np.float64)
        res = _spacing(x, x_dim, self.path or "")
        res_y = _spacing(y, y_dim, self.path or "")
        if not np.isclose(res, res_y, rtol=1e-6):
            raise ValueError(f"Raster {self.path} cells must be square (dx={res}, dy={res_y})")

        eps = res * 1e-9
        raster_west = float(x[0] - res / 2.0)
        raster_south = float(y[0] - res / 2.0)
        if raster_west > domain.west + eps or raster_south > domain.south + eps:
            raise ValueError(f"Raster {self.path} does not cover the domain's south-west corner")

        base_west = int(math.floor((domain.west - raster_west) / res + 1e-9))
        base_south = int(math.floor((domain.south - raster_south) / res + 1e-9))
        window_west = raster_west + base_west * res
        window_south = raster_south + base_south * res

        columns = min(x.size - base_west, int(math.ceil((domain.east - window_west) / res - 1e-9)))
        rows = min(y.size - base_south, int(math.ceil((domain.north - window_south) / res - 1e-9)))
        if rows <= 0 or columns <= 0:
            raise ValueError(f"Raster {self.path} does not overlap the simulation domain")

        return GridTransform(
            source_resolution=res,
            target_resolution=domain.resolution,
            offset_south=max(0.0, domain.south - window_south),
            offset_west=max(0.0, domain.west - window_west),
            rows=rows,
            columns=columns,
            base_south=base_south,
            base_west=base_west,
        )

    def extract_array_for(self, transform: GridTransform) -> np.ndarray:
        """Return the transform window as flat float64 values, south row first."""
        da = self._grid()
        window = np.asarray(da.values, dtype=np.float64)[
            transform.base_south:transform.base_south + transform.rows,
            transform.base_west:transform.base_west + transform.columns,
        ]
        if window.shape != (transform.rows, transform.columns):
            raise ValueError(
                f"Raster {self.path} window {window.shape} != transform {(transform.rows, transform.columns)}"
            )
        window = np.where(np.isfinite(window), window, 0.0)
        return np.ascontiguousarray(window.reshape(-1))
