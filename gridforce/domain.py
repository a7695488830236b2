# -*- coding: utf-8 -*-
"""Cartesian simulation domain (NetCDF-only)."""

# Import typing primitives.
from typing import Any, Dict, Optional

# Import dataclass for structured domain object.
from dataclasses import dataclass, field

# Import numpy for arrays.
import numpy as np

# Import xarray for NetCDF reading.
import xarray as xr


@dataclass
class CartesianDomain:
    """Regular square-cell grid, stored south row first."""

    rows: int
    cols: int
    resolution: float
    west: float
    south: float
    bed: np.ndarray
    manning: np.ndarray
    x_name: str = "x"
    y_name: str = "y"
    grid_mapping_name: Optional[str] = None
    grid_mapping_attrs: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.rows <= 0 or self.cols <= 0:
            raise ValueError(f"Domain must have positive dimensions (got {self.rows}x{self.cols})")
        if not np.isfinite(self.resolution) or self.resolution <= 0:
            raise ValueError(f"Domain resolution must be positive (got {self.resolution})")
        self.bed = np.asarray(self.bed, dtype=np.float64).reshape(-1)
        self.manning = np.asarray(self.manning, dtype=np.float64).reshape(-1)
        if self.bed.size != self.cell_count or self.manning.size != self.cell_count:
            raise ValueError("Bed/manning arrays do not match the domain cell count")

    @classmethod
    def from_grid(
        cls,
        bed: np.ndarray,
        resolution: float,
        west: float = 0.0,
        south: float = 0.0,
        manning: float | np.ndarray = 0.03,
    ) -> "CartesianDomain":
        """Build a domain from a (rows, cols) south-first bed array."""
        bed2d = np.asarray(bed, dtype=np.float64)
        if bed2d.ndim != 2:
            raise ValueError("Bed elevation must be a 2D array")
        rows, cols = bed2d.shape
        man = np.broadcast_to(np.asarray(manning, dtype=np.float64), bed2d.shape)
        return cls(rows=rows, cols=cols, resolution=float(resolution), west=float(west),
                   south=float(south), bed=bed2d.copy(), manning=np.array(man))

    @property
    def cell_count(self) -> int:
        return self.rows * self.cols

    @property
    def cell_area(self) -> float:
        return self.resolution * self.resolution

    @property
    def east(self) -> float:
        return self.west + self.cols * self.resolution

    @property
    def north(self) -> float:
        return self.south + self.rows * self.resolution

    @property
    def x_vals(self) -> np.ndarray:
        """Cell-centre x coordinates (ascending)."""
        return self.west + (np.arange(self.cols) + 0.5) * self.resolution

    @property
    def y_vals(self) -> np.ndarray:
        """Cell-centre y coordinates (ascending, south first)."""
        return self.south + (np.arange(self.rows) + 0.5) * self.resolution


def _axis_spacing(vals: np.ndarray, name: str) -> float:
    """Median absolute spacing of a coordinate axis."""
    if vals.size < 2:
        raise ValueError(f"Coordinate '{name}' needs at least two values to infer resolution")
    return float(np.median(np.abs(np.diff(vals))))


def read_domain_netcdf(cfg: Dict[str, Any]) -> CartesianDomain:
    """Read the cartesian domain described by cfg['domain']."""
    # Extract domain configuration.
    dom_cfg = cfg["domain"]
    path = dom_cfg["domain_nc"]
    varmap = dom_cfg.get("varmap", {})

    # Resolve variable names.
    dem_name = varmap.get("dem", "dem")
    man_name = varmap.get("manning", "manning")
    x_name = varmap.get("x", "x")
    y_name = varmap.get("y", "y")

    with xr.open_dataset(path) as ds:
        dem_da = ds[dem_name].transpose(y_name, x_name)
        # Store south row first.
        if dem_da[y_name].size > 1 and float(dem_da[y_name][0]) > float(dem_da[y_name][-1]):
            dem_da = dem_da.isel({y_name: slice(None, None, -1)})
        x_vals = np.asarray(dem_da[x_name].values, dtype=np.float64)
        y_vals = np.asarray(dem_da[y_name].values, dtype=np.float64)
        if x_vals.size > 1 and x_vals[0] > x_vals[-1]:
            dem_da = dem_da.isel({x_name: slice(None, None, -1)})
            x_vals = x_vals[::-1]
        dem = np.asarray(dem_da.values, dtype=np.float64)

        # Optional Manning field (else constant default).
        if man_name in ds:
            man = np.asarray(ds[man_name].transpose(y_name, x_name).sel(
                {y_name: dem_da[y_name], x_name: dem_da[x_name]}).values, dtype=np.float64)
        else:
            man = np.full(dem.shape, float(dom_cfg.get("default_manning", 0.03)), dtype=np.float64)

        # Preserve CF grid mapping if present.
        gm_name = ds[dem_name].attrs.get("grid_mapping", None)
        gm_attrs: Dict[str, Any] = {}
        if gm_name and gm_name in ds:
            gm_attrs = dict(ds[gm_name].attrs)

    dx = _axis_spacing(x_vals, x_name)
    dy = _axis_spacing(y_vals, y_name)
    if not np.isclose(dx, dy, rtol=1e-6):
        raise ValueError(f"Domain cells must be square (dx={dx}, dy={dy})")

    # Non-finite bed elevation marks disabled cells.
    man = np.where(np.isfinite(man), man, float(dom_cfg.get("default_manning", 0.03)))

    rows, cols = dem.shape
    return CartesianDomain(
        rows=rows,
        cols=cols,
        resolution=dx,
        west=float(x_vals[0] - dx / 2.0),
        south=float(y_vals[0] - dx / 2.0),
        bed=dem,
        manning=man,
        x_name=x_name,
        y_name=y_name,
        grid_mapping_name=gm_name,
        grid_mapping_attrs=gm_attrs,
    )
