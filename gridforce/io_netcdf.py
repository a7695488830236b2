# -*- coding: utf-8 -*-
"""NetCDF output of the final cell state."""

# Import JSON for embedding config as provenance attribute.
import json

# Import typing primitives.
from typing import Any, Dict

# Import numpy.
import numpy as np

# Import xarray.
import xarray as xr

# Import local helpers.
from .domain import CartesianDomain
from .kernels import DISABLED_FSL
from .time_utils import utc_now_iso


def write_results_netcdf(out_path: str, cfg: Dict[str, Any], dom: CartesianDomain, cells: np.ndarray) -> None:
    """Write water depth and free-surface level in CF-friendly NetCDF."""
    out_cfg = cfg.get("output", {})
    fill_value = float(out_cfg.get("fill_value", -9999.0))

    fsl = np.asarray(cells[..., 0], dtype=np.float64).reshape(dom.rows, dom.cols)
    bed = dom.bed.reshape(dom.rows, dom.cols)
    active = np.isfinite(bed) & (fsl > DISABLED_FSL)
    depth = np.where(active, np.maximum(fsl - np.where(active, bed, 0.0), 0.0), fill_value)
    fsl_out = np.where(active, fsl, fill_value)

    ds = xr.Dataset()
    ds = ds.assign_coords({
        dom.x_name: xr.DataArray(dom.x_vals, dims=(dom.x_name,), attrs={"long_name": "projection_x_coordinate", "units": "m"}),
        dom.y_name: xr.DataArray(dom.y_vals, dims=(dom.y_name,), attrs={"long_name": "projection_y_coordinate", "units": "m"}),
    })

    ds["water_depth"] = xr.DataArray(
        depth.astype(np.float32),
        dims=(dom.y_name, dom.x_name),
        attrs={"standard_name": "water_depth", "long_name": "water_depth", "units": "m"},
    )
    ds["free_surface_level"] = xr.DataArray(
        fsl_out.astype(np.float32),
        dims=(dom.y_name, dom.x_name),
        attrs={"long_name": "free_surface_level", "units": "m"},
    )

    if dom.grid_mapping_name and dom.grid_mapping_attrs:
        gm = dom.grid_mapping_name
        ds[gm] = xr.DataArray(0, attrs=dom.grid_mapping_attrs)
        ds["water_depth"].attrs["grid_mapping"] = gm
        ds["free_surface_level"].attrs["grid_mapping"] = gm

    ds.attrs["title"] = out_cfg.get("title", "gridforce boundary-forced water depth")
    ds.attrs["institution"] = out_cfg.get("institution", "")
    ds.attrs["source"] = "gridforce"
    ds.attrs["history"] = f"{utc_now_iso()}: results written by gridforce"
    ds.attrs["Conventions"] = out_cfg.get("Conventions", "CF-1.10")
    ds.attrs["gridforce_config_json"] = json.dumps(cfg, separators=(",", ":"), sort_keys=True, default=str)

    ds.to_netcdf(out_path, encoding={"water_depth": {"_FillValue": fill_value}, "free_surface_level": {"_FillValue": fill_value}})
