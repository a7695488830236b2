# -*- coding: utf-8 -*-
"""Configuration handling for gridforce.

The model is configured via:
1) A JSON configuration file (config.json).
2) Optional CLI overrides (handled in cli.py).
"""

# Import JSON for reading configuration files.
import json

# Import typing primitives.
from typing import Any, Dict


def default_config() -> Dict[str, Any]:
    """Return a complete default configuration dictionary."""
    return {
        "domain": {
            "domain_nc": "domain.nc",
            "varmap": {
                "dem": "dem",
                "manning": "manning",
                "x": "x",
                "y": "y",
            },
            "default_manning": 0.03,
        },
        "model": {
            "start_time": "2025-12-21T00:00:00Z",
            "T_s": 7200,
            "dt_s": 5,
            "log_every": 10,
        },
        "boundaries": {
            "source_dir": ".",
            "definitions": [
                {
                    "type": "streaming-gridded",
                    "name": "rain",
                    "mask": "rain_%Y%m%d_%H%M.nc",
                    "interval": "3600",
                    "value": "rain-intensity",
                    "diagnostics": False,
                },
            ],
        },
        "compute": {
            "device": "cpu",
            "precision": "double",
        },
        "output": {
            "out_netcdf": "water_depth.nc",
            "Conventions": "CF-1.10",
            "title": "gridforce boundary-forced water depth",
            "institution": "",
            "fill_value": -9999.0,
        },
    }


def load_json(path: str) -> Dict[str, Any]:
    """Load a JSON file into a Python dictionary."""
    # Open the file with UTF-8 encoding.
    with open(path, "r", encoding="utf-8") as f:
        # Parse JSON into Python dict.
        return json.load(f)


def deep_update(base: Dict[str, Any], other: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge dict `other` into dict `base` (non-destructive)."""
    # Start from a shallow copy of base.
    out = dict(base)
    # Iterate keys from other.
    for k, v in other.items():
        # If both sides are dicts, merge recursively.
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = deep_update(out[k], v)  # type: ignore[arg-type]
        else:
            # Otherwise override (lists such as boundary definitions are replaced whole).
            out[k] = v
    # Return merged dictionary.
    return out
