#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""gridforce entry point.

This file is intentionally small:
- parse CLI
- load+merge configuration
- load the domain
- run the simulation and write results

All real logic lives in the `gridforce/` package.
"""

# Import logging (for module-level logger).
import logging

# Import stdlib helpers.
import importlib.util
import sys
from typing import List, Optional

# Import lightweight config helpers early for shared utilities.
from gridforce.config import deep_update, default_config, load_json


def _require_numpy() -> None:
    """Validate that NumPy is available before importing gridforce modules."""
    if importlib.util.find_spec("numpy") is None:
        raise ModuleNotFoundError(
            "NumPy is required to run gridforce. Activate your virtual environment "
            f"or install it with '{sys.executable} -m pip install numpy'."
        )


def main(argv: Optional[List[str]] = None) -> None:
    """Program entry point."""
    _require_numpy()

    # Import CLI parser.
    from gridforce.cli import parse_args

    # Import logging configuration.
    from gridforce.logging_utils import setup_logging

    # Import domain I/O.
    from gridforce.domain import read_domain_netcdf

    # Import simulation driver and output writer.
    from gridforce.simulation import run_simulation
    from gridforce.io_netcdf import write_results_netcdf

    # Parse command-line arguments into a structured namespace.
    args = parse_args(argv)

    # Load the built-in default configuration dictionary.
    cfg = default_config()

    # Load the user-provided config file and merge it onto the defaults.
    cfg = deep_update(cfg, load_json(args.config))

    # Apply CLI overrides (only if options were explicitly supplied).
    if args.out_nc is not None:
        cfg["output"]["out_netcdf"] = args.out_nc
    if args.device is not None:
        cfg.setdefault("compute", {})["device"] = args.device
    if args.precision is not None:
        cfg.setdefault("compute", {})["precision"] = args.precision
    if args.source_dir is not None:
        cfg.setdefault("boundaries", {})["source_dir"] = args.source_dir

    # Configure logging.
    setup_logging(args.log_level)
    logger = logging.getLogger("gridforce")

    # Load domain.
    dom = read_domain_netcdf(cfg)
    logger.info("Domain loaded: %dx%d cells at %.3f", dom.rows, dom.cols, dom.resolution)

    # Run the stepping loop.
    cells = run_simulation(cfg, dom)

    out_path = cfg.get("output", {}).get("out_netcdf")
    if out_path:
        write_results_netcdf(out_path, cfg, dom, cells)
        logger.info("Results written to %s", out_path)

    logger.info("gridforce finished.")


if __name__ == "__main__":
    main()
