# -*- coding: utf-8 -*-
"""Command line interface for gridforce."""

# Import argparse for CLI parsing.
import argparse

# Import typing primitives.
from typing import List, Optional


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    # Create argument parser with a program name.
    ap = argparse.ArgumentParser(prog="gridforce")
    # Configuration file path.
    ap.add_argument("--config", default="config.json", help="Path to configuration JSON file.")
    # Logging level.
    ap.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    # Common operational overrides.
    ap.add_argument("--out-nc", default=None, help="Output NetCDF path.")
    ap.add_argument("--device", default=None, choices=["cpu", "gpu"], help="Compute device override.")
    ap.add_argument(
        "--precision",
        default=None,
        choices=["single", "double"],
        help="Floating-point precision of device buffers and kernels.",
    )
    ap.add_argument(
        "--source-dir",
        default=None,
        help="Directory holding boundary rasters (overrides boundaries.source_dir).",
    )
    # Return parsed args.
    return ap.parse_args(argv)
