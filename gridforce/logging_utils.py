# -*- coding: utf-8 -*-
"""Logging setup for gridforce."""

# Import logging.
import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger with a single stream handler."""
    numeric = getattr(logging, str(level).upper(), None)
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level '{level}'")
    logging.basicConfig(level=numeric, format=LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S", force=True)
    # Keep third-party I/O libraries quiet unless debugging.
    if numeric > logging.DEBUG:
        for name in ("rasterio", "fiona", "h5py"):
            logging.getLogger(name).setLevel(logging.WARNING)
