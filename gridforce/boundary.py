# -*- coding: utf-8 -*-
"""Boundary lifecycle contract shared by every boundary variant.

A boundary is driven through:
1) setup_from_config  (once, before device setup)
2) prepare            (once, after the program is built)
3) advance / apply    (every step, advance first)
4) clean              (reserved hook at teardown)
"""

from __future__ import annotations

# Import abstract base class helpers.
from abc import ABC, abstractmethod

# Import itertools for automatic naming.
import itertools

# Import typing primitives.
from typing import Any, Mapping, Optional, TYPE_CHECKING

# Import device types.
from .device import ComputeDevice, ComputeKernel, ComputeProgram, DeviceBuffer

# Import domain type.
from .domain import CartesianDomain

if TYPE_CHECKING:
    from .simulation import SimulationManager

_AUTONAME = itertools.count(1)


class Boundary(ABC):
    """Base class for boundary conditions applied by a compute kernel."""

    def __init__(self, domain: CartesianDomain, manager: "SimulationManager", name: Optional[str] = None) -> None:
        self.domain = domain
        self.manager = manager
        self.name = name or f"Boundary_{next(_AUTONAME)}"
        self.kernel: Optional[ComputeKernel] = None

    @abstractmethod
    def setup_from_config(self, attributes: Mapping[str, Any], source_dir: str) -> bool:
        """Configure from textual attributes; False disables the boundary."""

    @abstractmethod
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
        """Create device resources and bind kernel arguments."""

    @abstractmethod
    def apply(self, cells: DeviceBuffer) -> None:
        """Queue the boundary kernel against the given cell-state buffer."""

    @abstractmethod
    def advance(self, current_time: float) -> None:
        """Stage whatever data the boundary needs for `current_time`."""

    def clean(self) -> None:
        """Release transient host-side state; device resources go with the instance."""
