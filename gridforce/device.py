# -*- coding: utf-8 -*-
"""Device, program, buffer and kernel abstractions (numpy/CuPy backed).

This module provides:
- an in-order command queue per device (writes, reads, kernel dispatches)
- compute programs with a float form, build constants and a kernel registry
- labelled device buffers with a host-visible staging block
- kernels with positional argument binding and 2D dispatch sizing

Commands are only queued by the host; `ComputeDevice.flush()` executes them in
submission order, so a buffer write queued before a kernel dispatch is always
visible to that kernel.
"""

from __future__ import annotations

# Import deque for the in-order command queue.
from collections import deque

# Import typing primitives.
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Sequence, Tuple

# Import logging.
import logging

# Import numpy.
import numpy as np

# Import backend helpers.
from .compute_backend import (
    FloatPrecision,
    get_array_module,
    gpu_available,
    normalize_device,
    normalize_precision,
    to_device,
    to_numpy,
)

logger = logging.getLogger("gridforce.device")

KernelFunction = Callable[..., None]


class DeviceResourceError(RuntimeError):
    """Raised when a device resource cannot be created or used."""


class KernelNotFoundError(KeyError):
    """Raised when a program has no kernel with the requested name."""


class ComputeDevice:
    """A compute device with a single in-order command queue."""

    def __init__(self, device: Optional[str] = "cpu") -> None:
        dev = normalize_device(device)
        if dev == "gpu" and not gpu_available():
            logger.warning("GPU requested but CuPy not available; falling back to CPU.")
            dev = "cpu"
        self.name = dev
        self.xp = get_array_module(dev)
        self._queue: Deque[Tuple[str, Callable[[], None]]] = deque()
        self.executed = 0

    @property
    def pending(self) -> int:
        """Number of queued commands not yet executed."""
        return len(self._queue)

    def queued_labels(self) -> List[str]:
        """Labels of queued commands, oldest first."""
        return [label for label, _ in self._queue]

    def enqueue(self, label: str, command: Callable[[], None]) -> None:
        """Append a command to the queue."""
        self._queue.append((label, command))

    def flush(self) -> int:
        """Execute every queued command in submission order."""
        count = 0
        while self._queue:
            label, command = self._queue.popleft()
            logger.debug("Device %s executing: %s", self.name, label)
            command()
            count += 1
        self.executed += count
        return count


class ComputeProgram:
    """A built program: float form, build constants and named kernels."""

    def __init__(
        self,
        device: ComputeDevice,
        precision: FloatPrecision | str | None = None,
        constants: Optional[Mapping[str, Any]] = None,
        kernels: Optional[Mapping[str, KernelFunction]] = None,
    ) -> None:
        self.device = device
        self.float_form = normalize_precision(precision)
        self.constants: Dict[str, Any] = dict(constants or {})
        self._kernels: Dict[str, KernelFunction] = dict(kernels or {})

    def register_kernel(self, name: str, function: KernelFunction) -> None:
        """Register (or replace) a kernel function under `name`."""
        self._kernels[name] = function

    def get_kernel(self, name: str) -> "ComputeKernel":
        """Return a fresh kernel handle for `name`."""
        if name not in self._kernels:
            raise KernelNotFoundError(f"Kernel '{name}' not found in program")
        return ComputeKernel(name, self, self._kernels[name])


class DeviceBuffer:
    """Device memory block paired with a host-visible staging block."""

    def __init__(
        self,
        name: str,
        program: ComputeProgram,
        size: int,
        read_only: bool = True,
        host_visible: bool = True,
        precision: FloatPrecision | None = None,
    ) -> None:
        if int(size) <= 0:
            raise DeviceResourceError(f"Buffer '{name}' must have a positive size (got {size})")
        self.name = name
        self.program = program
        self.device = program.device
        self.precision = precision if precision is not None else program.float_form
        self.size = int(size)
        self.read_only = bool(read_only)
        self.host_visible = bool(host_visible)
        self._host = np.zeros(self.size, dtype=np.uint8)
        self._block: Any = None
        self.writes = 0

    @property
    def allocated(self) -> bool:
        """True once `create_buffer` has succeeded."""
        return self._block is not None

    @property
    def host_block(self) -> np.ndarray:
        """Raw bytes of the host staging block."""
        return self._host

    def host_view(self, dtype: Any) -> np.ndarray:
        """Typed view of the host staging block."""
        return self._host.view(dtype)

    def device_view(self, dtype: Any) -> Any:
        """Typed view of the device block (kernels only)."""
        self._require_allocated()
        return self._block.view(dtype)

    def create_buffer(self) -> None:
        """Allocate the device block."""
        try:
            self._block = self.device.xp.zeros(self.size, dtype=np.uint8)
        except MemoryError as exc:
            raise DeviceResourceError(
                f"Unable to allocate device buffer '{self.name}' ({self.size} bytes)"
            ) from exc
        logger.debug("Allocated buffer '%s' (%d bytes, %s)", self.name, self.size, self.precision.value)

    def queue_write_all(self) -> None:
        """Queue a full host-to-device copy of the staging block."""
        self._require_allocated()
        # Snapshot now: the host block may be rewritten before the queue runs.
        snapshot = self._host.copy()
        xp = self.device.xp

        def _write() -> None:
            self._block[...] = to_device(snapshot, xp)

        self.device.enqueue(f"write {self.name}", _write)
        self.writes += 1

    def queue_read_all(self) -> None:
        """Queue a full device-to-host copy into the staging block."""
        self._require_allocated()

        def _read() -> None:
            self._host[...] = to_numpy(self._block)

        self.device.enqueue(f"read {self.name}", _read)

    def _require_allocated(self) -> None:
        if self._block is None:
            raise DeviceResourceError(f"Device buffer '{self.name}' has not been created")


class ComputeKernel:
    """Handle on a program kernel with bound arguments and dispatch sizes."""

    def __init__(self, name: str, program: ComputeProgram, function: KernelFunction) -> None:
        self.name = name
        self.program = program
        self.device = program.device
        self._function = function
        self._args: List[Optional[DeviceBuffer]] = []
        self.global_size: Tuple[int, int] = (1, 1)
        self.group_size: Tuple[int, int] = (1, 1)
        self.executions = 0

    @property
    def arguments(self) -> Tuple[Optional[DeviceBuffer], ...]:
        return tuple(self._args)

    def assign_arguments(self, buffers: Sequence[Optional[DeviceBuffer]]) -> None:
        """Bind all positional arguments; None leaves a slot open."""
        self._args = list(buffers)

    def assign_argument(self, index: int, buffer: DeviceBuffer) -> None:
        """Rebind a single positional argument."""
        if index < 0 or index >= len(self._args):
            raise IndexError(f"Kernel '{self.name}' has no argument slot {index}")
        self._args[index] = buffer

    def set_global_size(self, x: int, y: int) -> None:
        self.global_size = (int(x), int(y))

    def set_group_size(self, x: int, y: int) -> None:
        gx, gy = self.global_size
        if x <= 0 or y <= 0 or gx % x or gy % y:
            raise ValueError(
                f"Group size {(x, y)} does not divide global size {self.global_size} for kernel '{self.name}'"
            )
        self.group_size = (int(x), int(y))

    def schedule_execution(self) -> None:
        """Queue the kernel on the device with the current bindings."""
        missing = [i for i, buf in enumerate(self._args) if buf is None]
        if missing:
            raise DeviceResourceError(f"Kernel '{self.name}' has unbound arguments at slots {missing}")
        args = tuple(self._args)
        global_size = self.global_size
        group_size = self.group_size

        def _run() -> None:
            self._function(self.program, global_size, group_size, *args)

        self.device.enqueue(f"kernel {self.name}", _run)
        self.executions += 1
