"""
CPU device backed by NumPy buffers and the SIMT grid executor.

Launches execute eagerly on the calling thread, so `synchronize()` has nothing
to wait for. The device still tracks every live buffer and the bytes in use so
allocation failures and leaks behave like they would on a GPU.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np

from backends.device import (
    DeviceBuffer,
    DeviceLimits,
    KernelLaunch,
    bind_arguments,
    check_launch,
    constant_capacity,
    constant_values,
)
from backends.emulated.kernels import EMULATED_KERNELS
from backends.emulated.simt import run_grid
from backends.errors import AllocationError, LaunchError, SobelError, TransferError
from kernels.cuda.ops import kernel_library


log = logging.getLogger(__name__)


class EmulatedDevice:
    name = "emulated"

    def __init__(
        self,
        *,
        limits: Optional[DeviceLimits] = None,
        memory_limit: Optional[int] = None,
        seed: int = 0,
    ) -> None:
        self.limits = limits or DeviceLimits()
        self.memory_limit = memory_limit
        self.launch_count = 0
        self._live: Dict[int, DeviceBuffer] = {}
        self._constants: Dict[str, np.ndarray] = {}
        self._capacity = constant_capacity([io for _path, io in kernel_library()])
        # Shared-memory poison differs per launch but is reproducible per device.
        self._rng = np.random.default_rng(seed)

    @property
    def live_buffers(self) -> List[DeviceBuffer]:
        return list(self._live.values())

    @property
    def bytes_in_use(self) -> int:
        return sum(b.nbytes for b in self._live.values())

    def allocate(self, name: str, shape: Tuple[int, ...]) -> DeviceBuffer:
        shape = tuple(int(d) for d in shape)
        nbytes = int(np.prod(shape, dtype=np.int64))
        if self.memory_limit is not None and self.bytes_in_use + nbytes > int(self.memory_limit):
            raise AllocationError(
                f"out of memory allocating {name} ({nbytes} B); "
                f"{self.bytes_in_use} of {self.memory_limit} B in use"
            )
        buf = DeviceBuffer(name=name, shape=shape, handle=np.zeros(shape, dtype=np.uint8), device=self.name)
        self._live[id(buf)] = buf
        log.debug("allocated %s %s (%d B)", name, shape, nbytes)
        return buf

    def release(self, buf: DeviceBuffer) -> None:
        if buf.released or id(buf) not in self._live:
            raise SobelError(f"release of buffer {buf.name} that is not live on {self.name}")
        del self._live[id(buf)]
        buf.released = True
        buf.handle = None
        log.debug("released %s", buf.name)

    def _check_live(self, buf: DeviceBuffer) -> None:
        if buf.released or id(buf) not in self._live:
            raise TransferError(f"buffer {buf.name} is not live on {self.name}")

    def upload(self, buf: DeviceBuffer, host: np.ndarray) -> None:
        self._check_live(buf)
        src = np.ascontiguousarray(host)
        if src.nbytes != buf.nbytes:
            raise TransferError(f"host->device {buf.name}: expected {buf.nbytes} B, got {src.nbytes} B")
        np.copyto(buf.handle.reshape(-1), src.reshape(-1).view(np.uint8))

    def download(self, buf: DeviceBuffer, out: np.ndarray | None = None) -> np.ndarray:
        self._check_live(buf)
        if out is None:
            return buf.handle.copy()
        if out.nbytes != buf.nbytes or not out.flags.c_contiguous:
            raise TransferError(
                f"device->host {buf.name}: destination must be contiguous {buf.nbytes} B, got {out.nbytes} B"
            )
        np.copyto(out.reshape(-1).view(np.uint8), buf.handle.reshape(-1))
        return out

    def set_constant(self, symbol: str, values: np.ndarray) -> None:
        arr = constant_values(symbol, values, self._capacity)
        arr.setflags(write=False)
        self._constants[symbol] = arr

    def constant(self, symbol: str) -> Optional[np.ndarray]:
        return self._constants.get(symbol)

    def launch(self, kernel_io: Mapping[str, Any], launch: KernelLaunch, bindings: Mapping[str, Any]) -> None:
        kernel_name = str(kernel_io.get("kernel_name") or "")
        fn = EMULATED_KERNELS.get(kernel_name)
        if fn is None:
            raise LaunchError(f"no emulated kernel named {kernel_name!r}")
        check_launch(launch, self.limits, kernel_name=kernel_name)
        args: List[Any] = []
        for a in bind_arguments(kernel_io, bindings):
            if isinstance(a, DeviceBuffer):
                self._check_live(a)
                args.append(a.handle.reshape(-1, 3) if a.channels == 3 else a.handle.reshape(-1))
            else:
                args.append(a)
        for sym in kernel_io.get("constants") or {}:
            if sym not in self._constants:
                raise LaunchError(f"{kernel_name}: constant {sym} was never set")
        self.launch_count += 1
        log.debug("launch %s grid=%s block=%s smem=%d", kernel_name, launch.grid, launch.block, launch.shared_mem)
        run_grid(fn, launch, args, const=self._constants, rng=self._rng)

    def synchronize(self) -> None:
        return None


__all__ = ["EmulatedDevice"]
