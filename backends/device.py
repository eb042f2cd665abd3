"""
Device contract shared by the CUDA runtime and the CPU SIMT emulator.

A device owns buffers, constant-memory symbols and kernel dispatch. Kernels are
identified by their IO spec (see `kernels/cuda/ops/*.py`), so both devices bind
launch arguments the same way: in `arg_names` order, tensors from
`DeviceBuffer`s and scalars from plain ints.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Protocol, Tuple

import numpy as np

from backends.errors import ConfigurationError, LaunchError, SobelError


Dim3 = Tuple[int, int, int]


@dataclass(frozen=True)
class KernelLaunch:
    grid: Dim3
    block: Dim3
    shared_mem: int = 0

    @property
    def threads_per_block(self) -> int:
        bx, by, bz = self.block
        return int(bx) * int(by) * int(bz)


@dataclass(frozen=True)
class DeviceLimits:
    """
    Dispatch limits checked before every launch.

    Defaults match current NVIDIA parts (CC >= 3.0) without opt-in shared memory.
    """

    max_threads_per_block: int = 1024
    max_block_dim: Dim3 = (1024, 1024, 64)
    max_grid_dim: Dim3 = (2**31 - 1, 65535, 65535)
    max_shared_mem_per_block: int = 48 * 1024
    constant_mem_bytes: int = 64 * 1024


@dataclass(eq=False)
class DeviceBuffer:
    name: str
    shape: Tuple[int, ...]
    handle: Any = field(repr=False)
    device: str = ""
    released: bool = False

    @property
    def nbytes(self) -> int:
        return int(np.prod(self.shape, dtype=np.int64))

    @property
    def channels(self) -> int:
        return int(self.shape[3]) if len(self.shape) == 4 else 1

    @property
    def image_shape(self) -> Tuple[int, int, int]:
        """(batch, height, width) regardless of channel count."""
        return (int(self.shape[0]), int(self.shape[1]), int(self.shape[2]))


class Device(Protocol):
    name: str
    limits: DeviceLimits

    def allocate(self, name: str, shape: Tuple[int, ...]) -> DeviceBuffer: ...

    def release(self, buf: DeviceBuffer) -> None: ...

    def upload(self, buf: DeviceBuffer, host: np.ndarray) -> None: ...

    def download(self, buf: DeviceBuffer, out: np.ndarray | None = None) -> np.ndarray: ...

    def set_constant(self, symbol: str, values: np.ndarray) -> None: ...

    def launch(self, kernel_io: Mapping[str, Any], launch: KernelLaunch, bindings: Mapping[str, Any]) -> None: ...

    def synchronize(self) -> None: ...


def check_launch(launch: KernelLaunch, limits: DeviceLimits, *, kernel_name: str = "") -> None:
    """
    Reject a launch the device could never run.

    Messages mirror the CUDA runtime errors a real dispatch would report.
    """
    who = f"{kernel_name}: " if kernel_name else ""
    dims = [*launch.grid, *launch.block]
    if any(int(d) < 1 for d in dims):
        raise LaunchError(f"{who}invalid configuration argument: grid={launch.grid} block={launch.block}")
    for axis, (got, cap) in enumerate(zip(launch.block, limits.max_block_dim)):
        if int(got) > int(cap):
            raise LaunchError(f"{who}invalid configuration argument: blockDim.{'xyz'[axis]}={got} > {cap}")
    for axis, (got, cap) in enumerate(zip(launch.grid, limits.max_grid_dim)):
        if int(got) > int(cap):
            raise LaunchError(f"{who}invalid configuration argument: gridDim.{'xyz'[axis]}={got} > {cap}")
    if launch.threads_per_block > limits.max_threads_per_block:
        raise LaunchError(
            f"{who}too many resources requested for launch: {launch.threads_per_block} threads per block "
            f"> {limits.max_threads_per_block}"
        )
    if int(launch.shared_mem) < 0 or int(launch.shared_mem) > limits.max_shared_mem_per_block:
        raise LaunchError(
            f"{who}too many resources requested for launch: {launch.shared_mem} B shared memory "
            f"> {limits.max_shared_mem_per_block} B"
        )


def constant_capacity(kernel_specs: List[Mapping[str, Any]]) -> Dict[str, Tuple[str, int]]:
    """
    Collect constant-memory symbols declared by kernel IO specs.

    Returns: symbol -> (dtype, element capacity).
    """
    out: Dict[str, Tuple[str, int]] = {}
    for spec in kernel_specs:
        consts = spec.get("constants") if isinstance(spec.get("constants"), dict) else {}
        for sym, desc in consts.items():
            shape = [int(d) for d in (desc.get("shape") or [])]
            out[str(sym)] = (str(desc.get("dtype") or "i32"), int(np.prod(shape, dtype=np.int64)) if shape else 1)
    return out


_NP_DTYPES = {"i32": np.int32, "f32": np.float32, "u8": np.uint8}


def constant_values(symbol: str, values: Any, capacity: Mapping[str, Tuple[str, int]]) -> np.ndarray:
    """
    Validate and flatten host values destined for a constant-memory symbol.
    """
    if symbol not in capacity:
        raise ConfigurationError(f"unknown constant symbol {symbol!r}; have {sorted(capacity)}")
    dt, cap = capacity[symbol]
    arr = np.ascontiguousarray(np.asarray(values, dtype=_NP_DTYPES[dt])).reshape(-1)
    if arr.size < 1 or arr.size > cap:
        raise ConfigurationError(f"constant {symbol} takes 1..{cap} {dt} values, got {arr.size}")
    return arr


def bind_arguments(kernel_io: Mapping[str, Any], bindings: Mapping[str, Any]) -> List[Any]:
    """
    Order launch arguments by `arg_names`, checking tensor args are live buffers.
    """
    tensors = kernel_io.get("tensors") if isinstance(kernel_io.get("tensors"), dict) else {}
    kernel_name = str(kernel_io.get("kernel_name") or "?")
    args: List[Any] = []
    for name in [str(x) for x in kernel_io.get("arg_names") or []]:
        if name not in bindings:
            raise LaunchError(f"{kernel_name}: missing binding {name}; have {sorted(bindings)}")
        val = bindings[name]
        if name in tensors:
            if not isinstance(val, DeviceBuffer):
                raise LaunchError(f"{kernel_name}: {name} must be a DeviceBuffer, got {type(val).__name__}")
            if val.released:
                raise SobelError(f"{kernel_name}: {name} bound to released buffer {val.name}")
            want = 3 if tensors[name].get("dtype") == "u8x3" else 1
            if val.channels != want:
                raise LaunchError(f"{kernel_name}: {name} expects {want}-channel buffer, got shape {val.shape}")
            args.append(val)
        else:
            args.append(int(val))
    return args


__all__ = [
    "Dim3",
    "KernelLaunch",
    "DeviceLimits",
    "DeviceBuffer",
    "Device",
    "check_launch",
    "constant_capacity",
    "constant_values",
    "bind_arguments",
]
