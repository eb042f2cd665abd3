"""
SIMT grid executor for the CPU emulator.

A kernel is a Python function taking a `ThreadContext` followed by its launch
arguments. Kernels that use a block barrier are generator functions: every
`yield SYNC` is one `__syncthreads()`. The executor runs one block at a time,
advancing each worker of the block to its next barrier (or to completion)
before releasing the barrier, so a sibling's shared-memory writes are only
visible after the barrier fires.

Barrier use must be block-uniform: a phase in which some workers arrive and
others exit is reported as a `LaunchError` (this is undefined behaviour on a
real device).
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Iterator, List, Mapping, NamedTuple, Sequence

import numpy as np

from backends.device import KernelLaunch
from backends.errors import LaunchError


SYNC = object()


class Dim3(NamedTuple):
    x: int
    y: int
    z: int


class GroupBarrier:
    """
    Counting barrier for the workers of one block.

    `arrive()` returns True for the last arriving worker; `release()` opens the
    next generation.
    """

    def __init__(self, parties: int) -> None:
        self.parties = int(parties)
        self.count = 0
        self.generation = 0

    def arrive(self) -> bool:
        if self.count >= self.parties:
            raise LaunchError(f"barrier overrun: {self.count + 1} arrivals for {self.parties} parties")
        self.count += 1
        return self.count == self.parties

    def release(self) -> None:
        if self.count != self.parties:
            raise LaunchError(f"barrier released with {self.count}/{self.parties} arrivals")
        self.count = 0
        self.generation += 1


@dataclass(frozen=True)
class ThreadContext:
    thread_idx: Dim3
    block_idx: Dim3
    block_dim: Dim3
    grid_dim: Dim3
    shared_mem: np.ndarray
    const: Mapping[str, np.ndarray]

    def shared(self, dtype: Any) -> np.ndarray:
        """View of the block's dynamic shared memory (`extern __shared__ T s[]`)."""
        dt = np.dtype(dtype)
        usable = (self.shared_mem.size // dt.itemsize) * dt.itemsize
        return self.shared_mem[:usable].view(dt)


KernelFn = Callable[..., Any]


def _workers(
    kernel: KernelFn,
    *,
    block_idx: Dim3,
    block_dim: Dim3,
    grid_dim: Dim3,
    shared_mem: np.ndarray,
    const: Mapping[str, np.ndarray],
    args: Sequence[Any],
) -> List[Iterator[Any] | None]:
    out: List[Iterator[Any] | None] = []
    for tz in range(block_dim.z):
        for ty in range(block_dim.y):
            for tx in range(block_dim.x):
                ctx = ThreadContext(
                    thread_idx=Dim3(tx, ty, tz),
                    block_idx=block_idx,
                    block_dim=block_dim,
                    grid_dim=grid_dim,
                    shared_mem=shared_mem,
                    const=const,
                )
                res = kernel(ctx, *args)
                # Barrier-free kernels are plain functions and have already run.
                out.append(res if inspect.isgenerator(res) else None)
    return out


def run_block(
    kernel: KernelFn,
    *,
    block_idx: Dim3,
    block_dim: Dim3,
    grid_dim: Dim3,
    shared_mem: np.ndarray,
    const: Mapping[str, np.ndarray],
    args: Sequence[Any],
) -> int:
    """
    Execute one block to completion. Returns the number of barriers crossed.
    """
    workers = _workers(
        kernel,
        block_idx=block_idx,
        block_dim=block_dim,
        grid_dim=grid_dim,
        shared_mem=shared_mem,
        const=const,
        args=args,
    )
    pending = [w for w in workers if w is not None]
    if not pending:
        return 0
    if len(pending) != len(workers):
        raise LaunchError("kernel mixes barrier and barrier-free workers in one block")

    barrier = GroupBarrier(len(pending))
    while pending:
        waiting: List[Iterator[Any]] = []
        exited = 0
        for w in pending:
            try:
                marker = next(w)
            except StopIteration:
                exited += 1
                continue
            if marker is not SYNC:
                raise LaunchError(f"kernel yielded {marker!r}; only SYNC is allowed")
            barrier.arrive()
            waiting.append(w)
        if waiting and exited:
            raise LaunchError(
                f"divergent __syncthreads in block {tuple(block_idx)}: "
                f"{len(waiting)} workers waiting, {exited} exited"
            )
        if waiting:
            barrier.release()
        pending = waiting
    return barrier.generation


def run_grid(
    kernel: KernelFn,
    launch: KernelLaunch,
    args: Sequence[Any],
    *,
    const: Mapping[str, np.ndarray],
    rng: np.random.Generator,
) -> None:
    """
    Execute every block of the grid in launch order.

    Each block gets fresh shared memory filled with random bytes, like the
    uninitialised on-chip memory of a real device.
    """
    grid_dim = Dim3(*(int(v) for v in launch.grid))
    block_dim = Dim3(*(int(v) for v in launch.block))
    for bz in range(grid_dim.z):
        for by in range(grid_dim.y):
            for bx in range(grid_dim.x):
                shared_mem = rng.integers(0, 256, size=int(launch.shared_mem), dtype=np.uint8)
                try:
                    run_block(
                        kernel,
                        block_idx=Dim3(bx, by, bz),
                        block_dim=block_dim,
                        grid_dim=grid_dim,
                        shared_mem=shared_mem,
                        const=const,
                        args=args,
                    )
                except IndexError as e:
                    raise LaunchError(f"illegal memory access in block {(bx, by, bz)}: {e}") from e


__all__ = ["SYNC", "Dim3", "GroupBarrier", "ThreadContext", "run_block", "run_grid"]
