"""
Launch planning for the batched 2D+batch thread grid.

Blocks are (block_x, block_y, batch_slice); blocks tile the image plane and
stack along z over the batch, so one launch covers the whole batch.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from backends.device import DeviceLimits, KernelLaunch
from backends.errors import ConfigurationError


def _ceil_div(a: int, b: int) -> int:
    return (int(a) + int(b) - 1) // int(b) if int(b) > 0 else 1


@dataclass(frozen=True)
class TileGeometry:
    block_x: int = 16
    block_y: int = 16
    batch_slice: Optional[int] = None

    def __post_init__(self) -> None:
        if int(self.block_x) < 1 or int(self.block_y) < 1:
            raise ConfigurationError(f"block dims must be >= 1, got ({self.block_x}, {self.block_y})")
        if self.batch_slice is not None and int(self.batch_slice) < 1:
            raise ConfigurationError(f"batch_slice must be >= 1, got {self.batch_slice}")

    def slice_for(self, batch: int, limits: DeviceLimits) -> int:
        if self.batch_slice is not None:
            # Explicit request: let the device reject it if it cannot fit.
            return int(self.batch_slice)
        per_plane = int(self.block_x) * int(self.block_y)
        fit = max(1, int(limits.max_threads_per_block) // per_plane)
        return max(1, min(int(batch), fit, int(limits.max_block_dim[2])))

    def plan(
        self,
        width: int,
        height: int,
        batch: int,
        *,
        limits: DeviceLimits,
        shared_bytes_per_thread: int = 0,
    ) -> KernelLaunch:
        bz = self.slice_for(batch, limits)
        block = (int(self.block_x), int(self.block_y), bz)
        grid = (_ceil_div(width, block[0]), _ceil_div(height, block[1]), _ceil_div(batch, bz))
        shared_mem = block[0] * block[1] * block[2] * int(shared_bytes_per_thread)
        return KernelLaunch(grid=grid, block=block, shared_mem=shared_mem)


__all__ = ["TileGeometry"]
