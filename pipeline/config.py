"""
Pipeline configuration.

Defaults match the classic 16x16 tiling with a radius-3, sigma-1 Gaussian.
Every field can be overridden from `SOBEL_*` environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Optional

from backends.errors import ConfigurationError
from kernels.cuda.ops.sobel_filters import SOBEL_WIDTH
from pipeline.geometry import TileGeometry


@dataclass(frozen=True)
class SobelConfig:
    backend: str = "auto"
    block_x: int = 16
    block_y: int = 16
    # None: as many batch images per block as the thread limit allows.
    batch_slice: Optional[int] = None
    blur_sigma: float = 1.0
    blur_radius: int = 3
    kernel_width: int = SOBEL_WIDTH

    def geometry(self) -> TileGeometry:
        return TileGeometry(block_x=self.block_x, block_y=self.block_y, batch_slice=self.batch_slice)

    @classmethod
    def from_env(cls, **overrides) -> "SobelConfig":
        cfg = cls(
            backend=os.getenv("SOBEL_BACKEND", cls.backend),
            block_x=_env_int("SOBEL_BLOCK_X", cls.block_x),
            block_y=_env_int("SOBEL_BLOCK_Y", cls.block_y),
            batch_slice=_env_int("SOBEL_BATCH_SLICE", None),
            blur_sigma=_env_float("SOBEL_BLUR_SIGMA", cls.blur_sigma),
            blur_radius=_env_int("SOBEL_BLUR_RADIUS", cls.blur_radius),
            kernel_width=_env_int("SOBEL_KERNEL_WIDTH", cls.kernel_width),
        )
        return replace(cfg, **overrides) if overrides else cfg


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None


__all__ = ["SobelConfig"]
