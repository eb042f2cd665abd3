"""
Directional kernel store: the x/y gradient kernels in device constant memory.

Write-once per pipeline run. A run builds its own store, configures it before
any gradient launch, and never mutates it afterwards.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Tuple

import numpy as np

from backends.errors import ConfigurationError
from kernels.cuda.ops.sobel_filters import SOBEL_WIDTH


log = logging.getLogger(__name__)

SOBEL_X = np.array([[-1, 0, 1], [-2, 0, 2], [-1, 0, 1]], dtype=np.int32)
SOBEL_Y = np.array([[-1, -2, -1], [0, 0, 0], [1, 2, 1]], dtype=np.int32)


def _as_kernel(name: str, k: Any) -> np.ndarray:
    arr = np.asarray(k)
    if arr.shape != (SOBEL_WIDTH, SOBEL_WIDTH):
        raise ConfigurationError(f"{name} must be {SOBEL_WIDTH}x{SOBEL_WIDTH}, got shape {arr.shape}")
    if not (np.issubdtype(arr.dtype, np.integer) or np.all(np.mod(arr, 1) == 0)):
        raise ConfigurationError(f"{name} must hold integer coefficients")
    out = arr.astype(np.int32)
    out.setflags(write=False)
    return out


class DirectionalKernelStore:
    def __init__(self, device: Any) -> None:
        self.device = device
        self._kernels: Optional[Tuple[np.ndarray, np.ndarray]] = None

    @property
    def configured(self) -> bool:
        return self._kernels is not None

    @property
    def kernels(self) -> Tuple[np.ndarray, np.ndarray]:
        if self._kernels is None:
            raise ConfigurationError("directional kernels have not been configured")
        return self._kernels

    def configure(self, kernel_x: Any = SOBEL_X, kernel_y: Any = SOBEL_Y) -> None:
        """
        Copy both kernels into constant memory (`c_sobel_x`, `c_sobel_y`).

        Raises ConfigurationError on a second call or on malformed kernels, and
        TransferError (from the device) if the copy fails.
        """
        if self._kernels is not None:
            raise ConfigurationError("directional kernels are write-once per run; build a new store to reconfigure")
        kx = _as_kernel("kernel_x", kernel_x)
        ky = _as_kernel("kernel_y", kernel_y)
        self.device.set_constant("c_sobel_x", kx)
        self.device.set_constant("c_sobel_y", ky)
        self._kernels = (kx, ky)
        log.debug("configured directional kernels on %s", getattr(self.device, "name", "?"))


__all__ = ["SOBEL_X", "SOBEL_Y", "DirectionalKernelStore"]
