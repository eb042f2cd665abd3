"""
Vectorised NumPy reference models for the gradient stage.

- `tile_local_gradient_magnitude`: the semantics the kernel implements
  (neighbours clamped to the populated part of each block's tile)
- `image_global_gradient_magnitude`: textbook Sobel with edge replication,
  used to show where tile-local clamping departs from it
- `grayscale_reference`: float32 BGR->gray, same operation order as the kernel
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from kernels.cuda.ops.sobel_filters import SOBEL_WIDTH


def _tile_clamped_index(extent: int, block: int, offset: int) -> np.ndarray:
    """
    For every coordinate c in [0, extent): clamp(c + offset) into c's own tile.
    """
    c = np.arange(extent)
    origin = (c // block) * block
    last = np.minimum(origin + block, extent) - 1
    return np.clip(c + offset, origin, last)


def _global_clamped_index(extent: int, offset: int) -> np.ndarray:
    return np.clip(np.arange(extent) + offset, 0, extent - 1)


def _magnitude(gray: np.ndarray, kx: np.ndarray, ky: np.ndarray, kernel_width: int, index_fn) -> np.ndarray:
    img = np.asarray(gray)
    if img.ndim == 2:
        img = img[None]
    _, height, width = img.shape
    img = img.astype(np.int32)
    kx = np.asarray(kx, dtype=np.int32)
    ky = np.asarray(ky, dtype=np.int32)
    centre = (SOBEL_WIDTH - 1) // 2
    r = (int(kernel_width) - 1) // 2
    sum_x = np.zeros(img.shape, dtype=np.int32)
    sum_y = np.zeros(img.shape, dtype=np.int32)
    for i in range(-r, r + 1):
        rows = index_fn(height, 0, i)
        for j in range(-r, r + 1):
            cols = index_fn(width, 1, j)
            n = img[:, rows[:, None], cols[None, :]]
            sum_x += n * kx[centre + i, centre + j]
            sum_y += n * ky[centre + i, centre + j]
    mag = np.minimum(np.abs(sum_x) + np.abs(sum_y), 255).astype(np.uint8)
    return mag if np.asarray(gray).ndim == 3 else mag[0]


def tile_local_gradient_magnitude(
    gray: np.ndarray,
    kx: np.ndarray,
    ky: np.ndarray,
    *,
    block: Tuple[int, int] = (16, 16),
    kernel_width: int = SOBEL_WIDTH,
) -> np.ndarray:
    bx, by = int(block[0]), int(block[1])
    return _magnitude(
        gray,
        kx,
        ky,
        kernel_width,
        lambda extent, axis, off: _tile_clamped_index(extent, by if axis == 0 else bx, off),
    )


def image_global_gradient_magnitude(
    gray: np.ndarray,
    kx: np.ndarray,
    ky: np.ndarray,
    *,
    kernel_width: int = SOBEL_WIDTH,
) -> np.ndarray:
    return _magnitude(gray, kx, ky, kernel_width, lambda extent, axis, off: _global_clamped_index(extent, off))


def grayscale_reference(bgr: np.ndarray) -> np.ndarray:
    f = np.asarray(bgr).astype(np.float32)
    blue, green, red = f[..., 0], f[..., 1], f[..., 2]
    gray = np.float32(0.299) * red + np.float32(0.587) * green + np.float32(0.114) * blue
    return gray.astype(np.uint8)


__all__ = ["tile_local_gradient_magnitude", "image_global_gradient_magnitude", "grayscale_reference"]
