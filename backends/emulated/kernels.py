"""
Python renditions of the kernels in `kernels/cuda/ops/*.cu` for the SIMT emulator.

Each function is the body of one CUDA thread. Keep them in step with the `.cu`
sources: same index math, same clamping, same arithmetic width (int32 sums for
the gradient, float32 for the blur and grayscale).
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterator

import numpy as np

from backends.emulated.simt import SYNC, ThreadContext
from kernels.cuda.ops.sobel_filters import SOBEL_WIDTH


SOBEL_RADIUS = (SOBEL_WIDTH - 1) // 2

_F32 = np.float32


def _clamp(v: int, lo: int, hi: int) -> int:
    return lo if v < lo else hi if v > hi else v


def _tile_extent(block_dim: int, block_idx: int, extent: int) -> int:
    # Populated part of this block's tile along one axis.
    return min(block_dim, extent - block_idx * block_dim)


def apply_sobel_filters(
    t: ThreadContext,
    d_input: np.ndarray,
    width: int,
    height: int,
    batch: int,
    kernel_width: int,
    d_output: np.ndarray,
) -> Iterator[Any]:
    s_tile = t.shared(np.uint8)

    x = t.block_idx.x * t.block_dim.x + t.thread_idx.x
    y = t.block_idx.y * t.block_dim.y + t.thread_idx.y
    b = t.block_idx.z * t.block_dim.z + t.thread_idx.z
    active = x < width and y < height and b < batch

    tile_base = t.thread_idx.z * t.block_dim.x * t.block_dim.y
    global_index = (b * height + y) * width + x
    if active:
        s_tile[tile_base + t.thread_idx.y * t.block_dim.x + t.thread_idx.x] = d_input[global_index]
    yield SYNC
    if not active:
        return

    tile_w = _tile_extent(t.block_dim.x, t.block_idx.x, width)
    tile_h = _tile_extent(t.block_dim.y, t.block_idx.y, height)
    r = (kernel_width - 1) // 2
    kx = t.const["c_sobel_x"]
    ky = t.const["c_sobel_y"]

    sum_x = 0
    sum_y = 0
    for i in range(-r, r + 1):
        ty = _clamp(t.thread_idx.y + i, 0, tile_h - 1)
        for j in range(-r, r + 1):
            tx = _clamp(t.thread_idx.x + j, 0, tile_w - 1)
            pix = int(s_tile[tile_base + ty * t.block_dim.x + tx])
            # row-major [dy][dx]
            k = (SOBEL_RADIUS + i) * SOBEL_WIDTH + (SOBEL_RADIUS + j)
            sum_x += pix * int(kx[k])
            sum_y += pix * int(ky[k])
    d_output[global_index] = min(abs(sum_x) + abs(sum_y), 255)


def apply_gaussian_filter(
    t: ThreadContext,
    d_input: np.ndarray,
    width: int,
    height: int,
    batch: int,
    radius: int,
    d_output: np.ndarray,
) -> Iterator[Any]:
    # float3 tile: 3 consecutive float32 per thread.
    s_pixels = t.shared(np.float32)

    x = t.block_idx.x * t.block_dim.x + t.thread_idx.x
    y = t.block_idx.y * t.block_dim.y + t.thread_idx.y
    b = t.block_idx.z * t.block_dim.z + t.thread_idx.z
    active = x < width and y < height and b < batch

    tile_base = t.thread_idx.z * t.block_dim.x * t.block_dim.y
    global_index = (b * height + y) * width + x
    if active:
        li = 3 * (tile_base + t.thread_idx.y * t.block_dim.x + t.thread_idx.x)
        s_pixels[li : li + 3] = d_input[global_index].astype(_F32)
    yield SYNC
    if not active:
        return

    tile_w = _tile_extent(t.block_dim.x, t.block_idx.x, width)
    tile_h = _tile_extent(t.block_dim.y, t.block_idx.y, height)
    taps = t.const["c_gaussian"]

    acc = [_F32(0.0), _F32(0.0), _F32(0.0)]
    weight = _F32(0.0)
    for i in range(-radius, radius + 1):
        ty = _clamp(t.thread_idx.y + i, 0, tile_h - 1)
        for j in range(-radius, radius + 1):
            tx = _clamp(t.thread_idx.x + j, 0, tile_w - 1)
            li = 3 * (tile_base + ty * t.block_dim.x + tx)
            f = taps[i + radius] * taps[j + radius]
            for c in range(3):
                acc[c] = acc[c] + f * s_pixels[li + c]
            weight = weight + f
    d_output[global_index] = [int(min(acc[c] / weight, _F32(255.0))) for c in range(3)]


def convert_to_grayscale(
    t: ThreadContext,
    d_input: np.ndarray,
    width: int,
    height: int,
    batch: int,
    d_output: np.ndarray,
) -> None:
    x = t.block_idx.x * t.block_dim.x + t.thread_idx.x
    y = t.block_idx.y * t.block_dim.y + t.thread_idx.y
    b = t.block_idx.z * t.block_dim.z + t.thread_idx.z
    if x >= width or y >= height or b >= batch:
        return

    global_index = (b * height + y) * width + x
    blue, green, red = (_F32(v) for v in d_input[global_index])
    d_output[global_index] = int(_F32(0.299) * red + _F32(0.587) * green + _F32(0.114) * blue)


EMULATED_KERNELS: Dict[str, Callable[..., Any]] = {
    "apply_sobel_filters": apply_sobel_filters,
    "apply_gaussian_filter": apply_gaussian_filter,
    "convert_to_grayscale": convert_to_grayscale,
}


__all__ = ["EMULATED_KERNELS", "apply_sobel_filters", "apply_gaussian_filter", "convert_to_grayscale"]
