"""
Tiled convolution engine: batched Sobel gradient magnitude.

One launch covers the whole batch. Each thread stages its own pixel into the
block's shared tile, the block synchronises once, and each in-range thread
convolves its tile neighbourhood with both directional kernels:

    out[b, y, x] = min(|sum kx * N| + |sum ky * N|, 255)

Neighbours outside the populated tile are clamped to the tile edge, not the
image edge. At interior tile seams this differs from a textbook Sobel; the
numeric output is kept as-is because downstream consumers depend on it.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from backends.device import DeviceBuffer
from backends.errors import ConfigurationError
from kernels.cuda.ops.sobel_filters import SOBEL_WIDTH, sobel_filters_io
from pipeline.geometry import TileGeometry
from pipeline.kernel_store import DirectionalKernelStore


log = logging.getLogger(__name__)


def check_kernel_width(kernel_width: Any) -> int:
    if isinstance(kernel_width, bool):
        raise ConfigurationError(f"kernel_width must be an integer, got {kernel_width!r}")
    try:
        kw = int(kernel_width)
    except (TypeError, ValueError):
        raise ConfigurationError(f"kernel_width must be an integer, got {kernel_width!r}") from None
    if kw != kernel_width:
        raise ConfigurationError(f"kernel_width must be an integer, got {kernel_width!r}")
    if kw < 1 or kw % 2 == 0:
        raise ConfigurationError(f"kernel_width must be odd and >= 1, got {kw}")
    if kw > SOBEL_WIDTH:
        raise ConfigurationError(f"kernel_width {kw} exceeds the {SOBEL_WIDTH}x{SOBEL_WIDTH} kernel store")
    return kw


def compute_gradient_magnitude(
    device: Any,
    inp: DeviceBuffer,
    out: DeviceBuffer,
    *,
    store: DirectionalKernelStore,
    kernel_width: int = SOBEL_WIDTH,
    geometry: Optional[TileGeometry] = None,
) -> None:
    """
    Write the gradient magnitude of `inp` into `out` and wait for completion.

    Preconditions are checked before anything is dispatched: both buffers are
    1-channel with equal (B, H, W), `kernel_width` is odd and fits the store,
    and `store` has been configured on `device`.
    """
    kw = check_kernel_width(kernel_width)
    if inp.channels != 1 or out.channels != 1:
        raise ConfigurationError(f"gradient stage takes 1-channel buffers, got {inp.shape} -> {out.shape}")
    if inp.image_shape != out.image_shape:
        raise ConfigurationError(f"input/output shape mismatch: {inp.shape} vs {out.shape}")
    if not store.configured or store.device is not device:
        raise ConfigurationError("directional kernel store must be configured on this device before launch")

    batch, height, width = inp.image_shape
    geometry = geometry or TileGeometry()
    launch = geometry.plan(
        width,
        height,
        batch,
        limits=device.limits,
        shared_bytes_per_thread=int(sobel_filters_io["shared_bytes_per_thread"]),
    )
    log.debug("gradient magnitude %dx%dx%d grid=%s block=%s", width, height, batch, launch.grid, launch.block)
    device.launch(
        sobel_filters_io,
        launch,
        {
            "d_input": inp,
            "width": width,
            "height": height,
            "batch": batch,
            "kernel_width": kw,
            "d_output": out,
        },
    )
    device.synchronize()


__all__ = ["check_kernel_width", "compute_gradient_magnitude"]
