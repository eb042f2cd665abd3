"""
Pre-gradient stages: Gaussian blur (3-channel) and BGR->gray reduction.

Both stages keep width/height/batch and block until the device has retired the
launch.
"""

from __future__ import annotations

import math
from typing import Any, Optional

import numpy as np

from backends.device import DeviceBuffer
from backends.errors import ConfigurationError
from kernels.cuda.ops.gaussian_blur import GAUSSIAN_MAX_TAPS, gaussian_blur_io
from kernels.cuda.ops.grayscale import grayscale_io
from pipeline.geometry import TileGeometry


MAX_BLUR_RADIUS = (GAUSSIAN_MAX_TAPS - 1) // 2


def gaussian_weights(sigma: float, radius: int) -> np.ndarray:
    """
    Unnormalised 1D taps exp(-x^2 / (2 sigma^2)), x in [-radius, radius].

    The kernel renormalises by the sum of the 2D taps it actually visits.
    """
    try:
        s = float(sigma)
        r = int(radius)
    except (TypeError, ValueError):
        raise ConfigurationError(f"bad blur parameters sigma={sigma!r} radius={radius!r}") from None
    if not (math.isfinite(s) and s > 0):
        raise ConfigurationError(f"blur sigma must be a positive finite number, got {sigma!r}")
    if r != radius or not 0 <= r <= MAX_BLUR_RADIUS:
        raise ConfigurationError(f"blur radius must be an integer in [0, {MAX_BLUR_RADIUS}], got {radius!r}")
    x = np.arange(-r, r + 1, dtype=np.float32)
    return np.exp(-(x * x) / np.float32(2.0 * s * s)).astype(np.float32)


def _check_same_plane(src: DeviceBuffer, dst: DeviceBuffer, what: str) -> None:
    if src.image_shape != dst.image_shape:
        raise ConfigurationError(f"{what}: input/output shape mismatch: {src.shape} vs {dst.shape}")


def apply_gaussian_blur(
    device: Any,
    src: DeviceBuffer,
    dst: DeviceBuffer,
    *,
    sigma: float = 1.0,
    radius: int = 3,
    geometry: Optional[TileGeometry] = None,
) -> None:
    if src.channels != 3 or dst.channels != 3:
        raise ConfigurationError(f"blur takes 3-channel buffers, got {src.shape} -> {dst.shape}")
    _check_same_plane(src, dst, "blur")
    taps = gaussian_weights(sigma, radius)
    device.set_constant("c_gaussian", taps)

    batch, height, width = src.image_shape
    launch = (geometry or TileGeometry()).plan(
        width,
        height,
        batch,
        limits=device.limits,
        shared_bytes_per_thread=int(gaussian_blur_io["shared_bytes_per_thread"]),
    )
    device.launch(
        gaussian_blur_io,
        launch,
        {"d_input": src, "width": width, "height": height, "batch": batch, "radius": int(radius), "d_output": dst},
    )
    device.synchronize()


def convert_to_grayscale(
    device: Any,
    src: DeviceBuffer,
    dst: DeviceBuffer,
    *,
    geometry: Optional[TileGeometry] = None,
) -> None:
    if src.channels != 3 or dst.channels != 1:
        raise ConfigurationError(f"grayscale takes 3 -> 1 channels, got {src.shape} -> {dst.shape}")
    _check_same_plane(src, dst, "grayscale")

    batch, height, width = src.image_shape
    launch = (geometry or TileGeometry()).plan(width, height, batch, limits=device.limits)
    device.launch(
        grayscale_io,
        launch,
        {"d_input": src, "width": width, "height": height, "batch": batch, "d_output": dst},
    )
    device.synchronize()


__all__ = ["MAX_BLUR_RADIUS", "gaussian_weights", "apply_gaussian_blur", "convert_to_grayscale"]
