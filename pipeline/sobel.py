"""
Batch pipeline orchestrator.

    raw (B,H,W,3) --blur--> blurred (B,H,W,3) --gray--> gray (B,H,W) --sobel--> out (B,H,W)

Every stage is a blocking boundary. The four device buffers are acquired on an
ExitStack, so whatever has been acquired is released exactly once on every exit
path (success, allocation failure, transfer or launch failure).
"""

from __future__ import annotations

import contextlib
import logging
import time
from typing import Any, Iterator, Optional

import numpy as np

from backends.device import DeviceBuffer
from backends.errors import ConfigurationError
from backends.registry import get_device
from pipeline.config import SobelConfig
from pipeline.gradient import check_kernel_width, compute_gradient_magnitude
from pipeline.kernel_store import SOBEL_X, SOBEL_Y, DirectionalKernelStore
from pipeline.stages import apply_gaussian_blur, convert_to_grayscale, gaussian_weights


log = logging.getLogger(__name__)


@contextlib.contextmanager
def _stage(name: str) -> Iterator[None]:
    t0 = time.perf_counter()
    yield
    log.debug("stage %s: %.3f ms", name, (time.perf_counter() - t0) * 1e3)


def _acquire(stack: contextlib.ExitStack, device: Any, name: str, shape: tuple) -> DeviceBuffer:
    buf = device.allocate(name, shape)
    stack.callback(device.release, buf)
    return buf


def _check_request(
    host_input: np.ndarray,
    width: int,
    height: int,
    batch_size: int,
    out: Optional[np.ndarray],
    config: SobelConfig,
) -> None:
    for label, v in (("width", width), ("height", height), ("batch_size", batch_size)):
        if not isinstance(v, (int, np.integer)) or isinstance(v, bool) or v < 1:
            raise ConfigurationError(f"{label} must be an integer >= 1, got {v!r}")
    arr = np.asarray(host_input)
    if arr.dtype != np.uint8:
        raise ConfigurationError(f"input must be uint8, got {arr.dtype}")
    if arr.ndim == 4 and arr.shape != (batch_size, height, width, 3):
        raise ConfigurationError(f"input shape {arr.shape} does not match ({batch_size}, {height}, {width}, 3)")
    if out is not None and (
        out.dtype != np.uint8 or out.shape != (batch_size, height, width) or not out.flags.c_contiguous
    ):
        raise ConfigurationError(f"out must be C-contiguous uint8 of shape ({batch_size}, {height}, {width}), got {out.dtype} {out.shape}")
    # Fail on bad parameters before touching the device.
    check_kernel_width(config.kernel_width)
    gaussian_weights(config.blur_sigma, config.blur_radius)
    config.geometry()


def run_sobel_batch(
    device: Any,
    host_input: np.ndarray,
    width: int,
    height: int,
    batch_size: int,
    *,
    config: Optional[SobelConfig] = None,
    out: Optional[np.ndarray] = None,
    kernel_x: Any = SOBEL_X,
    kernel_y: Any = SOBEL_Y,
) -> np.ndarray:
    """
    Run blur -> grayscale -> gradient magnitude on `device`.

    `host_input` is a (B, H, W, 3) uint8 BGR batch or a flat buffer of the same
    byte size. Returns the (B, H, W) uint8 magnitudes, written into `out` when
    given.
    """
    config = config or SobelConfig()
    _check_request(host_input, width, height, batch_size, out, config)
    geometry = config.geometry()
    b, h, w = int(batch_size), int(height), int(width)

    with contextlib.ExitStack() as stack:
        d_input = _acquire(stack, device, "input", (b, h, w, 3))
        d_blurred = _acquire(stack, device, "blurred", (b, h, w, 3))
        d_gray = _acquire(stack, device, "grayscale", (b, h, w))
        d_output = _acquire(stack, device, "output", (b, h, w))

        with _stage("upload"):
            device.upload(d_input, np.asarray(host_input))
        with _stage("gaussian_blur"):
            apply_gaussian_blur(
                device, d_input, d_blurred, sigma=config.blur_sigma, radius=config.blur_radius, geometry=geometry
            )
        with _stage("grayscale"):
            convert_to_grayscale(device, d_blurred, d_gray, geometry=geometry)
        with _stage("sobel"):
            store = DirectionalKernelStore(device)
            store.configure(kernel_x, kernel_y)
            compute_gradient_magnitude(
                device, d_gray, d_output, store=store, kernel_width=config.kernel_width, geometry=geometry
            )
        with _stage("download"):
            result = device.download(d_output, out)
    return result


def sobel_filter(
    host_input: np.ndarray,
    width: int,
    height: int,
    batch_size: int,
    *,
    device: Any = None,
    config: Optional[SobelConfig] = None,
    out: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Pipeline entry point: (B, H, W, 3) uint8 BGR batch -> (B, H, W) uint8 edges.

    Synchronous; the device is resolved from `config.backend` when not given.
    """
    config = config or SobelConfig.from_env()
    if device is None:
        device = get_device(config.backend)
        log.info("sobel_filter on %s device", device.name)
    return run_sobel_batch(device, host_input, width, height, batch_size, config=config, out=out)


__all__ = ["run_sobel_batch", "sobel_filter"]
