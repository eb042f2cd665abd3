from __future__ import annotations

import numpy as np
import pytest

from backends.emulated import EmulatedDevice
from backends.errors import ConfigurationError
from pipeline.geometry import TileGeometry
from pipeline.stages import MAX_BLUR_RADIUS, apply_gaussian_blur, convert_to_grayscale, gaussian_weights
from verify.reference import grayscale_reference


def test_gaussian_weights_shape_and_symmetry():
    w = gaussian_weights(1.0, 3)
    assert w.dtype == np.float32
    assert w.shape == (7,)
    assert w[3] == np.float32(1.0)
    np.testing.assert_array_equal(w, w[::-1])
    assert np.all(np.diff(w[3:]) < 0)


@pytest.mark.parametrize(
    "sigma,radius",
    [(0.0, 3), (-1.0, 3), (float("nan"), 3), (1.0, -1), (1.0, MAX_BLUR_RADIUS + 1), (1.0, 1.5), ("x", 3)],
)
def test_gaussian_weights_rejects_bad_parameters(sigma, radius):
    with pytest.raises(ConfigurationError):
        gaussian_weights(sigma, radius)


def _run_blur(rgb, *, sigma=1.0, radius=3, block=(8, 8)):
    dev = EmulatedDevice()
    src = dev.allocate("src", rgb.shape)
    dst = dev.allocate("dst", rgb.shape)
    dev.upload(src, rgb)
    apply_gaussian_blur(dev, src, dst, sigma=sigma, radius=radius, geometry=TileGeometry(*block))
    return dev.download(dst)


def test_radius_zero_blur_is_identity():
    rgb = np.random.default_rng(0).integers(0, 256, size=(2, 5, 9, 3), dtype=np.uint8)
    np.testing.assert_array_equal(_run_blur(rgb, radius=0), rgb)


def test_blur_of_constant_image_stays_constant():
    rgb = np.full((1, 10, 10, 3), 200, dtype=np.uint8)
    got = _run_blur(rgb, radius=2, block=(4, 4)).astype(np.int32)
    # Renormalised taps keep a flat field flat up to float rounding.
    assert np.all(np.abs(got - 200) <= 1)


def test_blur_of_zero_is_zero():
    assert not _run_blur(np.zeros((2, 7, 6, 3), dtype=np.uint8)).any()


def test_blur_rejects_single_channel_buffers():
    dev = EmulatedDevice()
    src = dev.allocate("src", (1, 4, 4))
    dst = dev.allocate("dst", (1, 4, 4))
    with pytest.raises(ConfigurationError, match="3-channel"):
        apply_gaussian_blur(dev, src, dst)
    assert dev.launch_count == 0


def test_grayscale_matches_reference_exactly():
    bgr = np.random.default_rng(4).integers(0, 256, size=(3, 6, 11, 3), dtype=np.uint8)
    dev = EmulatedDevice()
    src = dev.allocate("src", bgr.shape)
    dst = dev.allocate("dst", bgr.shape[:3])
    dev.upload(src, bgr)
    convert_to_grayscale(dev, src, dst, geometry=TileGeometry(4, 4))
    np.testing.assert_array_equal(dev.download(dst), grayscale_reference(bgr))


def test_grayscale_uses_bgr_channel_order():
    bgr = np.zeros((1, 1, 1, 3), dtype=np.uint8)
    bgr[..., 2] = 100  # red
    dev = EmulatedDevice()
    src = dev.allocate("src", bgr.shape)
    dst = dev.allocate("dst", (1, 1, 1))
    dev.upload(src, bgr)
    convert_to_grayscale(dev, src, dst)
    assert int(dev.download(dst)[0, 0, 0]) == 29


def test_grayscale_shape_mismatch():
    dev = EmulatedDevice()
    src = dev.allocate("src", (1, 4, 4, 3))
    dst = dev.allocate("dst", (1, 4, 5))
    with pytest.raises(ConfigurationError, match="mismatch"):
        convert_to_grayscale(dev, src, dst)
