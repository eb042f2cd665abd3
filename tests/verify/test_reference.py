from __future__ import annotations

import numpy as np

from pipeline.kernel_store import SOBEL_X, SOBEL_Y
from verify.reference import grayscale_reference, image_global_gradient_magnitude, tile_local_gradient_magnitude


def test_single_tile_agrees_with_image_global():
    gray = np.random.default_rng(1).integers(0, 256, size=(2, 10, 12), dtype=np.uint8)
    np.testing.assert_array_equal(
        tile_local_gradient_magnitude(gray, SOBEL_X, SOBEL_Y, block=(16, 16)),
        image_global_gradient_magnitude(gray, SOBEL_X, SOBEL_Y),
    )


def test_two_dimensional_input_keeps_its_rank():
    gray = np.arange(20, dtype=np.uint8).reshape(4, 5)
    out = tile_local_gradient_magnitude(gray, SOBEL_X, SOBEL_Y)
    assert out.shape == (4, 5)
    assert out.dtype == np.uint8


def test_golden_centre_spike():
    img = np.array([[10, 10, 10], [10, 100, 10], [10, 10, 10]], dtype=np.uint8)
    expected = np.full((3, 3), 180, dtype=np.uint8)
    expected[1, 1] = 0
    np.testing.assert_array_equal(image_global_gradient_magnitude(img, SOBEL_X, SOBEL_Y), expected)


def test_grayscale_weights_and_truncation():
    bgr = np.array([[[0, 0, 255], [0, 255, 0], [255, 0, 0], [0, 0, 0]]], dtype=np.uint8)
    # 76.245, 149.685, 29.07 truncate toward zero.
    np.testing.assert_array_equal(grayscale_reference(bgr)[0], [76, 149, 29, 0])
