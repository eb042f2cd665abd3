from __future__ import annotations

import shutil

import numpy as np
import pytest

try:
    import torch
except Exception:
    torch = None

from backends.emulated import EmulatedDevice
from pipeline import SobelConfig, run_sobel_batch
from pipeline.geometry import TileGeometry
from pipeline.gradient import compute_gradient_magnitude
from pipeline.kernel_store import DirectionalKernelStore
from verify.gen_cases import generate_image_cases


def _cuda_available() -> bool:
    if torch is None:
        return False
    try:
        return bool(torch.cuda.is_available())
    except Exception:
        return False


requires_cuda = [
    pytest.mark.skipif(not _cuda_available(), reason="CUDA not available"),
    pytest.mark.skipif(shutil.which("nvcc") is None, reason="nvcc not available (torch extension build)"),
]


@pytest.fixture(scope="module")
def cuda_device():
    from backends.cuda.runtime import CudaDevice

    return CudaDevice()


@requires_cuda[0]
@requires_cuda[1]
def test_cuda_pipeline_matches_emulator(cuda_device):
    cfg = SobelConfig(block_x=8, block_y=8, blur_radius=2)
    for case in generate_image_cases(block=(8, 8), limit=6, seed=2):
        b, h, w = case.dims
        x = case.bgr_batch()
        got = run_sobel_batch(cuda_device, x, w, h, b, config=cfg)
        ref = run_sobel_batch(EmulatedDevice(), x, w, h, b, config=cfg)
        # nvcc may contract the float32 blur and grayscale math into FMAs, so
        # each stage can move a gray level by one; the gradient scales by <= 8.
        diff = np.abs(got.astype(np.int32) - ref.astype(np.int32))
        assert diff.max() <= 16, f"case {case.dims}: max diff {diff.max()}"


@requires_cuda[0]
@requires_cuda[1]
def test_cuda_gradient_matches_emulator_exactly(cuda_device):
    def gradient(dev, gray):
        inp = dev.allocate("gray", gray.shape)
        out = dev.allocate("out", gray.shape)
        try:
            dev.upload(inp, gray)
            store = DirectionalKernelStore(dev)
            store.configure()
            compute_gradient_magnitude(dev, inp, out, store=store, geometry=TileGeometry(16, 16))
            return dev.download(out)
        finally:
            dev.release(inp)
            dev.release(out)

    for case in generate_image_cases(limit=4, seed=4):
        gray = case.gray_batch()
        np.testing.assert_array_equal(gradient(cuda_device, gray), gradient(EmulatedDevice(), gray))


@requires_cuda[0]
@requires_cuda[1]
def test_cuda_zero_input(cuda_device):
    x = np.zeros((3, 17, 33, 3), dtype=np.uint8)
    got = run_sobel_batch(cuda_device, x, 33, 17, 3, config=SobelConfig())
    assert not got.any()
