from __future__ import annotations

import numpy as np
import pytest

from backends.emulated import EmulatedDevice
from backends.errors import ConfigurationError, TransferError
from pipeline.kernel_store import SOBEL_X, SOBEL_Y, DirectionalKernelStore


def test_configure_uploads_both_kernels():
    dev = EmulatedDevice()
    store = DirectionalKernelStore(dev)
    assert not store.configured
    store.configure()
    assert store.configured
    np.testing.assert_array_equal(dev.constant("c_sobel_x"), SOBEL_X.reshape(-1))
    np.testing.assert_array_equal(dev.constant("c_sobel_y"), SOBEL_Y.reshape(-1))


def test_store_is_write_once():
    dev = EmulatedDevice()
    store = DirectionalKernelStore(dev)
    store.configure()
    with pytest.raises(ConfigurationError, match="write-once"):
        store.configure(SOBEL_Y, SOBEL_X)
    # The first configuration is still in effect.
    np.testing.assert_array_equal(dev.constant("c_sobel_x"), SOBEL_X.reshape(-1))


def test_kernels_before_configure_raise():
    with pytest.raises(ConfigurationError):
        _ = DirectionalKernelStore(EmulatedDevice()).kernels


def test_stored_kernels_are_read_only_copies():
    src = SOBEL_X.copy()
    store = DirectionalKernelStore(EmulatedDevice())
    store.configure(src, SOBEL_Y)
    src[0, 0] = 99
    kx, _ = store.kernels
    assert kx[0, 0] == -1
    with pytest.raises(ValueError):
        kx[0, 0] = 5


@pytest.mark.parametrize(
    "bad",
    [
        np.zeros((5, 5), dtype=np.int32),
        np.zeros((3,), dtype=np.int32),
        np.full((3, 3), 0.5),
    ],
    ids=["5x5", "flat", "fractional"],
)
def test_malformed_kernels_rejected(bad):
    dev = EmulatedDevice()
    store = DirectionalKernelStore(dev)
    with pytest.raises(ConfigurationError):
        store.configure(bad, SOBEL_Y)
    assert not store.configured
    assert dev.constant("c_sobel_x") is None


def test_integral_float_kernels_accepted():
    store = DirectionalKernelStore(EmulatedDevice())
    store.configure(SOBEL_X.astype(np.float64), SOBEL_Y.tolist())
    kx, ky = store.kernels
    assert kx.dtype == np.int32 and ky.dtype == np.int32
    np.testing.assert_array_equal(ky, SOBEL_Y)


class _RejectingDevice(EmulatedDevice):
    def set_constant(self, symbol, values) -> None:
        raise TransferError(f"cudaMemcpyToSymbol({symbol}) failed")


def test_failed_constant_copy_leaves_store_unconfigured():
    store = DirectionalKernelStore(_RejectingDevice())
    with pytest.raises(TransferError):
        store.configure()
    assert not store.configured
