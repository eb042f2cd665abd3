from __future__ import annotations

import pytest

from backends import registry
from backends.device import DeviceLimits
from backends.emulated import EmulatedDevice
from backends.errors import ConfigurationError
from pipeline.config import SobelConfig
from pipeline.geometry import TileGeometry


_ENV = [
    "SOBEL_BACKEND",
    "SOBEL_BLOCK_X",
    "SOBEL_BLOCK_Y",
    "SOBEL_BATCH_SLICE",
    "SOBEL_BLUR_SIGMA",
    "SOBEL_BLUR_RADIUS",
    "SOBEL_KERNEL_WIDTH",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    cfg = SobelConfig.from_env()
    assert cfg == SobelConfig()
    assert (cfg.block_x, cfg.block_y, cfg.batch_slice) == (16, 16, None)
    assert cfg.kernel_width == 3


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("SOBEL_BACKEND", "emulated")
    monkeypatch.setenv("SOBEL_BLOCK_X", "32")
    monkeypatch.setenv("SOBEL_BLOCK_Y", "8")
    monkeypatch.setenv("SOBEL_BATCH_SLICE", "2")
    monkeypatch.setenv("SOBEL_BLUR_SIGMA", "1.5")
    monkeypatch.setenv("SOBEL_BLUR_RADIUS", " ")
    cfg = SobelConfig.from_env()
    assert cfg.backend == "emulated"
    assert cfg.geometry() == TileGeometry(32, 8, 2)
    assert cfg.blur_sigma == 1.5
    assert cfg.blur_radius == 3


def test_keyword_overrides_win_over_environment(monkeypatch):
    monkeypatch.setenv("SOBEL_BLOCK_X", "32")
    assert SobelConfig.from_env(block_x=4).block_x == 4


@pytest.mark.parametrize("name,value", [("SOBEL_BLOCK_X", "wide"), ("SOBEL_BLUR_SIGMA", "soft"), ("SOBEL_KERNEL_WIDTH", "3.0")])
def test_malformed_environment_values(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigurationError, match=name):
        SobelConfig.from_env()


def test_geometry_rejects_bad_dims():
    with pytest.raises(ConfigurationError):
        TileGeometry(0, 16)
    with pytest.raises(ConfigurationError):
        TileGeometry(16, 16, 0)


def test_auto_batch_slice_fits_thread_limit():
    limits = DeviceLimits()
    g = TileGeometry(16, 16)
    assert g.slice_for(1, limits) == 1
    assert g.slice_for(3, limits) == 3
    assert g.slice_for(100, limits) == 4
    assert TileGeometry(32, 32).slice_for(5, limits) == 1


def test_plan_covers_partial_tiles():
    launch = TileGeometry(16, 16).plan(33, 16, 10, limits=DeviceLimits(), shared_bytes_per_thread=1)
    assert launch.block == (16, 16, 4)
    assert launch.grid == (3, 1, 3)
    assert launch.shared_mem == 16 * 16 * 4


def test_resolve_known_and_unknown_backends():
    assert registry.resolve_backend("emulated") == "emulated"
    assert registry.resolve_backend(" CUDA ") == "cuda"
    with pytest.raises(ConfigurationError, match="unknown backend"):
        registry.resolve_backend("opencl")


def test_auto_falls_back_to_emulator_without_nvcc(monkeypatch):
    monkeypatch.setattr(registry.shutil, "which", lambda _name: None)
    assert registry.resolve_backend("auto") == "emulated"
    assert isinstance(registry.get_device("auto"), EmulatedDevice)
