"""
Device registry (device name -> factory).

A simple in-process dict with lazy imports, so the emulator works on hosts
without torch. `auto` picks CUDA when torch sees a GPU and nvcc is on PATH.
"""

from __future__ import annotations

import importlib
import logging
import shutil
from typing import Any, Callable, Dict

from backends.errors import ConfigurationError


log = logging.getLogger(__name__)

DeviceFactory = Callable[[], Any]

_REGISTRY: Dict[str, DeviceFactory] = {}

_LAZY = {
    "cuda": ("backends.cuda.runtime", "CudaDevice"),
    "emulated": ("backends.emulated.device", "EmulatedDevice"),
}


def register(name: str, factory: DeviceFactory) -> None:
    _REGISTRY[str(name)] = factory


def _cuda_usable() -> bool:
    if shutil.which("nvcc") is None:
        return False
    try:
        from backends.cuda.runtime import cuda_available  # noqa: PLC0415
    except ImportError:
        return False
    return cuda_available()


def resolve_backend(name: str) -> str:
    s = str(name or "auto").strip().lower()
    if s == "auto":
        s = "cuda" if _cuda_usable() else "emulated"
        log.debug("auto-selected %s device", s)
    if s not in _REGISTRY and s not in _LAZY:
        raise ConfigurationError(f"unknown backend {name!r}; expected one of auto, {', '.join(sorted({*_REGISTRY, *_LAZY}))}")
    return s


def get_device(name: str = "auto") -> Any:
    s = resolve_backend(name)
    if s not in _REGISTRY:
        mod_name, cls_name = _LAZY[s]
        cls = getattr(importlib.import_module(mod_name), cls_name)
        register(s, cls)
    return _REGISTRY[s]()


__all__ = ["register", "resolve_backend", "get_device"]
