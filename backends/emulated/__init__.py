"""
CPU SIMT emulator device.

Runs the kernel library one block at a time with explicit block barriers, for
testing and for hosts without CUDA.
"""

from .device import EmulatedDevice
from .simt import SYNC, GroupBarrier, ThreadContext

__all__ = ["EmulatedDevice", "GroupBarrier", "SYNC", "ThreadContext"]
