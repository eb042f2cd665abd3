"""
CUDA device.

Runs the kernel library on NVIDIA GPUs through a runtime-built Torch extension.
"""

from .runtime import CudaDevice, compile_kernel_library, cuda_available  # noqa: F401

__all__ = ["CudaDevice", "compile_kernel_library", "cuda_available"]
