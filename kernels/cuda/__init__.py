"""
CUDA kernel library (source-only).

These kernels are plain CUDA C++ sources used by both devices:
- built into a Torch CUDA extension by `backends/cuda/runtime.py`
- mirrored line-for-line by the SIMT emulator in `backends/emulated/kernels.py`

In `kernels/cuda/ops/`, kernel sources live as real `.cu` files.
"""
