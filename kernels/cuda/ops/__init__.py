"""
Sobel pipeline kernel library (source-only).

Each op is a real `.cu` file plus a tiny Python metadata module:
- `<kernel>.cu`: CUDA kernel source (what users should edit/read)
- `<kernel>.py`: IO spec + path to the `.cu` file (used by both devices)

All kernels share one launch shape: block (bx, by, batch_slice) over a grid of
(ceil(W/bx), ceil(H/by), ceil(B/batch_slice)).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Tuple

from .gaussian_blur import GAUSSIAN_BLUR_CU_PATH, gaussian_blur_io
from .grayscale import GRAYSCALE_CU_PATH, grayscale_io
from .sobel_filters import SOBEL_FILTERS_CU_PATH, sobel_filters_io


def kernel_library() -> List[Tuple[Path, Dict[str, Any]]]:
    """
    (cu_path, io_spec) for every kernel, in pipeline order.

    The CUDA device builds these into a single translation unit so constant
    symbols and kernels live in the same module.
    """
    return [
        (GAUSSIAN_BLUR_CU_PATH, gaussian_blur_io),
        (GRAYSCALE_CU_PATH, grayscale_io),
        (SOBEL_FILTERS_CU_PATH, sobel_filters_io),
    ]


__all__ = ["kernel_library", "gaussian_blur_io", "grayscale_io", "sobel_filters_io"]
