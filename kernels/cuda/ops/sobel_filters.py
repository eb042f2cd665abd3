from __future__ import annotations

from pathlib import Path


SOBEL_FILTERS_CU_PATH = Path(__file__).with_name("sobel_filters.cu")

# Coefficient store is SOBEL_WIDTH x SOBEL_WIDTH, indexed from its centre.
SOBEL_WIDTH = 3


sobel_filters_io = {
    # Matches kernel parameter order.
    "arg_names": ["d_input", "width", "height", "batch", "kernel_width", "d_output"],
    "tensors": {
        "d_input": {"dtype": "u8", "rank": 3, "shape": ["B", "H", "W"]},
        "d_output": {"dtype": "u8", "rank": 3, "shape": ["B", "H", "W"]},
    },
    "scalars": {"width": "i32", "height": "i32", "batch": "i32", "kernel_width": "i32"},
    # __constant__ symbols (name -> dtype, shape)
    "constants": {
        "c_sobel_x": {"dtype": "i32", "shape": [SOBEL_WIDTH, SOBEL_WIDTH]},
        "c_sobel_y": {"dtype": "i32", "shape": [SOBEL_WIDTH, SOBEL_WIDTH]},
    },
    # One staged u8 sample per thread.
    "shared_bytes_per_thread": 1,
    "kernel_name": "apply_sobel_filters",
}


__all__ = ["SOBEL_FILTERS_CU_PATH", "SOBEL_WIDTH", "sobel_filters_io"]
