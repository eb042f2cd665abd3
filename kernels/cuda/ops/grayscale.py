from __future__ import annotations

from pathlib import Path


GRAYSCALE_CU_PATH = Path(__file__).with_name("grayscale.cu")


grayscale_io = {
    "arg_names": ["d_input", "width", "height", "batch", "d_output"],
    "tensors": {
        "d_input": {"dtype": "u8x3", "rank": 4, "shape": ["B", "H", "W", 3]},
        "d_output": {"dtype": "u8", "rank": 3, "shape": ["B", "H", "W"]},
    },
    "scalars": {"width": "i32", "height": "i32", "batch": "i32"},
    "shared_bytes_per_thread": 0,
    "kernel_name": "convert_to_grayscale",
}


__all__ = ["GRAYSCALE_CU_PATH", "grayscale_io"]
