from __future__ import annotations

from pathlib import Path


GAUSSIAN_BLUR_CU_PATH = Path(__file__).with_name("gaussian_blur.cu")

GAUSSIAN_MAX_TAPS = 64


gaussian_blur_io = {
    "arg_names": ["d_input", "width", "height", "batch", "radius", "d_output"],
    "tensors": {
        "d_input": {"dtype": "u8x3", "rank": 4, "shape": ["B", "H", "W", 3]},
        "d_output": {"dtype": "u8x3", "rank": 4, "shape": ["B", "H", "W", 3]},
    },
    "scalars": {"width": "i32", "height": "i32", "batch": "i32", "radius": "i32"},
    "constants": {
        "c_gaussian": {"dtype": "f32", "shape": [GAUSSIAN_MAX_TAPS]},
    },
    # float3 per thread.
    "shared_bytes_per_thread": 12,
    "kernel_name": "apply_gaussian_filter",
}


__all__ = ["GAUSSIAN_BLUR_CU_PATH", "GAUSSIAN_MAX_TAPS", "gaussian_blur_io"]
