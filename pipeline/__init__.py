"""
Batched Sobel edge-detection pipeline.

Public entry point is `sobel_filter`; `run_sobel_batch` takes an explicit device.
"""

import logging

from .config import SobelConfig
from .sobel import run_sobel_batch, sobel_filter

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = ["SobelConfig", "run_sobel_batch", "sobel_filter"]
