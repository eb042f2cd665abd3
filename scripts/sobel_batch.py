"""
Run the batched Sobel pipeline over a set of same-sized images.

Example:
  python scripts/sobel_batch.py frames/*.png --out-dir edges --backend auto -v
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List

import numpy as np

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backends.errors import ConfigurationError, SobelError  # noqa: E402
from backends.registry import get_device  # noqa: E402
from pipeline.config import SobelConfig  # noqa: E402
from pipeline.sobel import run_sobel_batch  # noqa: E402


log = logging.getLogger("sobel_batch")


def _cv2():
    try:
        import cv2  # noqa: PLC0415
    except ImportError as e:
        raise SystemExit(f"opencv is required for image IO ({e}); pip install opencv-python-headless") from e
    return cv2


def load_batch(paths: List[Path]) -> np.ndarray:
    cv2 = _cv2()
    images = []
    for p in paths:
        img = cv2.imread(str(p), cv2.IMREAD_COLOR)
        if img is None:
            raise ConfigurationError(f"cannot read image {p}")
        if images and img.shape != images[0].shape:
            raise ConfigurationError(f"{p}: shape {img.shape} differs from {paths[0]}: {images[0].shape}")
        images.append(img)
    # OpenCV gives BGR (H, W, 3) uint8; stack along the batch axis.
    return np.ascontiguousarray(np.stack(images, axis=0))


def main() -> None:
    ap = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    ap.add_argument("images", nargs="+", type=Path)
    ap.add_argument("--out-dir", type=Path, required=True)
    ap.add_argument("--backend", choices=["auto", "cuda", "emulated"], default=None)
    ap.add_argument("--block", type=int, nargs=2, metavar=("X", "Y"), default=None)
    ap.add_argument("--batch-slice", type=int, default=None, help="batch images per block (default: fit to device)")
    ap.add_argument("--sigma", type=float, default=None, help="Gaussian sigma")
    ap.add_argument("--radius", type=int, default=None, help="Gaussian radius")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides = {}
    if args.backend is not None:
        overrides["backend"] = args.backend
    if args.block is not None:
        overrides["block_x"], overrides["block_y"] = args.block
    if args.batch_slice is not None:
        overrides["batch_slice"] = args.batch_slice
    if args.sigma is not None:
        overrides["blur_sigma"] = args.sigma
    if args.radius is not None:
        overrides["blur_radius"] = args.radius

    try:
        config = SobelConfig.from_env(**overrides)
        batch = load_batch(list(args.images))
        b, h, w, _ = batch.shape
        device = get_device(config.backend)
        log.info("running %d image(s) of %dx%d on %s", b, w, h, device.name)
        edges = run_sobel_batch(device, batch, w, h, b, config=config)
    except SobelError as e:
        log.error("%s: %s", type(e).__name__, e)
        raise SystemExit(1) from e

    cv2 = _cv2()
    args.out_dir.mkdir(parents=True, exist_ok=True)
    for src, img in zip(args.images, edges):
        dst = args.out_dir / f"{src.stem}_sobel.png"
        cv2.imwrite(str(dst), img)
        print(f"wrote {dst}")


if __name__ == "__main__":
    main()
