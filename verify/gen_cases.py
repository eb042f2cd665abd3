"""
Case generation for the batched image kernels.

Sizes are chosen around the block extents (tile-1, tile, tile+1, 2*tile+1) so
cases exercise partial tiles, exact tiles and interior tile seams, plus tiny
images {1, 2, 3}.
"""

from __future__ import annotations

import itertools
import random
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

import numpy as np


@dataclass
class TestCase:
    shapes: Dict[str, int]
    seed: int = 0
    __test__ = False  # prevent pytest from treating this as a test container

    @property
    def dims(self) -> Tuple[int, int, int]:
        return (int(self.shapes["B"]), int(self.shapes["H"]), int(self.shapes["W"]))

    def gray_batch(self, *, low: int = 0, high: int = 256) -> np.ndarray:
        rng = np.random.default_rng(self.seed)
        return rng.integers(low, high, size=self.dims, dtype=np.uint8)

    def bgr_batch(self, *, low: int = 0, high: int = 256) -> np.ndarray:
        rng = np.random.default_rng(self.seed)
        return rng.integers(low, high, size=(*self.dims, 3), dtype=np.uint8)


EDGE_VALUES = [1, 2, 3]


def _tile_sizes(tile: int) -> List[int]:
    t = int(tile)
    return sorted({v for v in (t - 1, t, t + 1, 2 * t + 1) if v >= 1})


def generate_image_cases(
    *,
    block: Tuple[int, int] = (16, 16),
    batches: Sequence[int] = (1, 3),
    limit: int = 12,
    seed: int = 0,
) -> List[TestCase]:
    """
    Deterministic (B, H, W) cases, diversity-ordered and truncated to `limit`.

    The first cases pair tile-boundary widths with tile-boundary heights; the
    rest are a shuffled Cartesian product.
    """
    bx, by = int(block[0]), int(block[1])
    widths = sorted({*EDGE_VALUES, *_tile_sizes(bx)})
    heights = sorted({*EDGE_VALUES, *_tile_sizes(by)})

    head: List[Tuple[int, int, int]] = []
    for w, h in zip(_tile_sizes(bx), _tile_sizes(by)):
        for b in batches:
            head.append((int(b), h, w))

    rest = [(int(b), h, w) for b, h, w in itertools.product(batches, heights, widths)]
    random.Random(seed).shuffle(rest)

    out: List[TestCase] = []
    seen = set()
    for i, (b, h, w) in enumerate([*head, *rest]):
        if (b, h, w) in seen:
            continue
        seen.add((b, h, w))
        out.append(TestCase(shapes={"B": b, "H": h, "W": w}, seed=seed + i))
        if len(out) >= limit:
            break
    return out


__all__ = ["TestCase", "EDGE_VALUES", "generate_image_cases"]
