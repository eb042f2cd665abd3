from __future__ import annotations

from verify.gen_cases import EDGE_VALUES, generate_image_cases


def test_cases_are_deterministic_and_unique():
    a = generate_image_cases(limit=20, seed=5)
    b = generate_image_cases(limit=20, seed=5)
    assert [c.dims for c in a] == [c.dims for c in b]
    assert len({c.dims for c in a}) == len(a) == 20


def test_head_cases_straddle_the_tile():
    dims = [c.dims for c in generate_image_cases(block=(8, 4), batches=(1,), limit=4)]
    assert dims == [(1, 3, 7), (1, 4, 8), (1, 5, 9), (1, 9, 17)]


def test_sizes_cover_tiny_images():
    cases = generate_image_cases(block=(4, 4), limit=1000)
    widths = {c.dims[2] for c in cases}
    assert set(EDGE_VALUES) <= widths


def test_batches_are_seeded_per_case():
    c = generate_image_cases(limit=1)[0]
    assert (c.gray_batch() == c.gray_batch()).all()
    assert c.bgr_batch().shape == (*c.dims, 3)
