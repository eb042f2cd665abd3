from __future__ import annotations

import numpy as np
import pytest

from backends.device import KernelLaunch
from backends.emulated.simt import SYNC, Dim3, GroupBarrier, run_block, run_grid
from backends.errors import LaunchError


def _run_one_block(kernel, block, args, *, shared_bytes=0):
    return run_block(
        kernel,
        block_idx=Dim3(0, 0, 0),
        block_dim=Dim3(*block),
        grid_dim=Dim3(1, 1, 1),
        shared_mem=np.zeros(shared_bytes, dtype=np.uint8),
        const={},
        args=args,
    )


def test_group_barrier_counts_arrivals_and_generations():
    b = GroupBarrier(3)
    assert b.arrive() is False
    assert b.arrive() is False
    assert b.arrive() is True
    b.release()
    assert b.generation == 1
    assert b.count == 0


def test_group_barrier_rejects_early_release():
    b = GroupBarrier(2)
    b.arrive()
    with pytest.raises(LaunchError):
        b.release()


def test_shared_writes_are_visible_to_siblings_after_barrier():
    def reverse(t, out):
        s = t.shared(np.int32)
        n = t.block_dim.x
        s[t.thread_idx.x] = t.thread_idx.x * 10
        yield SYNC
        out[t.thread_idx.x] = s[n - 1 - t.thread_idx.x]

    out = np.zeros(8, dtype=np.int32)
    crossed = _run_one_block(reverse, (8, 1, 1), [out], shared_bytes=8 * 4)
    assert crossed == 1
    np.testing.assert_array_equal(out, np.arange(8)[::-1] * 10)


def test_divergent_barrier_is_a_launch_error():
    def divergent(t):
        if t.thread_idx.x == 0:
            return
        yield SYNC

    with pytest.raises(LaunchError, match="divergent"):
        _run_one_block(divergent, (4, 1, 1), [])


def test_barrier_free_kernel_runs_every_thread():
    def fill(t, out):
        out[t.thread_idx.z, t.thread_idx.y, t.thread_idx.x] = 1

    out = np.zeros((2, 3, 4), dtype=np.uint8)
    assert _run_one_block(fill, (4, 3, 2), [out]) == 0
    assert int(out.sum()) == 24


def test_out_of_bounds_access_becomes_launch_error():
    def oob(t, buf):
        buf[t.block_idx.x * t.block_dim.x + t.thread_idx.x] = 1

    buf = np.zeros(4, dtype=np.uint8)
    with pytest.raises(LaunchError, match="illegal memory access"):
        run_grid(oob, KernelLaunch(grid=(2, 1, 1), block=(4, 1, 1)), [buf], const={}, rng=np.random.default_rng(0))


def test_shared_memory_starts_uninitialised():
    seen = []

    def peek(t):
        seen.append(bytes(t.shared(np.uint8)))
        yield SYNC

    run_grid(peek, KernelLaunch(grid=(2, 1, 1), block=(1, 1, 1), shared_mem=32), [], const={}, rng=np.random.default_rng(1))
    assert len(seen) == 2
    assert seen[0] != seen[1]
