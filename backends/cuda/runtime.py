"""
CUDA device runtime.

We build the kernel library (`kernels/cuda/ops/*.cu`) into a tiny Torch CUDA
extension at runtime (torch.utils.cpp_extension.load_inline). This keeps
dependencies to only torch+nvcc (CuPy/cuda-python not required). Device buffers
are contiguous uint8 Torch CUDA tensors.

The extension exposes, per kernel, `launch_<kernel>(args..., grid, block, smem)`
and, per `__constant__` symbol, `set_<symbol>(host_tensor)`. All kernels go into
one translation unit because constant memory is module-scoped.
"""

from __future__ import annotations

import hashlib
import logging
import os
import sys
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np

from backends.device import (
    DeviceBuffer,
    DeviceLimits,
    KernelLaunch,
    bind_arguments,
    check_launch,
    constant_capacity,
    constant_values,
)
from backends.errors import AllocationError, ConfigurationError, LaunchError, SobelError, TransferError
from kernels.cuda.ops import kernel_library


log = logging.getLogger(__name__)


def _torch() -> Any:
    import torch  # noqa: PLC0415

    return torch


def _cuda_free_mem_mb() -> int:
    """
    Best-effort free CUDA memory query.

    This can fail if the CUDA context cannot be created (e.g., GPU OOM); in that
    case we return 0 so callers can surface a clearer error early.
    """
    torch = _torch()
    try:
        if not torch.cuda.is_available():
            return 0
        free, _total = torch.cuda.mem_get_info()
        return int(free // (1024 * 1024))
    except Exception:
        return 0


def _min_free_mem_mb() -> int:
    # Default to disabled. Tiny batches run fine on a mostly busy GPU.
    raw = os.getenv("SOBEL_CUDA_MIN_FREE_MB", "0")
    try:
        v = int(raw)
    except ValueError:
        raise ConfigurationError(f"SOBEL_CUDA_MIN_FREE_MB must be an integer, got {raw!r}") from None
    return max(0, v)


def _c_type(dt: str) -> str:
    s = str(dt)
    if s == "u8":
        return "uint8_t"
    if s == "u8x3":
        return "uchar3"
    if s == "i32":
        return "int"
    if s == "f32":
        return "float"
    raise SobelError(f"unsupported dtype for CUDA runtime: {dt}")


def _torch_scalar_check(dt: str) -> str:
    if dt in {"u8", "u8x3"}:
        return "at::kByte"
    if dt == "i32":
        return "at::kInt"
    if dt == "f32":
        return "at::kFloat"
    raise SobelError(f"unsupported dtype for CUDA runtime: {dt}")


def _hash_src(text: str) -> str:
    return hashlib.sha256(str(text).encode("utf-8")).hexdigest()[:16]


def _default_torch_ext_root() -> Path:
    """
    Default Torch extension build root under the repo.

    Some sandboxed environments forbid writing to `~/.cache/torch_extensions`.
    Keeping build outputs under `artifacts/` also makes runs reproducible.
    """
    root = Path(__file__).resolve().parents[2]
    py_tag = f"py{sys.version_info.major}{sys.version_info.minor}"
    return root / "artifacts" / "torch_extensions" / py_tag


def _torch_ext_build_dir(name: str) -> Path:
    base = os.getenv("SOBEL_TORCH_EXT_DIR")
    if base:
        return Path(base) / str(name)
    return _default_torch_ext_root() / str(name)


def _launch_wrapper(io_spec: Mapping[str, Any]) -> Tuple[str, str]:
    kernel_name = str(io_spec["kernel_name"])
    tensors = io_spec.get("tensors") if isinstance(io_spec.get("tensors"), dict) else {}
    scalars = io_spec.get("scalars") if isinstance(io_spec.get("scalars"), dict) else {}

    # launch() signature: tensors as torch::Tensor, scalars as int64_t.
    sig_args: List[str] = []
    call_args: List[str] = []
    checks: List[str] = []
    for name in [str(x) for x in io_spec.get("arg_names") or []]:
        if name in tensors:
            dt = str(tensors[name].get("dtype") or "u8")
            sig_args.append(f"torch::Tensor {name}")
            checks += [
                f'TORCH_CHECK({name}.is_cuda(), "{name} must be CUDA tensor");',
                f'TORCH_CHECK({name}.is_contiguous(), "{name} must be contiguous");',
                f'TORCH_CHECK({name}.scalar_type() == {_torch_scalar_check(dt)}, "{name} has wrong dtype");',
            ]
            call_args.append(f"({_c_type(dt)}*){name}.data_ptr()")
        else:
            dt = str(scalars.get(name, "i32"))
            if dt == "f32":
                sig_args.append(f"double {name}")
                call_args.append(f"(float){name}")
            else:
                sig_args.append(f"int64_t {name}")
                call_args.append(f"({_c_type(dt)}){name}")

    sig_args += [
        "int64_t grid_x",
        "int64_t grid_y",
        "int64_t grid_z",
        "int64_t block_x",
        "int64_t block_y",
        "int64_t block_z",
        "int64_t shared_mem",
    ]
    dim = "dim3((unsigned)grid_x,(unsigned)grid_y,(unsigned)grid_z)"
    bdim = "dim3((unsigned)block_x,(unsigned)block_y,(unsigned)block_z)"
    fn = f"launch_{kernel_name}"
    body = f"""
static void {fn}({", ".join(sig_args)}) {{
  {" ".join(checks)}
  cudaStream_t stream = at::cuda::getCurrentCUDAStream().stream();
  {kernel_name}<<<{dim}, {bdim}, (size_t)shared_mem, stream>>>({", ".join(call_args)});
  cudaError_t err = cudaGetLastError();
  TORCH_CHECK(err == cudaSuccess, "{kernel_name} launch failed: ", cudaGetErrorString(err));
}}
""".strip()
    return fn, body


def _constant_setter(symbol: str, desc: Mapping[str, Any]) -> Tuple[str, str]:
    dt = str(desc.get("dtype") or "i32")
    fn = f"set_{symbol}"
    body = f"""
static void {fn}(torch::Tensor src) {{
  TORCH_CHECK(!src.is_cuda(), "{symbol} source must be a host tensor");
  TORCH_CHECK(src.is_contiguous(), "{symbol} source must be contiguous");
  TORCH_CHECK(src.scalar_type() == {_torch_scalar_check(dt)}, "{symbol} source has wrong dtype");
  const size_t nbytes = (size_t)src.numel() * sizeof({_c_type(dt)});
  TORCH_CHECK(nbytes <= sizeof({symbol}), "{symbol} holds ", sizeof({symbol}), " bytes, got ", nbytes);
  cudaError_t err = cudaMemcpyToSymbol({symbol}, src.data_ptr(), nbytes);
  TORCH_CHECK(err == cudaSuccess, "cudaMemcpyToSymbol({symbol}) failed: ", cudaGetErrorString(err));
}}
""".strip()
    return fn, body


def _build_extension_src(library: Iterable[Tuple[str, Mapping[str, Any]]]) -> str:
    sources: List[str] = []
    wrappers: List[str] = []
    defs: List[str] = []
    for cuda_src, io_spec in library:
        sources.append(cuda_src)
        fn, body = _launch_wrapper(io_spec)
        wrappers.append(body)
        defs.append(f'  m.def("{fn}", &{fn}, "Launch {io_spec["kernel_name"]}");')
        consts = io_spec.get("constants") if isinstance(io_spec.get("constants"), dict) else {}
        for sym, desc in consts.items():
            fn, body = _constant_setter(str(sym), desc)
            wrappers.append(body)
            defs.append(f'  m.def("{fn}", &{fn}, "Upload __constant__ {sym}");')

    kernels_src = "\n\n".join(sources)
    wrappers_src = "\n\n".join(wrappers)
    defs_src = "\n".join(defs)
    return f"""
#include <torch/extension.h>
#include <ATen/cuda/CUDAContext.h>
#include <cuda.h>
#include <cuda_runtime.h>
#include <stdint.h>

{kernels_src}

{wrappers_src}

PYBIND11_MODULE(TORCH_EXTENSION_NAME, m) {{
{defs_src}
}}
""".lstrip()


@lru_cache(maxsize=8)
def _load_ext_cached(name: str, cuda_src: str, extra_cuda_cflags: Tuple[str, ...]) -> Any:
    torch = _torch()
    from torch.utils.cpp_extension import load_inline  # noqa: PLC0415

    # Avoid compiling fatbins for unrelated GPU architectures by default.
    # Users can still override explicitly via env var.
    if not os.getenv("TORCH_CUDA_ARCH_LIST"):
        try:
            major, minor = torch.cuda.get_device_capability()
            os.environ["TORCH_CUDA_ARCH_LIST"] = f"{major}.{minor}"
        except Exception:
            pass

    build_dir = _torch_ext_build_dir(name)
    build_dir.mkdir(parents=True, exist_ok=True)
    log.info("building CUDA kernel library %s in %s", name, build_dir)
    return load_inline(
        name=name,
        cpp_sources="",
        cuda_sources=cuda_src,
        functions=None,
        with_cuda=True,
        extra_cuda_cflags=["--std=c++17", *list(extra_cuda_cflags)],
        extra_cflags=["-std=c++17", "-O3"],
        build_directory=str(build_dir),
        verbose=False,
    )


def compile_kernel_library(extra_cuda_cflags: Optional[Iterable[str]] = None) -> Any:
    """
    Compile (or load from cache) the kernel library extension.
    """
    flags_list = ["-O3"]
    raw_fast_math = os.getenv("SOBEL_CUDA_USE_FAST_MATH", "0").strip().lower()
    if raw_fast_math in {"1", "true", "yes", "y"}:
        flags_list.append("--use_fast_math")
    for x in (extra_cuda_cflags or []):
        s = str(x).strip()
        if s:
            flags_list.append(s)
    # De-duplicate while preserving order.
    seen: set[str] = set()
    flags: Tuple[str, ...] = tuple(s for s in flags_list if not (s in seen or seen.add(s)))

    library = [(Path(p).read_text(encoding="utf-8"), io) for p, io in kernel_library()]
    full_src = _build_extension_src(library)
    h = _hash_src(full_src + "\nFLAGS:" + " ".join(flags))
    mod_name = f"sobel_cuda_{h}"
    try:
        return _load_ext_cached(mod_name, full_src, flags)
    except (RuntimeError, OSError) as e:
        raise LaunchError(f"failed to build CUDA kernel library: {type(e).__name__}: {e}") from e


def _is_oom(e: BaseException) -> bool:
    torch = _torch()
    oom_cls = getattr(torch.cuda, "OutOfMemoryError", None)
    if oom_cls is not None and isinstance(e, oom_cls):
        return True
    return "out of memory" in str(e).lower()


class CudaDevice:
    name = "cuda"

    def __init__(self, *, device_index: int = 0, extra_cuda_cflags: Optional[Iterable[str]] = None) -> None:
        torch = _torch()
        if not torch.cuda.is_available():
            raise LaunchError("torch.cuda is not available; cannot use the CUDA device")
        self.device = torch.device("cuda", int(device_index))
        self.limits = self._query_limits()
        self._ext = compile_kernel_library(extra_cuda_cflags)
        self._live: Dict[int, DeviceBuffer] = {}
        self._capacity = constant_capacity([io for _path, io in kernel_library()])

    def _query_limits(self) -> DeviceLimits:
        torch = _torch()
        props = torch.cuda.get_device_properties(self.device)
        defaults = DeviceLimits()
        # Attribute names vary across torch releases; fall back to CUDA defaults.
        return DeviceLimits(
            max_threads_per_block=int(getattr(props, "max_threads_per_block", defaults.max_threads_per_block)),
            max_block_dim=defaults.max_block_dim,
            max_grid_dim=defaults.max_grid_dim,
            max_shared_mem_per_block=int(
                getattr(props, "shared_memory_per_block", defaults.max_shared_mem_per_block)
            ),
            constant_mem_bytes=defaults.constant_mem_bytes,
        )

    @property
    def live_buffers(self) -> List[DeviceBuffer]:
        return list(self._live.values())

    def allocate(self, name: str, shape: Tuple[int, ...]) -> DeviceBuffer:
        torch = _torch()
        shape = tuple(int(d) for d in shape)
        min_free = _min_free_mem_mb()
        if min_free > 0:
            free_mb = _cuda_free_mem_mb()
            if free_mb < min_free:
                raise AllocationError(
                    f"CUDA free memory too low ({free_mb} MiB < {min_free} MiB) allocating {name}. "
                    "Free GPU memory or set SOBEL_CUDA_MIN_FREE_MB=0 to bypass."
                )
        try:
            t = torch.empty(shape, dtype=torch.uint8, device=self.device)
        except RuntimeError as e:
            what = "CUDA OOM" if _is_oom(e) else "CUDA allocation failed"
            raise AllocationError(f"{what} allocating {name} {shape}: {e}") from e
        buf = DeviceBuffer(name=name, shape=shape, handle=t, device=self.name)
        self._live[id(buf)] = buf
        return buf

    def release(self, buf: DeviceBuffer) -> None:
        if buf.released or id(buf) not in self._live:
            raise SobelError(f"release of buffer {buf.name} that is not live on {self.name}")
        del self._live[id(buf)]
        buf.released = True
        # Dropping the last reference returns the block to Torch's caching allocator.
        buf.handle = None

    def _check_live(self, buf: DeviceBuffer) -> None:
        if buf.released or id(buf) not in self._live:
            raise TransferError(f"buffer {buf.name} is not live on {self.name}")

    def upload(self, buf: DeviceBuffer, host: np.ndarray) -> None:
        torch = _torch()
        self._check_live(buf)
        src = np.ascontiguousarray(host)
        if src.nbytes != buf.nbytes:
            raise TransferError(f"host->device {buf.name}: expected {buf.nbytes} B, got {src.nbytes} B")
        try:
            flat = torch.from_numpy(src.reshape(-1).view(np.uint8))
            buf.handle.view(-1).copy_(flat)
        except RuntimeError as e:
            raise TransferError(f"host->device {buf.name} failed: {e}") from e

    def download(self, buf: DeviceBuffer, out: np.ndarray | None = None) -> np.ndarray:
        self._check_live(buf)
        try:
            host = buf.handle.detach().cpu().numpy()
        except RuntimeError as e:
            raise TransferError(f"device->host {buf.name} failed: {e}") from e
        if out is None:
            return host
        if out.nbytes != buf.nbytes or not out.flags.c_contiguous:
            raise TransferError(
                f"device->host {buf.name}: destination must be contiguous {buf.nbytes} B, got {out.nbytes} B"
            )
        np.copyto(out.reshape(-1).view(np.uint8), host.reshape(-1))
        return out

    def set_constant(self, symbol: str, values: np.ndarray) -> None:
        torch = _torch()
        arr = constant_values(symbol, values, self._capacity)
        try:
            getattr(self._ext, f"set_{symbol}")(torch.from_numpy(arr))
        except RuntimeError as e:
            raise TransferError(f"constant upload {symbol} failed: {e}") from e

    def launch(self, kernel_io: Mapping[str, Any], launch: KernelLaunch, bindings: Mapping[str, Any]) -> None:
        kernel_name = str(kernel_io.get("kernel_name") or "")
        check_launch(launch, self.limits, kernel_name=kernel_name)
        args: List[Any] = []
        for a in bind_arguments(kernel_io, bindings):
            if isinstance(a, DeviceBuffer):
                self._check_live(a)
                args.append(a.handle)
            else:
                args.append(a)
        gx, gy, gz = (int(x) for x in launch.grid)
        bx, by, bz = (int(x) for x in launch.block)
        args += [gx, gy, gz, bx, by, bz, int(launch.shared_mem)]
        try:
            getattr(self._ext, f"launch_{kernel_name}")(*args)
        except RuntimeError as e:
            raise LaunchError(f"CUDA kernel launch failed: {type(e).__name__}: {e}") from e

    def synchronize(self) -> None:
        torch = _torch()
        try:
            torch.cuda.synchronize(self.device)
        except RuntimeError as e:
            # Asynchronous kernel faults surface here.
            raise LaunchError(f"CUDA device synchronize failed: {e}") from e


def cuda_available() -> bool:
    try:
        torch = _torch()
        return bool(torch.cuda.is_available())
    except Exception:
        return False


__all__ = ["CudaDevice", "compile_kernel_library", "cuda_available"]
