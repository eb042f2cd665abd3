"""
Report which Sobel devices can run on this host.

The emulated device needs numpy only. The CUDA device also needs torch with a
visible GPU and nvcc, since the kernel library is compiled on first use.
Exits non-zero when the emulator is unusable, or with --strict when the CUDA
device is.
"""

from __future__ import annotations

import argparse
import importlib
import shutil
import subprocess
import sys
from pathlib import Path
from typing import List, Tuple

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


Row = Tuple[str, bool, str]


def _module(name: str) -> Row:
    try:
        mod = importlib.import_module(name)
    except ImportError as e:
        return (name, False, str(e))
    return (name, True, str(getattr(mod, "__version__", "ok")))


def _nvcc() -> Row:
    path = shutil.which("nvcc")
    if path is None:
        return ("nvcc", False, "not on PATH")
    out = subprocess.run([path, "--version"], capture_output=True, text=True)
    lines = (out.stdout or "").strip().splitlines()
    return ("nvcc", out.returncode == 0, lines[-1] if lines else f"rc={out.returncode}")


def _gpu() -> Row:
    from backends.cuda.runtime import cuda_available  # noqa: PLC0415

    if not cuda_available():
        return ("gpu", False, "torch.cuda.is_available() is False")
    import torch  # noqa: PLC0415

    props = torch.cuda.get_device_properties(0)
    return ("gpu", True, f"{props.name} (sm_{props.major}{props.minor}, {props.total_memory >> 20} MiB)")


def emulated_rows() -> List[Row]:
    return [_module("numpy"), _module("pytest")]


def cuda_rows() -> List[Row]:
    rows = [_module("torch")]
    if rows[0][1]:
        rows.append(_gpu())
    rows.append(_nvcc())
    return rows


def main() -> None:
    ap = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    ap.add_argument("--strict", action="store_true", help="fail unless the CUDA device is usable")
    args = ap.parse_args()

    print(f"python {sys.version.split()[0]}")
    sections = [("emulated", emulated_rows()), ("cuda", cuda_rows()), ("cli", [_module("cv2")])]
    usable = {}
    for device, rows in sections:
        usable[device] = all(ok for _name, ok, _detail in rows)
        print(f"{device}: {'usable' if usable[device] else 'unavailable'}")
        for name, ok, detail in rows:
            print(f"  [{'OK' if ok else 'FAIL'}] {name}: {detail}")
    if not usable["cli"]:
        print("  hint: pip install -e .[io] for scripts/sobel_batch.py")

    failed = not usable["emulated"] or (args.strict and not usable["cuda"])
    raise SystemExit(1 if failed else 0)


if __name__ == "__main__":
    main()
