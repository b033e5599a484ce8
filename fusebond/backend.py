"""Device selection for kernel synthesis and launch.

A CUDA backend is only reported when CuPy imports, a device is visible, the
device meets ``MIN_COMPUTE_CAPABILITY`` and NVRTC answers a version query;
otherwise the bonded kernel could be synthesized but never compiled, so the
backend resolves to CPU and ``reason`` says which probe failed.
"""

from __future__ import annotations

import os
import warnings
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .constants import MIN_COMPUTE_CAPABILITY

FORCE_CPU_ENV = "FUSEBOND_FORCE_CPU"


@dataclass(frozen=True)
class ComputeBackend:
    device: str
    xp: object
    cuda_available: bool
    reason: str = ""
    compute_capability: Optional[tuple[int, int]] = None
    nvrtc_version: Optional[tuple[int, int]] = None

    @property
    def can_compile(self) -> bool:
        return self.device == "cuda" and self.nvrtc_version is not None

    def describe(self) -> str:
        if self.device != "cuda":
            return f"cpu ({self.reason})" if self.reason else "cpu"
        cc = self.compute_capability or (0, 0)
        nv = self.nvrtc_version or (0, 0)
        return f"cuda sm_{cc[0]}{cc[1]} nvrtc {nv[0]}.{nv[1]}"


@dataclass(frozen=True)
class _CudaProbe:
    cp: object
    compute_capability: Optional[tuple[int, int]]
    nvrtc_version: Optional[tuple[int, int]]
    reason: str

    @property
    def ok(self) -> bool:
        return self.cp is not None


def parse_compute_capability(raw) -> tuple[int, int]:
    """CuPy reports capability as a digit string, e.g. ``"86"`` or ``"120"``."""
    s = str(raw).strip()
    if len(s) < 2 or not s.isdigit():
        raise ValueError(f"unrecognised compute capability {raw!r}")
    return int(s[:-1]), int(s[-1])


def _probe_cuda() -> _CudaProbe:
    try:
        import cupy as cp  # type: ignore
    except Exception as exc:
        return _CudaProbe(None, None, None, f"cupy import failed: {exc}")
    try:
        ndev = int(cp.cuda.runtime.getDeviceCount())
        if ndev <= 0:
            return _CudaProbe(None, None, None, "CUDA runtime reports 0 devices")
        cc = parse_compute_capability(cp.cuda.Device().compute_capability)
    except Exception as exc:
        return _CudaProbe(None, None, None, f"CUDA runtime unavailable: {exc}")
    if cc < MIN_COMPUTE_CAPABILITY:
        need = ".".join(str(v) for v in MIN_COMPUTE_CAPABILITY)
        return _CudaProbe(None, cc, None, f"compute capability {cc[0]}.{cc[1]} is below {need}")
    try:
        nvrtc = tuple(int(v) for v in cp.cuda.nvrtc.getVersion())[:2]
    except Exception as exc:
        return _CudaProbe(None, cc, None, f"NVRTC unavailable, kernels cannot be compiled: {exc}")
    return _CudaProbe(cp, cc, nvrtc, "")


def _cpu(reason: str, probe: _CudaProbe | None = None) -> ComputeBackend:
    return ComputeBackend(
        device="cpu",
        xp=np,
        cuda_available=False,
        reason=reason,
        compute_capability=None if probe is None else probe.compute_capability,
    )


def _cuda(probe: _CudaProbe, reason: str) -> ComputeBackend:
    return ComputeBackend(
        device="cuda",
        xp=probe.cp,
        cuda_available=True,
        reason=reason,
        compute_capability=probe.compute_capability,
        nvrtc_version=probe.nvrtc_version,
    )


def resolve_backend(device: str = "auto") -> ComputeBackend:
    req = str(device or "auto").strip().lower()
    if req not in ("auto", "cpu", "cuda"):
        raise ValueError("device must be one of: auto, cpu, cuda")
    if req == "cpu":
        return _cpu("forced cpu")

    if req == "auto" and os.environ.get(FORCE_CPU_ENV, "").strip().lower() in ("1", "true", "yes", "on"):
        return _cpu(FORCE_CPU_ENV)

    probe = _probe_cuda()
    if probe.ok:
        return _cuda(probe, "auto" if req == "auto" else "")
    if req == "cuda":
        warnings.warn(
            f"CUDA backend requested but unavailable ({probe.reason}); falling back to CPU "
            "(kernels can be synthesized but not launched)",
            RuntimeWarning,
        )
    return _cpu(probe.reason, probe)


def to_numpy(x):
    if isinstance(x, np.ndarray):
        return x
    try:
        import cupy as cp  # type: ignore
    except Exception:
        return np.asarray(x)
    if isinstance(x, cp.ndarray):
        return cp.asnumpy(x)
    return np.asarray(x)
