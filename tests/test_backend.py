from __future__ import annotations

import warnings

import numpy as np
import pytest

from fusebond import backend as backend_mod
from fusebond.backend import ComputeBackend, parse_compute_capability, resolve_backend, to_numpy
from fusebond.constants import MIN_COMPUTE_CAPABILITY
from fusebond.context import DeviceContext
from fusebond.errors import KernelBuildError

_FAKE_CP = object()


def _fake_probe(monkeypatch, *, ok=True, cc=(8, 6), nvrtc=(12, 2), reason=""):
    probe = backend_mod._CudaProbe(_FAKE_CP if ok else None, cc, nvrtc if ok else None, reason)
    monkeypatch.setattr(backend_mod, "_probe_cuda", lambda: probe)


@pytest.mark.parametrize("raw, expected", [("86", (8, 6)), ("35", (3, 5)), ("120", (12, 0)), (90, (9, 0))])
def test_parse_compute_capability(raw, expected):
    assert parse_compute_capability(raw) == expected


@pytest.mark.parametrize("raw", ["", "8", "sm_86"])
def test_parse_compute_capability_rejects(raw):
    with pytest.raises(ValueError, match="compute capability"):
        parse_compute_capability(raw)


def test_min_compute_capability_is_sane():
    assert MIN_COMPUTE_CAPABILITY >= (1, 3)


def test_resolve_backend_cpu_forced(monkeypatch):
    _fake_probe(monkeypatch)
    b = resolve_backend("cpu")
    assert b.device == "cpu"
    assert b.xp is np
    assert not b.can_compile


def test_resolve_backend_invalid_device():
    with pytest.raises(ValueError, match="device must be one of"):
        resolve_backend("tpu")


def test_resolve_backend_reports_device_and_nvrtc(monkeypatch):
    _fake_probe(monkeypatch, cc=(8, 6), nvrtc=(12, 2))
    b = resolve_backend("auto")
    assert b.device == "cuda"
    assert b.xp is _FAKE_CP
    assert b.compute_capability == (8, 6)
    assert b.nvrtc_version == (12, 2)
    assert b.can_compile
    assert b.describe() == "cuda sm_86 nvrtc 12.2"


def test_missing_nvrtc_falls_back_with_warning(monkeypatch):
    _fake_probe(monkeypatch, ok=False, cc=(8, 0), reason="NVRTC unavailable, kernels cannot be compiled: x")
    with warnings.catch_warnings(record=True) as w:
        warnings.simplefilter("always")
        b = resolve_backend("cuda")
    assert b.device == "cpu"
    assert b.compute_capability == (8, 0)
    assert b.nvrtc_version is None
    assert "NVRTC" in b.reason
    assert any("falling back to CPU" in str(x.message) for x in w)


def test_auto_fallback_is_silent(monkeypatch):
    _fake_probe(monkeypatch, ok=False, cc=None, reason="cupy import failed: no module")
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        b = resolve_backend("auto")
    assert b.device == "cpu"
    assert b.describe() == "cpu (cupy import failed: no module)"


def test_resolve_backend_auto_force_cpu_env(monkeypatch):
    _fake_probe(monkeypatch)
    monkeypatch.setenv("FUSEBOND_FORCE_CPU", "1")
    b = resolve_backend("auto")
    assert b.device == "cpu"
    assert b.reason == "FUSEBOND_FORCE_CPU"


def test_context_error_names_failed_probe():
    be = ComputeBackend(device="cpu", xp=np, cuda_available=False, reason="compute capability 3.0 is below 3.5")
    ctx = DeviceContext(4, backend=be)
    with pytest.raises(KernelBuildError, match="compute capability 3.0 is below 3.5"):
        ctx.create_module("", {})


def test_to_numpy_passthrough():
    a = np.arange(4)
    assert to_numpy(a) is a
    assert to_numpy([1, 2]).tolist() == [1, 2]
