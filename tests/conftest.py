from __future__ import annotations

import pytest

from fusebond.backend import resolve_backend
from fusebond.context import DeviceContext


class RecordingContext(DeviceContext):
    """CPU context that records compile and launch requests instead of using CUDA."""

    def __init__(self, n_atoms: int = 8, *, fail_compile: bool = False, **kwargs):
        super().__init__(n_atoms, backend=resolve_backend("cpu"), **kwargs)
        self.fail_compile = fail_compile
        self.modules: list[tuple[str, dict[str, str]]] = []
        self.launches: list[tuple[object, tuple, int]] = []
        self.uploads = 0

    def upload(self, host):
        self.uploads += 1
        return super().upload(host)

    def create_module(self, source, defines):
        if self.fail_compile:
            from fusebond.errors import KernelBuildError

            raise KernelBuildError("bonded kernel compilation failed: simulated")
        self.modules.append((source, dict(defines)))
        return {"source": source}

    def get_kernel(self, module, name):
        return ("kernel", name)

    def execute_kernel(self, kernel, args, work_units):
        self.launches.append((kernel, args, int(work_units)))
        threads = self.threads_per_block
        return max(1, min(self.max_blocks, (int(work_units) + threads - 1) // threads))


@pytest.fixture
def recording_context():
    return RecordingContext(8)


@pytest.fixture
def context_factory():
    return RecordingContext
