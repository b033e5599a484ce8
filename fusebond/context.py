"""CuPy device context used by the bonded-force core.

The context owns the per-atom position buffer, the fixed-point force buffer
(three planes of ``padded_num_atoms`` 64-bit integers) and the per-thread
energy buffer, and compiles kernel text with ``cupy.RawModule``.  On the CPU
backend every buffer lives in numpy and kernels can be synthesized but not
compiled or launched.
"""

from __future__ import annotations

import numpy as np

from .backend import ComputeBackend, resolve_backend, to_numpy
from .constants import DEFAULT_MAX_BLOCKS, DEFAULT_THREADS_PER_BLOCK, PADDED_ATOM_BLOCK
from .errors import KernelBuildError
from .fixed_point import decode_force_buffer

_PRECISION_HEADER = {
    "single": (
        "typedef float real;\n"
        "typedef float2 real2;\n"
        "typedef float3 real3;\n"
        "typedef float4 real4;\n"
        "#define make_real2 make_float2\n"
        "#define make_real3 make_float3\n"
        "#define make_real4 make_float4\n"
    ),
    "double": (
        "typedef double real;\n"
        "typedef double2 real2;\n"
        "typedef double3 real3;\n"
        "typedef double4 real4;\n"
        "#define make_real2 make_double2\n"
        "#define make_real3 make_double3\n"
        "#define make_real4 make_double4\n"
    ),
}


def padded_atom_count(n_atoms: int, block: int = PADDED_ATOM_BLOCK) -> int:
    n = int(n_atoms)
    b = int(block)
    if n <= 0:
        raise ValueError("n_atoms must be positive")
    if b <= 0:
        raise ValueError("padding block must be positive")
    return ((n + b - 1) // b) * b


class DeviceContext:
    def __init__(
        self,
        n_atoms: int,
        *,
        backend: ComputeBackend | None = None,
        device: str = "auto",
        precision: str = "double",
        threads_per_block: int = DEFAULT_THREADS_PER_BLOCK,
        max_blocks: int = DEFAULT_MAX_BLOCKS,
        padding: int = PADDED_ATOM_BLOCK,
    ):
        if precision not in _PRECISION_HEADER:
            raise ValueError("precision must be one of: single, double")
        if int(threads_per_block) <= 0 or int(max_blocks) <= 0:
            raise ValueError("threads_per_block and max_blocks must be positive")
        self.backend = backend if backend is not None else resolve_backend(device)
        self.xp = self.backend.xp
        self.n_atoms = int(n_atoms)
        self.padded_num_atoms = padded_atom_count(n_atoms, padding)
        self.precision = precision
        self.real_dtype = np.float32 if precision == "single" else np.float64
        self.threads_per_block = int(threads_per_block)
        self.max_blocks = int(max_blocks)

        xp = self.xp
        self.posq = xp.zeros((self.padded_num_atoms, 4), dtype=self.real_dtype)
        self.force_buffer = xp.zeros((3 * self.padded_num_atoms,), dtype=np.int64)
        self.energy_buffer = xp.zeros((self.max_blocks * self.threads_per_block,), dtype=self.real_dtype)

    @property
    def is_cuda(self) -> bool:
        return self.backend.device == "cuda"

    def int_to_string(self, value: int) -> str:
        return str(int(value))

    def upload(self, host: np.ndarray):
        return self.xp.asarray(np.ascontiguousarray(host))

    def set_positions(self, r: np.ndarray, charges: np.ndarray | None = None) -> None:
        rr = np.asarray(r, dtype=float)
        if rr.shape != (self.n_atoms, 3):
            raise ValueError(f"positions must have shape ({self.n_atoms}, 3)")
        host = np.zeros((self.padded_num_atoms, 4), dtype=self.real_dtype)
        host[: self.n_atoms, :3] = rr
        if charges is not None:
            q = np.asarray(charges, dtype=float)
            if q.shape != (self.n_atoms,):
                raise ValueError(f"charges must have shape ({self.n_atoms},)")
            host[: self.n_atoms, 3] = q
        self.posq[...] = self.xp.asarray(host)

    def clear_buffers(self) -> None:
        self.force_buffer.fill(0)
        self.energy_buffer.fill(0)

    def get_forces(self) -> np.ndarray:
        return decode_force_buffer(self.force_buffer, self.n_atoms, self.padded_num_atoms)

    def get_energy(self) -> float:
        return float(np.sum(to_numpy(self.energy_buffer), dtype=np.float64))

    def _require_cuda(self, op: str, exc_type: type = KernelBuildError) -> None:
        if not self.is_cuda:
            raise exc_type(f"{op} requires the CUDA backend (resolved {self.backend.describe()})")

    def kernel_code(self, source: str, defines: dict[str, str]) -> str:
        """Exact translation unit handed to NVRTC: precision typedefs, defines, then ``source``."""
        lines = [f"#define {k} {v}\n" for k, v in sorted(defines.items())]
        return _PRECISION_HEADER[self.precision] + "".join(lines) + source

    def create_module(self, source: str, defines: dict[str, str]):
        self._require_cuda("create_module")
        cp = self.xp
        try:
            module = cp.RawModule(code=self.kernel_code(source, defines))
            module.compile()
        except Exception as exc:
            raise KernelBuildError(f"bonded kernel compilation failed: {exc}") from exc
        return module

    def get_kernel(self, module, name: str):
        try:
            return module.get_function(name)
        except Exception as exc:
            raise KernelBuildError(f"kernel entry point {name!r} not found: {exc}") from exc

    def execute_kernel(self, kernel, args: tuple, work_units: int) -> int:
        """Launch ``kernel`` with enough blocks for ``work_units`` threads, capped at ``max_blocks``."""
        self._require_cuda("execute_kernel", RuntimeError)
        threads = self.threads_per_block
        blocks = max(1, min(self.max_blocks, (int(work_units) + threads - 1) // threads))
        kernel((blocks,), (threads,), args)
        return blocks
