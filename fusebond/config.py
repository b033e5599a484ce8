from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Literal, Optional
import yaml

from .constants import DEFAULT_MAX_BLOCKS, DEFAULT_THREADS_PER_BLOCK, PADDED_ATOM_BLOCK

PrecisionType = Literal["single", "double"]
DeviceType = Literal["auto", "cpu", "cuda"]

_TOP_KEYS = {"system", "kernel", "trace"}
_KERNEL_KEYS = {"device", "precision", "threads_per_block", "max_blocks", "padding", "verbose"}
_TRACE_KEYS = {"path", "kernel_source"}

@dataclass
class SystemConfig:
    n_atoms: int

@dataclass
class KernelConfig:
    device: DeviceType = "auto"
    precision: PrecisionType = "double"
    threads_per_block: int = DEFAULT_THREADS_PER_BLOCK
    max_blocks: int = DEFAULT_MAX_BLOCKS
    padding: int = PADDED_ATOM_BLOCK
    verbose: bool = False

@dataclass
class TraceConfig:
    path: Optional[str] = None           # CSV launch trace
    kernel_source: Optional[str] = None  # dump of the synthesized kernel text

@dataclass
class Config:
    system: SystemConfig
    kernel: KernelConfig = field(default_factory=KernelConfig)
    trace: TraceConfig = field(default_factory=TraceConfig)


def _check_keys(section: Any, key: str, allowed: set[str]) -> dict:
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ValueError(f"{key} must be a mapping")
    extra = sorted(set(section.keys()) - allowed)
    if extra:
        raise ValueError(f"{key} contains unsupported keys: {extra}")
    return section


def _positive_int(value: Any, key: str) -> int:
    try:
        v = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{key} must be an int") from exc
    if v <= 0:
        raise ValueError(f"{key} must be > 0")
    return v


def _parse_kernel_config(root: dict[str, Any]) -> KernelConfig:
    k = _check_keys(root.get("kernel", None), "kernel", _KERNEL_KEYS)
    device = str(k.get("device", "auto")).strip().lower()
    if device not in ("auto", "cpu", "cuda"):
        raise ValueError("kernel.device must be one of: auto, cpu, cuda")
    precision = str(k.get("precision", "double")).strip().lower()
    if precision not in ("single", "double"):
        raise ValueError("kernel.precision must be one of: single, double")
    threads = _positive_int(k.get("threads_per_block", DEFAULT_THREADS_PER_BLOCK), "kernel.threads_per_block")
    if threads % 32 != 0 or threads > 1024:
        raise ValueError("kernel.threads_per_block must be a multiple of 32 and <= 1024")
    return KernelConfig(
        device=device,
        precision=precision,
        threads_per_block=threads,
        max_blocks=_positive_int(k.get("max_blocks", DEFAULT_MAX_BLOCKS), "kernel.max_blocks"),
        padding=_positive_int(k.get("padding", PADDED_ATOM_BLOCK), "kernel.padding"),
        verbose=bool(k.get("verbose", False)),
    )


def _parse_trace_config(root: dict[str, Any]) -> TraceConfig:
    t = _check_keys(root.get("trace", None), "trace", _TRACE_KEYS)
    path = t.get("path", None)
    src = t.get("kernel_source", None)
    return TraceConfig(
        path=None if path is None else str(path),
        kernel_source=None if src is None else str(src),
    )


def parse_config(d: Any) -> Config:
    root = _check_keys(d, "config", _TOP_KEYS)
    system = root.get("system", None)
    if not isinstance(system, dict) or "n_atoms" not in system:
        raise ValueError("system.n_atoms is required")
    return Config(
        system=SystemConfig(n_atoms=_positive_int(system["n_atoms"], "system.n_atoms")),
        kernel=_parse_kernel_config(root),
        trace=_parse_trace_config(root),
    )


def load_config(path: str) -> Config:
    with open(path,"r",encoding="utf-8") as f:
        d = yaml.safe_load(f)
    return parse_config(d)


def make_context(cfg: Config):
    from .context import DeviceContext

    return DeviceContext(
        cfg.system.n_atoms,
        device=cfg.kernel.device,
        precision=cfg.kernel.precision,
        threads_per_block=cfg.kernel.threads_per_block,
        max_blocks=cfg.kernel.max_blocks,
        padding=cfg.kernel.padding,
    )


def make_bonded(cfg: Config, context):
    from .bonded import BondedUtilities

    return BondedUtilities(
        context,
        verbose=cfg.kernel.verbose,
        trace_path=cfg.trace.path,
        source_dump_path=cfg.trace.kernel_source,
    )
