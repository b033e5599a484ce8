from __future__ import annotations
import csv
import os
import time
import warnings
from typing import Sequence


def format_groups(groups: int) -> str:
    bits = [str(b) for b in range(32) if (int(groups) >> b) & 1]
    return "|".join(bits)


class DispatchTraceLogger:
    """CSV trace of bonded kernel launches, one row per compute call."""

    def __init__(self, path: str, *, enabled: bool = True):
        self.enabled = bool(enabled)
        self.start = time.perf_counter()
        self.path = path
        self.rows = 0
        if not self.enabled:
            self._f = None
            self._w = None
            return
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        self._f = open(path, "w", newline="", encoding="utf-8")
        self._w = csv.writer(self._f)
        self._w.writerow([
            "wall_time","launch","groups","active_terms","blocks","threads","max_bonds",
        ])
        self._f.flush()

    def log(self, *, launch: int, groups: int, active_terms: Sequence[str],
            blocks: int, threads: int, max_bonds: int):
        if not self.enabled or self._w is None:
            return
        wall = time.perf_counter() - self.start
        self._w.writerow([
            f"{wall:.6f}",
            int(launch),
            format_groups(groups),
            ";".join(str(t) for t in active_terms),
            int(blocks),
            int(threads),
            int(max_bonds),
        ])
        self._f.flush()
        self.rows += 1

    def close(self):
        try:
            if self._f is not None:
                self._f.close()
        except Exception as exc:
            warnings.warn(
                f"DispatchTraceLogger.close() failed for {self.path!r}: {exc!r}",
                RuntimeWarning,
            )
        self._f = None
        self._w = None


def dump_kernel_source(path: str, source: str) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(source)
