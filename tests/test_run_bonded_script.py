from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]


def test_run_bonded_script_writes_summary(tmp_path):
    out_json = tmp_path / "bonded_run.summary.json"
    emit = tmp_path / "bonded_kernel.cu"
    cmd = [
        sys.executable,
        "scripts/run_bonded.py",
        "--out-json",
        str(out_json),
        "--emit",
        str(emit),
    ]
    proc = subprocess.run(cmd, check=False, capture_output=True, text=True, cwd=str(ROOT))
    assert proc.returncode == 0, proc.stderr or proc.stdout
    assert out_json.is_file()
    data = json.loads(out_json.read_text(encoding="utf-8"))
    assert data["terms"] == 2
    assert data["padded_num_atoms"] == 32
    if data["launched"]:
        assert "energy" in data
        assert len(data["net_force"]) == 3
    else:
        assert data["skipped"] == "cuda_unavailable"
    text = emit.read_text(encoding="utf-8")
    assert text.startswith("typedef double real;\n")
    assert "#define PADDED_NUM_ATOMS 32\n" in text
    assert 'extern "C" __global__ void computeBondedForces(' in text
    assert "// harmonic_bond: group 0, 3 bonds, arity 2" in text


def test_run_bonded_script_strict_without_cuda(tmp_path):
    out_json = tmp_path / "strict.summary.json"
    cmd = [sys.executable, "scripts/run_bonded.py", "--out-json", str(out_json), "--strict"]
    env = {**os.environ, "FUSEBOND_FORCE_CPU": "1"}
    proc = subprocess.run(cmd, check=False, capture_output=True, text=True, cwd=str(ROOT), env=env)
    assert proc.returncode == 2, proc.stderr or proc.stdout
    data = json.loads(out_json.read_text(encoding="utf-8"))
    assert data["launched"] is False


def test_run_bonded_script_term_file_without_bonds(tmp_path):
    terms = tmp_path / "empty_terms.yaml"
    terms.write_text(
        "terms:\n"
        "  - name: unused_bond\n"
        "    atoms: []\n"
        "    source: |\n"
        "      energy += pos1.x;\n"
        "      real3 force1 = make_real3(0, 0, 0);\n",
        encoding="utf-8",
    )
    out_json = tmp_path / "empty.summary.json"
    emit = tmp_path / "empty_kernel.cu"
    cmd = [
        sys.executable,
        "scripts/run_bonded.py",
        "--terms",
        str(terms),
        "--out-json",
        str(out_json),
        "--emit",
        str(emit),
    ]
    proc = subprocess.run(cmd, check=False, capture_output=True, text=True, cwd=str(ROOT))
    assert proc.returncode == 0, proc.stderr or proc.stdout
    assert "nothing to emit" in proc.stdout
    assert not emit.exists()
    data = json.loads(out_json.read_text(encoding="utf-8"))
    assert data["terms"] == 0
