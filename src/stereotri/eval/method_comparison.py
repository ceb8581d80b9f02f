from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from stereotri.api.rig import status_counts
from stereotri.core.two_view import DEFAULT_EPS, METHODS
from stereotri.sim.synthetic import SyntheticScene


@dataclass(frozen=True)
class ErrorStats:
    n: int
    rms: float
    p50: float
    p95: float
    max: float


def _summarize(errors: np.ndarray) -> ErrorStats | None:
    e = np.asarray(errors, dtype=np.float64).reshape(-1)
    if e.size == 0:
        return None
    return ErrorStats(
        n=int(e.size),
        rms=float(np.sqrt(np.mean(e * e))),
        p50=float(np.quantile(e, 0.50)),
        p95=float(np.quantile(e, 0.95)),
        max=float(np.max(e)),
    )


def _stats_to_dict(stats: ErrorStats | None) -> dict[str, float]:
    if stats is None:
        return {"n_eval": 0, "rms": float("nan"), "p50": float("nan"), "p95": float("nan"), "max": float("nan")}
    return {"n_eval": stats.n, "rms": stats.rms, "p50": stats.p50, "p95": stats.p95, "max": stats.max}


def evaluate_method(scene: SyntheticScene, method: str, eps: float = DEFAULT_EPS) -> dict[str, object]:
    """3D error of one method against the scene ground truth, over the points reported valid."""
    XYZ, status = scene.rig.triangulate(scene.bearings0, scene.bearings1, method=method, eps=eps)
    ok = status == "ok"
    err = np.linalg.norm(XYZ[ok] - scene.XYZ[ok], axis=-1)
    return {
        "method": method,
        "n_points": int(scene.XYZ.shape[0]),
        "status": status_counts(status),
        **_stats_to_dict(_summarize(err)),
    }


def compare_methods(
    scene: SyntheticScene,
    methods: tuple[str, ...] = METHODS,
    eps: float = DEFAULT_EPS,
) -> dict[str, object]:
    report: dict[str, object] = {
        "n_points": int(scene.XYZ.shape[0]),
        "noise_deg": float(scene.noise_deg),
        "seed": int(scene.seed),
        "baseline": float(scene.rig.baseline),
        "cases": [],
    }
    for method in methods:
        report["cases"].append(evaluate_method(scene, method, eps=eps))
    return report


def write_report_json(report: dict[str, object], out_path: Path) -> None:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(report, indent=2, sort_keys=True), encoding="utf-8")
