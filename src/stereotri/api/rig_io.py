from __future__ import annotations

import json
from pathlib import Path

import numpy as np

from stereotri.api.rig import TwoViewRig
from stereotri.meta import RIG_SCHEMA_VERSION, CameraMeta, RigMeta, load_rig_meta, rig_meta_to_dict


def save_rig(path: Path, rig: TwoViewRig, units: str = "m") -> Path:
    """
    Save a rig as a small JSON document (schema stereotri.rig.v0).
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    for name, arr in (("R0", rig.R0), ("t0", rig.t0), ("R1", rig.R1), ("t1", rig.t1)):
        if not np.all(np.isfinite(np.asarray(arr, dtype=np.float64))):
            raise ValueError(f"{name}: non-finite values")

    meta = RigMeta(
        schema_version=RIG_SCHEMA_VERSION,
        cam0=CameraMeta(name="cam0", R=rig.R0, t=rig.t0),
        cam1=CameraMeta(name="cam1", R=rig.R1, t=rig.t1),
        units=units,
    )
    path.write_text(json.dumps(rig_meta_to_dict(meta), indent=2, sort_keys=True), encoding="utf-8")
    return path


def load_rig(path: Path) -> TwoViewRig:
    meta = load_rig_meta(Path(path))
    return TwoViewRig.from_poses(meta.cam0.R, meta.cam0.t, meta.cam1.R, meta.cam1.t)


def save_bearings(path: Path, bearings0: np.ndarray, bearings1: np.ndarray) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    np.savez_compressed(
        path,
        bearings0=np.asarray(bearings0, dtype=np.float64).reshape(-1, 3),
        bearings1=np.asarray(bearings1, dtype=np.float64).reshape(-1, 3),
    )
    return path


def load_bearings(path: Path) -> tuple[np.ndarray, np.ndarray]:
    """
    Load corresponding bearings from an NPZ holding `bearings0` and `bearings1`, both (N,3).
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing {path}")
    with np.load(str(path)) as npz:
        for k in ("bearings0", "bearings1"):
            if k not in npz:
                raise ValueError(f"{path} missing key: {k}")
        b0 = np.asarray(npz["bearings0"], dtype=np.float64)
        b1 = np.asarray(npz["bearings1"], dtype=np.float64)
    if b0.ndim != 2 or b0.shape[1] != 3 or b0.shape != b1.shape:
        raise ValueError(f"{path}: bearings must both have shape (N,3) (got {b0.shape} and {b1.shape})")
    if not (np.all(np.isfinite(b0)) and np.all(np.isfinite(b1))):
        raise ValueError(f"{path}: non-finite bearings")
    return b0, b1


def save_points(path: Path, XYZ: np.ndarray, status: np.ndarray, method: str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    np.savez_compressed(
        path,
        XYZ=np.asarray(XYZ, dtype=np.float64).reshape(-1, 3),
        status=np.asarray(status).astype(str),
        method=np.asarray(method),
    )
    return path
