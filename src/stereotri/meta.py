from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

from stereotri.core.geometry import decompose_projection, is_rotation

RIG_SCHEMA_VERSION = "stereotri.rig.v0"
ROTATION_TOL = 1e-6


class MetaValidationError(ValueError):
    pass


@dataclass(frozen=True)
class CameraMeta:
    name: str
    R: np.ndarray  # (3,3) world -> camera
    t: np.ndarray  # (3,)


@dataclass(frozen=True)
class RigMeta:
    schema_version: str
    cam0: CameraMeta
    cam1: CameraMeta
    units: str = "m"


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise MetaValidationError(msg)


def _float_array(value: Any, shape: tuple[int, ...], key: str) -> np.ndarray:
    try:
        arr = np.asarray(value, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise MetaValidationError(f"{key} must be numeric") from e
    _require(arr.shape == shape, f"{key} must have shape {shape} (got {arr.shape})")
    _require(bool(np.all(np.isfinite(arr))), f"{key} must be finite")
    return arr


def parse_camera_meta(data: dict[str, Any], key: str) -> CameraMeta:
    """
    A camera is either {"R": 3x3, "t": 3} or {"P": 3x4} (calibrated projection matrix [R | t]).
    """
    _require(isinstance(data, dict), f"{key} must be an object")
    name = str(data.get("name", key))

    if "P" in data:
        _require("R" not in data and "t" not in data, f"{key}: give either P or R/t, not both")
        P = _float_array(data["P"], (3, 4), f"{key}.P")
        R, t = decompose_projection(P)
    else:
        _require("R" in data, f"{key}.R is required")
        _require("t" in data, f"{key}.t is required")
        R = _float_array(data["R"], (3, 3), f"{key}.R")
        t = _float_array(data["t"], (3,), f"{key}.t")

    _require(is_rotation(R, tol=ROTATION_TOL), f"{key}.R must be a rotation (orthonormal, det=+1)")
    return CameraMeta(name=name, R=R, t=t)


def load_rig_meta(path: Path) -> RigMeta:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing {path}")
    data = json.loads(path.read_text(encoding="utf-8"))
    return parse_rig_meta(data)


def parse_rig_meta(data: dict[str, Any]) -> RigMeta:
    _require(isinstance(data, dict), "rig metadata must be a JSON object")
    schema_version = data.get("schema_version")
    _require(schema_version == RIG_SCHEMA_VERSION, f"schema_version must be {RIG_SCHEMA_VERSION}")

    cameras = data.get("cameras")
    _require(isinstance(cameras, list), "cameras must be a list")
    _require(len(cameras) == 2, f"cameras must hold exactly 2 entries (got {len(cameras)})")

    cam0 = parse_camera_meta(cameras[0], "cameras[0]")
    cam1 = parse_camera_meta(cameras[1], "cameras[1]")

    units = str(data.get("units", "m"))
    _require(len(units) > 0, "units must be a non-empty string")
    return RigMeta(schema_version=str(schema_version), cam0=cam0, cam1=cam1, units=units)


def rig_meta_to_dict(meta: RigMeta) -> dict[str, Any]:
    return {
        "schema_version": meta.schema_version,
        "units": meta.units,
        "cameras": [
            {"name": cam.name, "R": np.asarray(cam.R, dtype=np.float64).tolist(), "t": np.asarray(cam.t, dtype=np.float64).reshape(3).tolist()}
            for cam in (meta.cam0, meta.cam1)
        ],
    }
