from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from scipy.spatial.transform import Rotation

from stereotri.api.rig import TwoViewRig
from stereotri.api.rig_io import save_bearings, save_rig


@dataclass(frozen=True)
class SyntheticScene:
    """
    A two-view rig, ground-truth world points and the bearings observing them.

    `bearings0/1` are unit vectors; when `noise_deg > 0` they are perturbed by a random
    rotation whose angle is Gaussian with that standard deviation.
    """

    rig: TwoViewRig
    XYZ: np.ndarray  # (N,3) world
    bearings0: np.ndarray  # (N,3)
    bearings1: np.ndarray  # (N,3)
    noise_deg: float
    seed: int


def _look_at(center: np.ndarray, target: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """World->camera pose of a camera at `center` whose +Z axis points at `target`, +X kept horizontal."""
    z = target - center
    z = z / np.linalg.norm(z)
    x = np.cross(np.array([0.0, 1.0, 0.0]), z)
    x = x / np.linalg.norm(x)
    y = np.cross(z, x)
    R = np.stack([x, y, z], axis=0)
    t = -R @ center
    return R, t


def _unit_rows(v: np.ndarray) -> np.ndarray:
    return v / np.linalg.norm(v, axis=-1, keepdims=True)


def perturb_bearings(bearings: np.ndarray, noise_deg: float, rng: np.random.Generator) -> np.ndarray:
    """Rotate each unit bearing about a random axis orthogonal to it by N(0, noise_deg) degrees."""
    b = _unit_rows(np.asarray(bearings, dtype=np.float64).reshape(-1, 3))
    if noise_deg <= 0.0 or b.shape[0] == 0:
        return b
    axis = np.cross(b, rng.normal(size=b.shape))
    axis = _unit_rows(axis)
    angle = np.deg2rad(rng.normal(scale=float(noise_deg), size=(b.shape[0], 1)))
    return Rotation.from_rotvec(axis * angle).apply(b)


def make_two_view_scene(
    n_points: int = 100,
    baseline: float = 1.0,
    depth_range: tuple[float, float] = (4.0, 8.0),
    spread: float = 1.5,
    noise_deg: float = 0.0,
    seed: int = 0,
) -> SyntheticScene:
    """
    Convergent two-camera rig looking at a box of points.

    Camera 0 sits at the origin, camera 1 at (baseline, 0, 0); both aim at the middle of the
    depth range, with a small random roll/tilt jitter on camera 1.
    """
    if n_points < 0:
        raise ValueError("n_points must be >= 0")
    z_near, z_far = float(depth_range[0]), float(depth_range[1])
    if not 0.0 < z_near < z_far:
        raise ValueError("depth_range must satisfy 0 < near < far")
    if baseline <= 0.0:
        raise ValueError("baseline must be > 0")

    rng = np.random.default_rng(seed)
    target = np.array([0.5 * baseline, 0.0, 0.5 * (z_near + z_far)], dtype=np.float64)

    R0, t0 = _look_at(np.zeros(3), target)
    R1, t1 = _look_at(np.array([baseline, 0.0, 0.0]), target)
    jitter = Rotation.from_rotvec(rng.normal(scale=np.deg2rad(2.0), size=3)).as_matrix()
    R1 = jitter @ R1
    t1 = jitter @ t1
    rig = TwoViewRig.from_poses(R0, t0, R1, t1)

    XYZ = np.stack(
        [
            rng.uniform(-spread, spread, size=n_points) + 0.5 * baseline,
            rng.uniform(-spread, spread, size=n_points),
            rng.uniform(z_near, z_far, size=n_points),
        ],
        axis=-1,
    )
    bearings0 = _unit_rows((R0 @ XYZ.T).T + t0)
    bearings1 = _unit_rows((R1 @ XYZ.T).T + t1)
    bearings0 = perturb_bearings(bearings0, noise_deg, rng)
    bearings1 = perturb_bearings(bearings1, noise_deg, rng)

    return SyntheticScene(
        rig=rig,
        XYZ=XYZ,
        bearings0=bearings0,
        bearings1=bearings1,
        noise_deg=float(noise_deg),
        seed=int(seed),
    )


def write_synthetic_scene(out_dir: Path, scene: SyntheticScene) -> Path:
    """
    Write rig.json, bearings.npz and gt_points.npz (+ scene.json with the generator params).
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    save_rig(out_dir / "rig.json", scene.rig)
    save_bearings(out_dir / "bearings.npz", scene.bearings0, scene.bearings1)
    np.savez_compressed(out_dir / "gt_points.npz", XYZ=scene.XYZ)
    info = {"n_points": int(scene.XYZ.shape[0]), "noise_deg": scene.noise_deg, "seed": scene.seed}
    (out_dir / "scene.json").write_text(json.dumps(info, indent=2, sort_keys=True), encoding="utf-8")
    return out_dir
