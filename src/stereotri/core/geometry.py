from __future__ import annotations

import numpy as np


def as_vec3(v: np.ndarray) -> np.ndarray:
    return np.asarray(v, dtype=np.float64).reshape(3)


def as_mat3(m: np.ndarray) -> np.ndarray:
    return np.asarray(m, dtype=np.float64).reshape(3, 3)


def as_mat34(P: np.ndarray) -> np.ndarray:
    return np.asarray(P, dtype=np.float64).reshape(3, 4)


def normalized(v: np.ndarray) -> np.ndarray:
    """
    Unit vector along `v`. A zero vector is returned unchanged (no division).
    """
    v = np.asarray(v, dtype=np.float64)
    n = float(np.linalg.norm(v))
    if n > 0.0:
        return v / n
    return v.copy()


def projection_matrix(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """Calibrated projection matrix P = [R | t] (3,4)."""
    return np.hstack([as_mat3(R), as_vec3(t).reshape(3, 1)])


def decompose_projection(P: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Split a (3,4) projection matrix into its rotation block and translation column."""
    P = as_mat34(P)
    return P[:, :3].copy(), P[:, 3].copy()


def relative_pose(
    R0: np.ndarray, t0: np.ndarray, R1: np.ndarray, t1: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """
    Pose of camera 1 relative to camera 0, for world->camera poses X_i = R_i X + t_i.

    Returns (R, t) with X_1 = R X_0 + t, i.e. R = R1 R0^T and t = t1 - R t0.
    `t` is also the center of camera 0 expressed in camera 1's frame.
    """
    R0 = as_mat3(R0)
    R1 = as_mat3(R1)
    R = R1 @ R0.T
    t = as_vec3(t1) - R @ as_vec3(t0)
    return R, t


def camera_center(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    return -as_mat3(R).T @ as_vec3(t)


def bearing_from_world(R: np.ndarray, t: np.ndarray, X: np.ndarray) -> np.ndarray:
    """Unit bearing of world point X seen by the camera (R, t)."""
    return normalized(as_mat3(R) @ as_vec3(X) + as_vec3(t))


def hnormalize(X_h: np.ndarray) -> np.ndarray:
    """Dehomogenize a 4-vector. A zero last coordinate gives Inf/NaN."""
    X_h = np.asarray(X_h, dtype=np.float64).reshape(4)
    with np.errstate(divide="ignore", invalid="ignore"):
        return X_h[:3] / X_h[3]


def depth_along_bearing(R: np.ndarray, t: np.ndarray, X: np.ndarray, x: np.ndarray) -> float:
    """
    Signed distance of X along the observed ray x in camera (R, t).

    Positive when the point lies in front of the camera with respect to the bearing.
    """
    return float((as_mat3(R) @ as_vec3(X) + as_vec3(t)) @ as_vec3(x))


def is_rotation(R: np.ndarray, tol: float = 1e-6) -> bool:
    R = np.asarray(R, dtype=np.float64)
    if R.shape != (3, 3) or not np.all(np.isfinite(R)):
        return False
    if np.max(np.abs(R.T @ R - np.eye(3))) > tol:
        return False
    return abs(float(np.linalg.det(R)) - 1.0) <= tol
