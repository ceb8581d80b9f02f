"""
Closed-form two-view triangulation from bearings.

Conventions:
- poses map world to camera: X_cam = R X + t, and a calibrated projection matrix is P = [R | t]
- bearings are ray directions in the camera frame, not necessarily unit length

These solvers are the unguarded formulas: they never raise, and degenerate geometry
(parallel rays, zero baseline, point at infinity) propagates as Inf/NaN or as a finite
but meaningless point. Use `stereotri.core.two_view.triangulate_two_view` when the
degeneracy has to be detected.

References:
- DLT: Hartley & Zisserman, Multiple View Geometry, 12.2.
- L1 / Linf angular: Lee & Civera, "Closed-Form Optimal Two-View Triangulation Based on
  Angular Errors", ICCV 2019.
- IDW: Lee & Civera, "Triangulation: Why Optimize?", BMVC 2019.
"""

from __future__ import annotations

import numpy as np

from stereotri.core.geometry import as_mat3, as_mat34, as_vec3, decompose_projection, hnormalize, normalized, relative_pose


def dlt_design_matrix(P1: np.ndarray, x1: np.ndarray, P2: np.ndarray, x2: np.ndarray) -> np.ndarray:
    """
    (4,4) system A X = 0 from the cross-product constraint x ^ (P X) = 0, two rows per view.

    Bearings are scaled to unit length first so the rows of both views carry the same
    weight whatever the input scale (a zero bearing stays zero).
    """
    P1 = as_mat34(P1)
    P2 = as_mat34(P2)
    x1 = normalized(as_vec3(x1))
    x2 = normalized(as_vec3(x2))
    design = np.empty((4, 4), dtype=np.float64)
    design[0] = x1[0] * P1[2] - x1[2] * P1[0]
    design[1] = x1[1] * P1[2] - x1[2] * P1[1]
    design[2] = x2[0] * P2[2] - x2[2] * P2[0]
    design[3] = x2[1] * P2[2] - x2[2] * P2[1]
    return design


def triangulate_dlt_homogeneous(P1: np.ndarray, x1: np.ndarray, P2: np.ndarray, x2: np.ndarray) -> np.ndarray:
    """
    Linear triangulation. Returns the homogeneous point (4,), unit norm, sign arbitrary.

    The solution is the right singular vector of the design matrix associated with the
    smallest singular value (algebraic least squares). Non-finite input gives a NaN vector.
    """
    with np.errstate(invalid="ignore"):
        design = dlt_design_matrix(P1, x1, P2, x2)
    if not np.all(np.isfinite(design)):
        return np.full((4,), np.nan, dtype=np.float64)
    _u, _s, vh = np.linalg.svd(design)
    return vh[3].copy()


def triangulate_dlt(P1: np.ndarray, x1: np.ndarray, P2: np.ndarray, x2: np.ndarray) -> np.ndarray:
    """Linear triangulation, dehomogenized (3,). A point at infinity gives Inf/NaN."""
    return hnormalize(triangulate_dlt_homogeneous(P1, x1, P2, x2))


def _angular_setup(
    R0: np.ndarray, t0: np.ndarray, x0: np.ndarray, R1: np.ndarray, t1: np.ndarray, x1: np.ndarray
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Both rays in camera 1's frame: (t, m0, m1), ray 0 starting at t, ray 1 at the origin."""
    R, t = relative_pose(R0, t0, R1, t1)
    m0 = R @ as_vec3(x0)
    m1 = as_vec3(x1)
    return t, m0, m1


def _l1_corrected_rays(m0: np.ndarray, m1: np.ndarray, t: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    # Normals of the planes spanned by each ray and the baseline.
    n0 = normalized(np.cross(m0, t))
    n1 = normalized(np.cross(m1, t))

    # Keep the ray that is further from the baseline, move the other one into its plane.
    if np.linalg.norm(np.cross(normalized(m0), t)) <= np.linalg.norm(np.cross(normalized(m1), t)):
        return m0 - (m0 @ n1) * n1, m1
    return m0, m1 - (m1 @ n0) * n0


def _linf_corrected_rays(m0: np.ndarray, m1: np.ndarray, t: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    f0 = normalized(m0)
    f1 = normalized(m1)
    na = np.cross(f0 + f1, t)
    nb = np.cross(f0 - f1, t)
    n = normalized(na) if np.linalg.norm(na) >= np.linalg.norm(nb) else normalized(nb)
    return m0 - (m0 @ n) * n, m1 - (m1 @ n) * n


def _intersect_coplanar_rays(t: np.ndarray, mp0: np.ndarray, mp1: np.ndarray) -> np.ndarray:
    """
    Intersection of the coplanar rays (t + s mp0) and (u mp1), in camera 1's frame.

    Divides by |mp1 ^ mp0|^2, which vanishes for parallel rays.
    """
    z = np.cross(mp1, mp0)
    return t + ((z @ np.cross(t, mp1)) / (z @ z)) * mp0


def _camera_to_world(R: np.ndarray, t: np.ndarray, X_cam: np.ndarray) -> np.ndarray:
    return as_mat3(R).T @ (X_cam - as_vec3(t))


def triangulate_l1_angular(
    R0: np.ndarray, t0: np.ndarray, x0: np.ndarray, R1: np.ndarray, t1: np.ndarray, x1: np.ndarray
) -> np.ndarray:
    """
    Two-view triangulation minimizing the L1 norm of the angular reprojection errors.

    Only one ray is corrected: the one closer to the baseline is moved into the epipolar
    plane of the other. Returns the world point (3,).
    """
    t, m0, m1 = _angular_setup(R0, t0, x0, R1, t1, x1)
    with np.errstate(divide="ignore", invalid="ignore"):
        mp0, mp1 = _l1_corrected_rays(m0, m1, t)
        return _camera_to_world(R1, t1, _intersect_coplanar_rays(t, mp0, mp1))


def triangulate_linf_angular(
    R0: np.ndarray, t0: np.ndarray, x0: np.ndarray, R1: np.ndarray, t1: np.ndarray, x1: np.ndarray
) -> np.ndarray:
    """
    Two-view triangulation minimizing the L-infinity norm of the angular reprojection errors.

    Both rays are projected onto the epipolar plane bisecting them, which balances the two
    angular corrections. Returns the world point (3,).
    """
    t, m0, m1 = _angular_setup(R0, t0, x0, R1, t1, x1)
    with np.errstate(divide="ignore", invalid="ignore"):
        mp0, mp1 = _linf_corrected_rays(m0, m1, t)
        return _camera_to_world(R1, t1, _intersect_coplanar_rays(t, mp0, mp1))


def _idw_setup(
    P1: np.ndarray, x1: np.ndarray, P2: np.ndarray, x2: np.ndarray
) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Returns (R2, t2, t, Rx1, x2) with both rays expressed in camera 2's frame."""
    R1, t1 = decompose_projection(P1)
    R2, t2 = decompose_projection(P2)
    R, t = relative_pose(R1, t1, R2, t2)
    return R2, t2, t, R @ as_vec3(x1), as_vec3(x2)


def _idw_parallax(t: np.ndarray, Rx1: np.ndarray, x2: np.ndarray) -> tuple[float, float, float]:
    p = np.linalg.norm(np.cross(Rx1, x2))
    q = np.linalg.norm(np.cross(Rx1, t))
    r = np.linalg.norm(np.cross(x2, t))
    return p, q, r


def _idw_solve(t: np.ndarray, Rx1: np.ndarray, x2: np.ndarray, p: float, q: float, r: float) -> tuple[np.ndarray, bool]:
    """Weighted midpoint in camera 2's frame and the four-way sign cheirality test."""
    X_cam2 = (q / (q + r)) * (t + (r / p) * (Rx1 + x2))

    lam1_Rx1 = (r / p) * Rx1
    lam2_x2 = (q / p) * x2

    def sq(v: np.ndarray) -> float:
        return float(v @ v)

    chosen = sq(t + lam1_Rx1 - lam2_x2)
    others = min(
        sq(t + lam1_Rx1 + lam2_x2),
        sq(t - lam1_Rx1 - lam2_x2),
        sq(t - lam1_Rx1 + lam2_x2),
    )
    return X_cam2, bool(chosen < others)


def triangulate_idw(P1: np.ndarray, x1: np.ndarray, P2: np.ndarray, x2: np.ndarray) -> tuple[np.ndarray, bool]:
    """
    Inverse-depth weighted midpoint triangulation.

    Returns (X (3,), valid). `valid` is False when a sign assignment other than
    "both rays pointing forward" explains the observation better, i.e. the point lies
    behind at least one camera.
    """
    R2, t2, t, Rx1, x2v = _idw_setup(P1, x1, P2, x2)
    with np.errstate(divide="ignore", invalid="ignore"):
        p, q, r = _idw_parallax(t, Rx1, x2v)
        X_cam2, valid = _idw_solve(t, Rx1, x2v, p, q, r)
        return _camera_to_world(R2, t2, X_cam2), valid
