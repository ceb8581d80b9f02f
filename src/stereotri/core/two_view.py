from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Literal

import numpy as np

from stereotri.core.geometry import as_mat3, as_vec3, depth_along_bearing, hnormalize, projection_matrix, relative_pose
from stereotri.core.triangulation import (
    _angular_setup,
    _camera_to_world,
    _idw_parallax,
    _idw_setup,
    _idw_solve,
    _intersect_coplanar_rays,
    _l1_corrected_rays,
    _linf_corrected_rays,
    dlt_design_matrix,
)

TriangulationMethod = Literal["dlt", "l1_angular", "linf_angular", "idw"]
TriangulationStatus = Literal["ok", "degenerate", "at_infinity", "behind_camera"]

METHODS: tuple[str, ...] = ("dlt", "l1_angular", "linf_angular", "idw")
STATUSES: tuple[str, ...] = ("ok", "degenerate", "at_infinity", "behind_camera")

DEFAULT_EPS = 1e-12


@dataclass(frozen=True)
class TwoViewTriangulation:
    """
    Result of a guarded two-view triangulation.

    - `X`: world point (3,), NaN when the geometry is degenerate
    - `status`: why the point is (not) usable
    - `parallax_sin2`: squared sine of the angle between the two rays (before correction)
    - `depth0`, `depth1`: signed distance of X along each bearing (NaN when X is NaN)
    """

    X: np.ndarray
    status: TriangulationStatus
    parallax_sin2: float
    depth0: float
    depth1: float

    @property
    def valid(self) -> bool:
        return self.status == "ok"


def _sin2(a: np.ndarray, b: np.ndarray) -> float:
    na2 = float(a @ a)
    nb2 = float(b @ b)
    if na2 == 0.0 or nb2 == 0.0:
        return 0.0
    c = np.cross(a, b)
    return float(c @ c) / (na2 * nb2)


def _nan3() -> np.ndarray:
    return np.full((3,), np.nan, dtype=np.float64)


def triangulate_two_view(
    R0: np.ndarray,
    t0: np.ndarray,
    x0: np.ndarray,
    R1: np.ndarray,
    t1: np.ndarray,
    x1: np.ndarray,
    method: TriangulationMethod = "idw",
    eps: float = DEFAULT_EPS,
) -> TwoViewTriangulation:
    """
    Triangulate one correspondence with degeneracy detection and a cheirality check.

    Degenerate configurations (non-finite input, zero baseline, parallel rays, rank-deficient
    DLT system) are detected before any division and reported as status "degenerate" with a NaN point.
    A DLT solution with a vanishing homogeneous coordinate is reported as "at_infinity".
    IDW uses its own sign test for cheirality; the other methods require a positive depth
    along both bearings.

    Never raises for numerical reasons; `ValueError` only for an unknown method or an
    invalid `eps`.
    """
    if method not in METHODS:
        raise ValueError(f"unknown method: {method}")
    eps = float(eps)
    if not (math.isfinite(eps) and eps > 0.0):
        raise ValueError("eps must be a positive finite number")

    R0 = as_mat3(R0)
    R1 = as_mat3(R1)
    t0 = as_vec3(t0)
    t1 = as_vec3(t1)
    x0 = as_vec3(x0)
    x1 = as_vec3(x1)

    finite = all(np.all(np.isfinite(a)) for a in (R0, t0, x0, R1, t1, x1))

    R, t = relative_pose(R0, t0, R1, t1)
    sin2 = _sin2(R @ x0, x1) if finite else math.nan

    def degenerate() -> TwoViewTriangulation:
        return TwoViewTriangulation(X=_nan3(), status="degenerate", parallax_sin2=sin2, depth0=math.nan, depth1=math.nan)

    def finish(X: np.ndarray, forward: bool | None = None) -> TwoViewTriangulation:
        depth0 = depth_along_bearing(R0, t0, X, x0)
        depth1 = depth_along_bearing(R1, t1, X, x1)
        if forward is None:
            forward = depth0 > 0.0 and depth1 > 0.0
        status: TriangulationStatus = "ok" if forward else "behind_camera"
        return TwoViewTriangulation(X=X, status=status, parallax_sin2=sin2, depth0=depth0, depth1=depth1)

    # NaN or Inf in a pose or bearing.
    if not finite:
        return degenerate()

    # Coincident camera centers: no triangulation is possible whatever the rays.
    baseline_tol = eps * max(1.0, float(np.linalg.norm(t0)), float(np.linalg.norm(t1)))
    if not float(np.linalg.norm(t)) > baseline_tol:
        return degenerate()

    if method == "dlt":
        design = dlt_design_matrix(projection_matrix(R0, t0), x0, projection_matrix(R1, t1), x1)
        _u, s, vh = np.linalg.svd(design)
        # A unique null vector needs rank 3.
        if not s[2] > eps * s[0]:
            return degenerate()
        X_h = vh[3]
        if abs(float(X_h[3])) <= eps * float(np.linalg.norm(X_h)):
            return TwoViewTriangulation(
                X=_nan3(), status="at_infinity", parallax_sin2=sin2, depth0=math.nan, depth1=math.nan
            )
        return finish(hnormalize(X_h))

    if method == "idw":
        R2, t2, t_rel, Rx1, x2 = _idw_setup(projection_matrix(R0, t0), x0, projection_matrix(R1, t1), x1)
        p, q, r = _idw_parallax(t_rel, Rx1, x2)
        if not p > eps * float(np.linalg.norm(Rx1)) * float(np.linalg.norm(x2)):
            return degenerate()
        X_cam, forward = _idw_solve(t_rel, Rx1, x2, p, q, r)
        return finish(_camera_to_world(R2, t2, X_cam), forward)

    t_rel, m0, m1 = _angular_setup(R0, t0, x0, R1, t1, x1)
    if method == "l1_angular":
        mp0, mp1 = _l1_corrected_rays(m0, m1, t_rel)
    else:
        mp0, mp1 = _linf_corrected_rays(m0, m1, t_rel)
    if not _sin2(mp0, mp1) > eps:
        return degenerate()
    return finish(_camera_to_world(R1, t1, _intersect_coplanar_rays(t_rel, mp0, mp1)))
