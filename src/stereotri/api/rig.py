from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from stereotri.core.geometry import as_mat3, as_vec3, camera_center, decompose_projection, projection_matrix, relative_pose
from stereotri.core.two_view import DEFAULT_EPS, STATUSES, TriangulationMethod, triangulate_two_view

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TwoViewRig:
    """
    Two calibrated cameras with world->camera poses X_i = R_i X + t_i.

    Bearings passed to `triangulate` are ray directions in each camera frame
    (normalized image coordinates [x, y, 1] or unit vectors).
    """

    R0: np.ndarray  # (3,3)
    t0: np.ndarray  # (3,)
    R1: np.ndarray  # (3,3)
    t1: np.ndarray  # (3,)

    @classmethod
    def from_poses(cls, R0: np.ndarray, t0: np.ndarray, R1: np.ndarray, t1: np.ndarray) -> "TwoViewRig":
        return cls(R0=as_mat3(R0), t0=as_vec3(t0), R1=as_mat3(R1), t1=as_vec3(t1))

    @classmethod
    def from_projections(cls, P0: np.ndarray, P1: np.ndarray) -> "TwoViewRig":
        R0, t0 = decompose_projection(P0)
        R1, t1 = decompose_projection(P1)
        return cls(R0=R0, t0=t0, R1=R1, t1=t1)

    def projection_matrices(self) -> tuple[np.ndarray, np.ndarray]:
        return projection_matrix(self.R0, self.t0), projection_matrix(self.R1, self.t1)

    def relative_pose(self) -> tuple[np.ndarray, np.ndarray]:
        """(R, t) mapping camera-0 coordinates to camera-1 coordinates."""
        return relative_pose(self.R0, self.t0, self.R1, self.t1)

    def camera_centers(self) -> tuple[np.ndarray, np.ndarray]:
        return camera_center(self.R0, self.t0), camera_center(self.R1, self.t1)

    @property
    def baseline(self) -> float:
        c0, c1 = self.camera_centers()
        return float(np.linalg.norm(c1 - c0))

    def triangulate(
        self,
        bearings0: np.ndarray,
        bearings1: np.ndarray,
        method: TriangulationMethod = "idw",
        eps: float = DEFAULT_EPS,
    ) -> tuple[np.ndarray, np.ndarray]:
        """
        Triangulate N correspondences.

        Returns (XYZ (N,3), status (N,) of str). Rows whose status is not "ok" are either
        NaN (degenerate / at infinity) or a point behind one of the cameras.
        """
        b0 = np.asarray(bearings0, dtype=np.float64).reshape(-1, 3)
        b1 = np.asarray(bearings1, dtype=np.float64).reshape(-1, 3)
        if b0.shape[0] != b1.shape[0]:
            raise ValueError("bearings0 and bearings1 must have the same length")
        if not (np.all(np.isfinite(b0)) and np.all(np.isfinite(b1))):
            raise ValueError("bearings must be finite")

        n = b0.shape[0]
        XYZ = np.full((n, 3), np.nan, dtype=np.float64)
        status = np.empty((n,), dtype="<U16")
        for i in range(n):
            res = triangulate_two_view(self.R0, self.t0, b0[i], self.R1, self.t1, b1[i], method=method, eps=eps)
            XYZ[i] = res.X
            status[i] = res.status

        if n:
            counts = status_counts(status)
            logger.info(
                "triangulated %d/%d correspondences with %s (rejected: %s)",
                counts["ok"],
                n,
                method,
                ", ".join(f"{k}={v}" for k, v in counts.items() if k != "ok" and v) or "none",
            )
        return XYZ, status


def status_counts(status: np.ndarray) -> dict[str, int]:
    status = np.asarray(status)
    return {s: int(np.count_nonzero(status == s)) for s in STATUSES}
