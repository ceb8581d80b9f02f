from __future__ import annotations

import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from stereotri.core.geometry import projection_matrix
from stereotri.core.triangulation import (
    dlt_design_matrix,
    triangulate_dlt,
    triangulate_dlt_homogeneous,
    triangulate_idw,
    triangulate_l1_angular,
    triangulate_linf_angular,
)


def _pose(R: np.ndarray, center: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    R = np.asarray(R, dtype=np.float64)
    return R, -R @ np.asarray(center, dtype=np.float64)


def _bearing(R: np.ndarray, t: np.ndarray, X: np.ndarray) -> np.ndarray:
    b = R @ X + t
    return b / np.linalg.norm(b)


def _solve_all(R0, t0, x0, R1, t1, x1) -> dict[str, np.ndarray]:
    P0 = projection_matrix(R0, t0)
    P1 = projection_matrix(R1, t1)
    X_idw, _valid = triangulate_idw(P0, x0, P1, x1)
    return {
        "dlt": triangulate_dlt(P0, x0, P1, x1),
        "l1_angular": triangulate_l1_angular(R0, t0, x0, R1, t1, x1),
        "linf_angular": triangulate_linf_angular(R0, t0, x0, R1, t1, x1),
        "idw": X_idw,
    }


def _general_config():
    R0, t0 = _pose(Rotation.from_rotvec([0.05, -0.1, 0.02]).as_matrix(), [0.2, -0.1, 0.0])
    R1, t1 = _pose(Rotation.from_rotvec([-0.03, -0.25, 0.01]).as_matrix(), [1.5, 0.1, 0.3])
    X = np.array([0.4, 0.3, 6.0])
    return R0, t0, R1, t1, X


def _noisy_bearings(R0, t0, R1, t1, X):
    x0 = _bearing(R0, t0, X) + np.array([1e-3, -2e-3, 0.0])
    x1 = _bearing(R1, t1, X) + np.array([-1.5e-3, 0.5e-3, 1e-3])
    return x0, x1


def _angle(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.arctan2(np.linalg.norm(np.cross(a, b)), a @ b))


def test_all_methods_recover_point_on_axis():
    R0, t0 = _pose(np.eye(3), [0.0, 0.0, 0.0])
    R1, t1 = _pose(np.eye(3), [1.0, 0.0, 0.0])
    X = np.array([0.0, 0.0, 5.0])
    x0 = _bearing(R0, t0, X)
    x1 = _bearing(R1, t1, X)

    for name, X_est in _solve_all(R0, t0, x0, R1, t1, x1).items():
        assert np.linalg.norm(X_est - X) < 1e-6, name

    _X, valid = triangulate_idw(projection_matrix(R0, t0), x0, projection_matrix(R1, t1), x1)
    assert valid


def test_noise_free_round_trip_general_poses():
    R0, t0, R1, t1, X = _general_config()
    x0 = _bearing(R0, t0, X)
    x1 = _bearing(R1, t1, X)

    for name, X_est in _solve_all(R0, t0, x0, R1, t1, x1).items():
        assert np.linalg.norm(X_est - X) <= 1e-9 * np.linalg.norm(X), name


def test_dlt_homogeneous_is_unit_null_vector():
    R0, t0, R1, t1, X = _general_config()
    P0 = projection_matrix(R0, t0)
    P1 = projection_matrix(R1, t1)
    x0 = _bearing(R0, t0, X)
    x1 = _bearing(R1, t1, X)

    X_h = triangulate_dlt_homogeneous(P0, x0, P1, x1)
    assert X_h.shape == (4,)
    assert abs(np.linalg.norm(X_h) - 1.0) < 1e-12
    assert np.max(np.abs(dlt_design_matrix(P0, x0, P1, x1) @ X_h)) < 1e-12
    assert np.linalg.norm(X_h[:3] / X_h[3] - X) < 1e-9 * np.linalg.norm(X)


def test_dlt_accepts_image_coordinates():
    R0, t0, R1, t1, X = _general_config()
    # [u, v, 1] normalized image coordinates instead of unit bearings.
    x0 = R0 @ X + t0
    x1 = R1 @ X + t1
    X_est = triangulate_dlt(projection_matrix(R0, t0), x0 / x0[2], projection_matrix(R1, t1), x1 / x1[2])
    assert np.linalg.norm(X_est - X) < 1e-9 * np.linalg.norm(X)


@pytest.mark.parametrize("s0,s1", [(3.7, 1.0), (0.2, 5.0), (1.0, 0.01)])
def test_bearing_scale_does_not_change_point_noise_free(s0: float, s1: float):
    R0, t0, R1, t1, X = _general_config()
    x0 = _bearing(R0, t0, X)
    x1 = _bearing(R1, t1, X)

    ref = _solve_all(R0, t0, x0, R1, t1, x1)
    scaled = _solve_all(R0, t0, s0 * x0, R1, t1, s1 * x1)
    for name in ref:
        assert np.linalg.norm(scaled[name] - ref[name]) < 1e-9 * np.linalg.norm(X), name


def test_bearing_scale_does_not_change_point_with_noise():
    R0, t0, R1, t1, X = _general_config()
    x0, x1 = _noisy_bearings(R0, t0, R1, t1, X)
    P0 = projection_matrix(R0, t0)
    P1 = projection_matrix(R1, t1)

    # IDW weights depend on the bearing norms, so it is left out.
    pairs = [
        (triangulate_dlt(P0, x0, P1, x1), triangulate_dlt(P0, 2.5 * x0, P1, 0.3 * x1)),
        (
            triangulate_l1_angular(R0, t0, x0, R1, t1, x1),
            triangulate_l1_angular(R0, t0, 2.5 * x0, R1, t1, 0.3 * x1),
        ),
        (
            triangulate_linf_angular(R0, t0, x0, R1, t1, x1),
            triangulate_linf_angular(R0, t0, 2.5 * x0, R1, t1, 0.3 * x1),
        ),
    ]
    for a, b in pairs:
        assert np.linalg.norm(a - b) < 1e-9 * np.linalg.norm(X)


def test_swapping_cameras_gives_same_point_noise_free():
    R0, t0, R1, t1, X = _general_config()
    x0 = _bearing(R0, t0, X)
    x1 = _bearing(R1, t1, X)

    forward = _solve_all(R0, t0, x0, R1, t1, x1)
    swapped = _solve_all(R1, t1, x1, R0, t0, x0)
    for name in forward:
        assert np.linalg.norm(forward[name] - swapped[name]) < 1e-9 * np.linalg.norm(X), name


def test_dlt_is_symmetric_with_noise():
    R0, t0, R1, t1, X = _general_config()
    x0, x1 = _noisy_bearings(R0, t0, R1, t1, X)
    P0 = projection_matrix(R0, t0)
    P1 = projection_matrix(R1, t1)
    a = triangulate_dlt(P0, x0, P1, x1)
    b = triangulate_dlt(P1, x1, P0, x0)
    assert np.linalg.norm(a - b) < 1e-9 * np.linalg.norm(X)


def test_l1_angular_leaves_one_ray_uncorrected():
    R0, t0, R1, t1, X = _general_config()
    x0, x1 = _noisy_bearings(R0, t0, R1, t1, X)

    X_est = triangulate_l1_angular(R0, t0, x0, R1, t1, x1)
    e0 = _angle(x0, R0 @ X_est + t0)
    e1 = _angle(x1, R1 @ X_est + t1)
    assert min(e0, e1) < 1e-10
    assert max(e0, e1) > 1e-5


def test_linf_angular_balances_both_errors():
    R0, t0, R1, t1, X = _general_config()
    x0, x1 = _noisy_bearings(R0, t0, R1, t1, X)

    X_est = triangulate_linf_angular(R0, t0, x0, R1, t1, x1)
    e0 = _angle(x0, R0 @ X_est + t0)
    e1 = _angle(x1, R1 @ X_est + t1)
    assert e0 > 1e-6
    assert abs(e0 - e1) < 1e-10

    # The max error can not be larger than the one left by the L1 solution.
    X_l1 = triangulate_l1_angular(R0, t0, x0, R1, t1, x1)
    l1_max = max(_angle(x0, R0 @ X_l1 + t0), _angle(x1, R1 @ X_l1 + t1))
    assert max(e0, e1) <= l1_max + 1e-12


def test_idw_rejects_point_behind_camera():
    R0, t0 = _pose(np.eye(3), [0.0, 0.0, 0.0])
    R1, t1 = _pose(np.eye(3), [1.0, 0.0, 10.0])
    X = np.array([0.0, 0.0, 5.0])
    # Pinhole projection of a point behind camera 1 yields the forward ray [u, v, 1].
    x0 = R0 @ X + t0
    x1 = R1 @ X + t1
    assert x1[2] < 0
    x0 = x0 / x0[2]
    x1 = x1 / x1[2]

    _X, valid = triangulate_idw(projection_matrix(R0, t0), x0, projection_matrix(R1, t1), x1)
    assert not valid


def test_fast_path_zero_baseline_is_not_flagged():
    # Coincident centers: the unguarded formulas return the camera center or NaN silently.
    R0, t0 = _pose(np.eye(3), [0.3, 0.0, 0.0])
    R1, t1 = _pose(np.eye(3), [0.3, 0.0, 0.0])
    x0 = np.array([0.0, 0.0, 1.0])
    x1 = np.array([0.1, 0.0, 1.0])

    X_l1 = triangulate_l1_angular(R0, t0, x0, R1, t1, x1)
    assert np.allclose(X_l1, [0.3, 0.0, 0.0])

    X_idw, valid = triangulate_idw(projection_matrix(R0, t0), x0, projection_matrix(R1, t1), x1)
    assert not np.all(np.isfinite(X_idw))
    assert not valid


def test_dlt_point_at_infinity_is_not_finite():
    R0, t0 = _pose(np.eye(3), [0.0, 0.0, 0.0])
    R1, t1 = _pose(np.eye(3), [1.0, 0.0, 0.0])
    x = np.array([0.0, 0.0, 1.0])

    X_h = triangulate_dlt_homogeneous(projection_matrix(R0, t0), x, projection_matrix(R1, t1), x)
    assert abs(X_h[3]) < 1e-12
    assert abs(abs(X_h[2]) - 1.0) < 1e-12


def test_fast_path_dlt_propagates_nan_input():
    R0, t0 = _pose(np.eye(3), [0.0, 0.0, 0.0])
    R1, t1 = _pose(np.eye(3), [1.0, 0.0, 0.0])
    x0 = np.array([np.nan, 0.0, 1.0])
    x1 = np.array([-0.2, 0.0, 1.0])

    X_h = triangulate_dlt_homogeneous(projection_matrix(R0, t0), x0, projection_matrix(R1, t1), x1)
    assert np.all(np.isnan(X_h))
    assert np.all(np.isnan(triangulate_dlt(projection_matrix(R0, t0), x0, projection_matrix(R1, t1), x1)))
