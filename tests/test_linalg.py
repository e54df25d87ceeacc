import math

import numpy as np
import pytest
from numpy.linalg import LinAlgError

from vslam.linalg import mat_to_quat, qr_solve, relative_error


def _axis_angle(axis, angle):
    axis = np.asarray(axis, dtype=float)
    axis = axis / np.linalg.norm(axis)
    k = np.array([[0, -axis[2], axis[1]], [axis[2], 0, -axis[0]], [-axis[1], axis[0], 0]])
    return np.eye(3) + math.sin(angle) * k + (1 - math.cos(angle)) * (k @ k)


def test_qr_solve_matches_least_squares():
    rng = np.random.default_rng(1)
    a = rng.normal(size=(6, 4))
    b = rng.normal(size=6)
    expected = np.linalg.lstsq(a, b, rcond=None)[0]
    assert np.allclose(qr_solve(a, b), expected, atol=1e-10)


def test_qr_solve_square_system_is_exact():
    rng = np.random.default_rng(2)
    a = rng.normal(size=(4, 4))
    x = rng.normal(size=4)
    assert np.allclose(qr_solve(a, a @ x), x, atol=1e-10)


def test_qr_solve_accepts_column_vector():
    rng = np.random.default_rng(3)
    a = rng.normal(size=(5, 3))
    x = rng.normal(size=3)
    result = qr_solve(a, (a @ x).reshape(5, 1))
    assert result.shape == (3,)
    assert np.allclose(result, x, atol=1e-10)


def test_qr_solve_leaves_inputs_untouched():
    rng = np.random.default_rng(4)
    a = rng.normal(size=(6, 4))
    b = rng.normal(size=6)
    a_copy, b_copy = a.copy(), b.copy()
    qr_solve(a, b)
    assert np.array_equal(a, a_copy)
    assert np.array_equal(b, b_copy)


def test_qr_solve_singular_raises():
    a = np.ones((6, 4))
    a[:, 2] = 0.0
    with pytest.raises(LinAlgError):
        qr_solve(a, np.ones(6))


def test_qr_solve_rejects_wide_matrix():
    with pytest.raises(ValueError):
        qr_solve(np.ones((2, 4)), np.ones(2))


def test_qr_solve_rejects_mismatched_rhs():
    with pytest.raises(ValueError):
        qr_solve(np.eye(3), np.ones(4))


def test_mat_to_quat_identity():
    assert np.allclose(mat_to_quat(np.eye(3)), [0.0, 0.0, 0.0, 1.0])


@pytest.mark.parametrize("seed", range(5))
def test_mat_to_quat_unit_norm_and_half_angle(seed):
    rng = np.random.default_rng(seed)
    axis = rng.normal(size=3)
    angle = rng.uniform(0.1, 2.0)
    q = mat_to_quat(_axis_angle(axis, angle))
    assert math.isclose(np.linalg.norm(q), 1.0, rel_tol=1e-9)
    assert math.isclose(abs(q[3]), math.cos(angle / 2), rel_tol=1e-9)
    assert math.isclose(np.linalg.norm(q[:3]), math.sin(angle / 2), rel_tol=1e-9)


@pytest.mark.parametrize("axis_index", [0, 1, 2])
def test_mat_to_quat_half_turn_branches(axis_index):
    axis = np.zeros(3)
    axis[axis_index] = 1.0
    q = mat_to_quat(_axis_angle(axis, math.pi))
    assert np.allclose(np.abs(q[:3]), axis, atol=1e-9)
    assert abs(q[3]) < 1e-9


def test_mat_to_quat_transpose_is_conjugate():
    r = _axis_angle([1.0, 2.0, -0.5], 0.7)
    q = mat_to_quat(r)
    q_t = mat_to_quat(r.T)
    assert np.allclose(q_t[:3], -q[:3])
    assert math.isclose(q_t[3], q[3])


def test_mat_to_quat_rejects_bad_shape():
    with pytest.raises(ValueError):
        mat_to_quat(np.eye(4))


def test_relative_error_zero_for_identical_pose():
    r = _axis_angle([0.3, -1.0, 0.2], 1.1)
    t = np.array([0.5, -0.2, 3.0])
    rot_err, transl_err = relative_error(r, t, r, t)
    assert rot_err == pytest.approx(0.0, abs=1e-12)
    assert transl_err == pytest.approx(0.0, abs=1e-12)


def test_relative_error_translation_scaled_twice():
    r = np.eye(3)
    t = np.array([1.0, 2.0, 3.0])
    _, transl_err = relative_error(r, t, r, 2 * t)
    assert transl_err == pytest.approx(1.0)


def test_relative_error_grows_with_rotation_difference():
    r = np.eye(3)
    t = np.array([0.0, 0.0, 1.0])
    small, _ = relative_error(r, t, _axis_angle([0, 0, 1], 0.1), t)
    large, _ = relative_error(r, t, _axis_angle([0, 0, 1], 0.5), t)
    assert 0.0 < small < large