"""Small dense linear-algebra helpers used by the pose solvers."""

from __future__ import annotations

import math

import numpy as np
from numpy.linalg import LinAlgError


def qr_solve(a, b):
    """Solve ``a @ x = b`` in the least-squares sense with Householder QR.

    ``a`` must have at least as many rows as columns. The inputs are not
    modified. Raises ``LinAlgError`` when a pivot column vanishes.
    """
    a = np.array(a, dtype=float)
    b = np.array(b, dtype=float).reshape(-1)
    if a.ndim != 2:
        raise ValueError("matrix must be two-dimensional")
    n_rows, n_cols = a.shape
    if n_cols == 0 or n_rows < n_cols:
        raise ValueError("matrix needs at least as many rows as columns")
    if b.shape[0] != n_rows:
        raise ValueError("right-hand side does not match the matrix rows")

    diag_norm = np.empty(n_cols)
    r_diag = np.empty(n_cols)

    for k in range(n_cols):
        eta = float(np.max(np.abs(a[k:, k])))
        if eta == 0.0:
            raise LinAlgError("matrix is singular")
        a[k:, k] /= eta
        sigma = math.sqrt(float(a[k:, k] @ a[k:, k]))
        if a[k, k] < 0:
            sigma = -sigma
        a[k, k] += sigma
        diag_norm[k] = sigma * a[k, k]
        r_diag[k] = -eta * sigma
        reflector = a[k:, k]
        if k + 1 < n_cols:
            tau = (reflector @ a[k:, k + 1:]) / diag_norm[k]
            a[k:, k + 1:] -= np.outer(reflector, tau)

    # b <- Q^T b
    for j in range(n_cols):
        reflector = a[j:, j]
        tau = float(reflector @ b[j:]) / diag_norm[j]
        b[j:] -= tau * reflector

    # x = R^-1 b
    x = np.empty(n_cols)
    for i in reversed(range(n_cols)):
        x[i] = (b[i] - a[i, i + 1:] @ x[i + 1:]) / r_diag[i]
    return x


def mat_to_quat(rotation):
    """Convert a 3x3 rotation matrix to a quaternion (vector part first, scalar last)."""
    r = np.asarray(rotation, dtype=float)
    if r.shape != (3, 3):
        raise ValueError("rotation must be a 3x3 matrix")
    trace = r[0, 0] + r[1, 1] + r[2, 2]

    if trace > 0.0:
        q = np.array([r[1, 2] - r[2, 1], r[2, 0] - r[0, 2], r[0, 1] - r[1, 0], trace + 1.0])
        n4 = q[3]
    elif r[0, 0] > r[1, 1] and r[0, 0] > r[2, 2]:
        q = np.array([
            1.0 + r[0, 0] - r[1, 1] - r[2, 2],
            r[1, 0] + r[0, 1],
            r[2, 0] + r[0, 2],
            r[1, 2] - r[2, 1],
        ])
        n4 = q[0]
    elif r[1, 1] > r[2, 2]:
        q = np.array([
            r[1, 0] + r[0, 1],
            1.0 + r[1, 1] - r[0, 0] - r[2, 2],
            r[2, 1] + r[1, 2],
            r[2, 0] - r[0, 2],
        ])
        n4 = q[1]
    else:
        q = np.array([
            r[2, 0] + r[0, 2],
            r[2, 1] + r[1, 2],
            1.0 + r[2, 2] - r[0, 0] - r[1, 1],
            r[0, 1] - r[1, 0],
        ])
        n4 = q[2]

    return q * (0.5 / math.sqrt(n4))


def relative_error(rotation_true, translation_true, rotation_est, translation_est):
    """Return ``(rotation_error, translation_error)`` of an estimate relative to the truth."""
    q_true = mat_to_quat(rotation_true)
    q_est = mat_to_quat(rotation_est)
    q_norm = float(np.linalg.norm(q_true))
    rot_err = min(
        float(np.linalg.norm(q_true - q_est)) / q_norm,
        float(np.linalg.norm(q_true + q_est)) / q_norm,
    )

    t_true = np.asarray(translation_true, dtype=float).reshape(3)
    t_est = np.asarray(translation_est, dtype=float).reshape(3)
    transl_err = float(np.linalg.norm(t_true - t_est)) / float(np.linalg.norm(t_true))
    return rot_err, transl_err