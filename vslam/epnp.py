"""Non-iterative perspective-n-point pose estimation (EPnP)."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from numpy.linalg import LinAlgError

from .linalg import qr_solve

# Pairs of control points, in the order used for the distance constraints.
_PAIR_A = np.array([0, 0, 0, 1, 1, 2])
_PAIR_B = np.array([1, 2, 3, 2, 3, 3])

# (i, k, factor) for each of the ten products beta_i * beta_k.
_BETA_TERMS = (
    (0, 0, 1.0), (0, 1, 2.0), (1, 1, 1.0), (0, 2, 2.0), (1, 2, 2.0),
    (2, 2, 1.0), (0, 3, 2.0), (1, 3, 2.0), (2, 3, 2.0), (3, 3, 1.0),
)

_GAUSS_NEWTON_ITERATIONS = 5


@dataclass(frozen=True, eq=False)
class PoseEstimate:
    """Camera pose ``x_c = rotation @ x_w + translation`` and its mean reprojection error."""

    rotation: np.ndarray
    translation: np.ndarray
    error: float


def _as_correspondences(points_3d, points_2d):
    pws = np.asarray(points_3d, dtype=float)
    us = np.asarray(points_2d, dtype=float)
    if pws.ndim != 2 or pws.shape[1] != 3:
        raise ValueError("points_3d must have shape (n, 3)")
    if us.ndim != 2 or us.shape[1] != 2:
        raise ValueError("points_2d must have shape (n, 2)")
    if pws.shape[0] != us.shape[0]:
        raise ValueError("points_3d and points_2d differ in length")
    if pws.shape[0] == 0:
        raise ValueError("at least one correspondence is required")
    return pws, us


def _choose_control_points(pws):
    centroid = pws.mean(axis=0)
    centred = pws - centroid
    u, singular, _ = np.linalg.svd(centred.T @ centred)
    scales = np.sqrt(singular / pws.shape[0])
    control = np.empty((4, 3))
    control[0] = centroid
    control[1:] = centroid + scales[:, None] * u.T
    return control


def _barycentric_coordinates(pws, control):
    basis_inv = np.linalg.pinv((control[1:] - control[0]).T)
    alphas = np.empty((pws.shape[0], 4))
    alphas[:, 1:] = (pws - control[0]) @ basis_inv.T
    alphas[:, 0] = 1.0 - alphas[:, 1:].sum(axis=1)
    return alphas


def _compute_l(null_vectors):
    diffs = null_vectors[:, _PAIR_A] - null_vectors[:, _PAIR_B]
    return np.stack(
        [factor * np.einsum("jd,jd->j", diffs[i], diffs[k]) for i, k, factor in _BETA_TERMS],
        axis=1,
    )


def _compute_rho(control):
    return np.sum((control[_PAIR_A] - control[_PAIR_B]) ** 2, axis=1)


def _betas_approx_1(l_6x10, rho):
    b4 = np.linalg.lstsq(l_6x10[:, [0, 1, 3, 6]], rho, rcond=None)[0]
    if b4[0] < 0:
        b0 = np.sqrt(-b4[0])
        return np.array([b0, -b4[1] / b0, -b4[2] / b0, -b4[3] / b0])
    b0 = np.sqrt(b4[0])
    return np.array([b0, b4[1] / b0, b4[2] / b0, b4[3] / b0])


def _leading_pair(b):
    if b[0] < 0:
        b0 = np.sqrt(-b[0])
        b1 = np.sqrt(-b[2]) if b[2] < 0 else 0.0
    else:
        b0 = np.sqrt(b[0])
        b1 = np.sqrt(b[2]) if b[2] > 0 else 0.0
    if b[1] < 0:
        b0 = -b0
    return b0, b1


def _betas_approx_2(l_6x10, rho):
    b3 = np.linalg.lstsq(l_6x10[:, :3], rho, rcond=None)[0]
    b0, b1 = _leading_pair(b3)
    return np.array([b0, b1, 0.0, 0.0])


def _betas_approx_3(l_6x10, rho):
    b5 = np.linalg.lstsq(l_6x10[:, :5], rho, rcond=None)[0]
    b0, b1 = _leading_pair(b5)
    return np.array([b0, b1, b5[3] / b0, 0.0])


def _gauss_newton_system(l_6x10, rho, betas):
    b0, b1, b2, b3 = betas
    cols = l_6x10.T
    jacobian = np.stack([
        2 * cols[0] * b0 + cols[1] * b1 + cols[3] * b2 + cols[6] * b3,
        cols[1] * b0 + 2 * cols[2] * b1 + cols[4] * b2 + cols[7] * b3,
        cols[3] * b0 + cols[4] * b1 + 2 * cols[5] * b2 + cols[8] * b3,
        cols[6] * b0 + cols[7] * b1 + cols[8] * b2 + 2 * cols[9] * b3,
    ], axis=1)
    products = np.array([betas[i] * betas[k] for i, k, _ in _BETA_TERMS])
    residual = rho - l_6x10 @ products
    return jacobian, residual


def _gauss_newton(l_6x10, rho, betas):
    betas = np.array(betas, dtype=float)
    for _ in range(_GAUSS_NEWTON_ITERATIONS):
        jacobian, residual = _gauss_newton_system(l_6x10, rho, betas)
        try:
            step = qr_solve(jacobian, residual)
        except LinAlgError:
            break
        betas += step
    return betas


def _estimate_rotation_translation(pcs, pws):
    pc0 = pcs.mean(axis=0)
    pw0 = pws.mean(axis=0)
    cross = (pcs - pc0).T @ (pws - pw0)
    u, _, vt = np.linalg.svd(cross)
    rotation = u @ vt
    if np.linalg.det(rotation) < 0:
        rotation[2] = -rotation[2]
    translation = pc0 - rotation @ pw0
    return rotation, translation


@dataclass(frozen=True)
class EPnP:
    """EPnP solver for a pinhole camera with focal lengths and principal point."""

    fu: float
    fv: float
    uc: float
    vc: float

    def compute_pose(self, points_3d, points_2d):
        """Estimate the camera pose from world points and their image projections."""
        pws, us = _as_correspondences(points_3d, points_2d)
        with np.errstate(divide="ignore", invalid="ignore"):
            control = _choose_control_points(pws)
            alphas = _barycentric_coordinates(pws, control)
            m = self._projection_system(alphas, us)
            u, _, _ = np.linalg.svd(m.T @ m)
            null_vectors = u.T[[11, 10, 9, 8]].reshape(4, 4, 3)

            l_6x10 = _compute_l(null_vectors)
            rho = _compute_rho(control)

            candidates = [
                self._pose_from_betas(
                    null_vectors, _gauss_newton(l_6x10, rho, approx(l_6x10, rho)), alphas, pws, us
                )
                for approx in (_betas_approx_1, _betas_approx_2, _betas_approx_3)
            ]
        return min(candidates, key=lambda estimate: estimate.error)

    def reprojection_error(self, rotation, translation, points_3d, points_2d):
        """Mean pixel distance between observed and reprojected points."""
        pws, us = _as_correspondences(points_3d, points_2d)
        rotation = np.asarray(rotation, dtype=float)
        translation = np.asarray(translation, dtype=float).reshape(3)
        pcs = pws @ rotation.T + translation
        inv_z = 1.0 / pcs[:, 2]
        ue = self.uc + self.fu * pcs[:, 0] * inv_z
        ve = self.vc + self.fv * pcs[:, 1] * inv_z
        return float(np.mean(np.hypot(us[:, 0] - ue, us[:, 1] - ve)))

    def _projection_system(self, alphas, us):
        n = alphas.shape[0]
        m = np.zeros((n, 2, 4, 3))
        m[:, 0, :, 0] = alphas * self.fu
        m[:, 0, :, 2] = alphas * (self.uc - us[:, 0])[:, None]
        m[:, 1, :, 1] = alphas * self.fv
        m[:, 1, :, 2] = alphas * (self.vc - us[:, 1])[:, None]
        return m.reshape(2 * n, 12)

    def _pose_from_betas(self, null_vectors, betas, alphas, pws, us):
        ccs = np.tensordot(betas, null_vectors, axes=1)
        pcs = alphas @ ccs
        if pcs[0, 2] < 0.0:
            pcs = -pcs
        rotation, translation = _estimate_rotation_translation(pcs, pws)
        error = self.reprojection_error(rotation, translation, pws, us)
        if math.isnan(error):
            error = math.inf
        return PoseEstimate(rotation=rotation, translation=translation, error=error)