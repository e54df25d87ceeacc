"""RANSAC camera pose estimation from 2D-3D correspondences using EPnP."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
from numpy.linalg import LinAlgError

from .epnp import EPnP


@dataclass(frozen=True)
class Correspondence:
    """A map point seen at an undistorted keypoint of the current frame."""

    point_3d: Sequence[float]
    point_2d: Sequence[float]
    keypoint_index: int
    sigma2: float = 1.0


@dataclass(frozen=True, eq=False)
class PnPResult:
    """Outcome of a RANSAC run.

    ``pose`` is the 4x4 world-to-camera transform, or ``None`` when no pose
    was accepted. ``inliers`` is indexed by keypoint and is empty without a pose.
    ``no_more`` is true once the iteration budget is spent.
    """

    pose: Optional[np.ndarray]
    inliers: tuple
    n_inliers: int
    no_more: bool

    @property
    def found(self) -> bool:
        return self.pose is not None


def _pose_matrix(rotation, translation):
    pose = np.eye(4)
    pose[:3, :3] = rotation
    pose[:3, 3] = translation
    return pose


class PnPSolver:
    """Robust PnP: EPnP hypotheses on minimal sets, refined on the best inlier set."""

    def __init__(self, correspondences, fu, fv, uc, vc, n_matches=None, rng=None):
        corr = list(correspondences)
        self._points_3d = np.array([c.point_3d for c in corr], dtype=float).reshape(-1, 3)
        self._points_2d = np.array([c.point_2d for c in corr], dtype=float).reshape(-1, 2)
        self._sigma2 = np.array([c.sigma2 for c in corr], dtype=float)
        self._keypoint_indices = [int(c.keypoint_index) for c in corr]

        if n_matches is None:
            n_matches = max(self._keypoint_indices, default=-1) + 1
        if any(idx < 0 or idx >= n_matches for idx in self._keypoint_indices):
            raise ValueError("keypoint index outside the range of matches")
        self.n_matches = int(n_matches)

        self._epnp = EPnP(fu, fv, uc, vc)
        self._rng = rng if rng is not None else random.Random()

        self._iterations = 0
        self._best_inliers = np.zeros(len(corr), dtype=bool)
        self._best_count = 0
        self._best_pose: Optional[np.ndarray] = None

        self.set_ransac_parameters()

    def __len__(self) -> int:
        return self._points_3d.shape[0]

    def set_ransac_parameters(self, probability=0.99, min_inliers=8, max_iterations=300,
                              min_set=4, epsilon=0.4, th2=5.991):
        """Configure RANSAC, adapting the thresholds to the number of correspondences."""
        if min_set < 1:
            raise ValueError("minimal set must hold at least one point")
        n = len(self)
        self.probability = float(probability)
        self.min_set = int(min_set)

        required = int(n * epsilon)
        required = max(required, int(min_inliers), self.min_set)
        self.min_inliers = required

        if n > 0:
            epsilon = max(float(epsilon), required / n)
        self.epsilon = float(epsilon)

        if required == n:
            n_iterations = 1
        elif self.epsilon >= 1.0 or n == 0:
            n_iterations = 1
        else:
            denominator = math.log(1.0 - self.epsilon ** 3)
            if self.probability >= 1.0 or denominator == 0.0:
                n_iterations = int(max_iterations)
            else:
                n_iterations = math.ceil(math.log(1.0 - self.probability) / denominator)

        self.max_iterations = max(1, min(n_iterations, int(max_iterations)))
        self._max_error = self._sigma2 * float(th2)

    def find(self) -> PnPResult:
        """Run RANSAC for the whole iteration budget."""
        return self.iterate(self.max_iterations)

    def iterate(self, n_iterations) -> PnPResult:
        """Run at least ``n_iterations`` RANSAC iterations and return the outcome."""
        n = len(self)
        if n < self.min_inliers:
            return PnPResult(None, (), 0, True)

        current = 0
        while self._iterations < self.max_iterations or current < n_iterations:
            current += 1
            self._iterations += 1

            sample = self._rng.sample(range(n), self.min_set)
            fit = self._fit(sample)
            if fit is None:
                continue
            pose, inliers = fit
            count = int(inliers.sum())

            if count >= self.min_inliers:
                if count > self._best_count:
                    self._best_inliers = inliers
                    self._best_count = count
                    self._best_pose = pose

                refined = self._refine()
                if refined is not None:
                    refined_pose, refined_inliers = refined
                    return PnPResult(
                        refined_pose,
                        self._flags(refined_inliers),
                        int(refined_inliers.sum()),
                        False,
                    )

        no_more = self._iterations >= self.max_iterations
        if no_more and self._best_count >= self.min_inliers and self._best_pose is not None:
            return PnPResult(
                self._best_pose.copy(),
                self._flags(self._best_inliers),
                self._best_count,
                True,
            )
        return PnPResult(None, (), 0, no_more)

    def _refine(self):
        indices = np.flatnonzero(self._best_inliers)
        fit = self._fit(indices)
        if fit is None:
            return None
        pose, inliers = fit
        if int(inliers.sum()) > self.min_inliers:
            return pose, inliers
        return None

    def _fit(self, indices):
        indices = np.asarray(indices, dtype=int)
        try:
            estimate = self._epnp.compute_pose(self._points_3d[indices], self._points_2d[indices])
        except (LinAlgError, ValueError):
            return None
        return _pose_matrix(estimate.rotation, estimate.translation), self._check_inliers(
            estimate.rotation, estimate.translation
        )

    def _check_inliers(self, rotation, translation):
        with np.errstate(all="ignore"):
            pcs = self._points_3d @ np.asarray(rotation).T + np.asarray(translation).reshape(3)
            inv_z = 1.0 / pcs[:, 2]
            ue = self._epnp.uc + self._epnp.fu * pcs[:, 0] * inv_z
            ve = self._epnp.vc + self._epnp.fv * pcs[:, 1] * inv_z
            error2 = (self._points_2d[:, 0] - ue) ** 2 + (self._points_2d[:, 1] - ve) ** 2
            return error2 < self._max_error

    def _flags(self, inliers):
        flags = [False] * self.n_matches
        for keypoint, is_inlier in zip(self._keypoint_indices, inliers):
            if is_inlier:
                flags[keypoint] = True
        return tuple(flags)