"""RANSAC estimation of the similarity transform between two keyframes."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

# Chi-square value at 99% for two degrees of freedom.
_CHI2_2DOF = 9.210
_SAMPLE_SIZE = 3


@dataclass(frozen=True)
class Sim3Match:
    """A matched map-point pair, each point in its own keyframe's camera frame.

    ``index1`` is the position of the match in the first keyframe's match list;
    ``sigma2_1`` and ``sigma2_2`` are the level variances of the two keypoints.
    """

    point1: Sequence[float]
    point2: Sequence[float]
    index1: int
    sigma2_1: float = 1.0
    sigma2_2: float = 1.0


@dataclass(frozen=True, eq=False)
class Sim3Estimate:
    """Similarity ``x1 = scale * rotation @ x2 + translation`` and its 4x4 forms."""

    rotation: np.ndarray
    translation: np.ndarray
    scale: float
    t12: np.ndarray
    t21: np.ndarray


@dataclass(frozen=True, eq=False)
class Sim3Result:
    """Outcome of a RANSAC run.

    ``transform`` is the 4x4 matrix T12, or ``None`` when nothing was accepted.
    ``inliers`` is indexed like the first keyframe's matches.
    """

    transform: Optional[np.ndarray]
    inliers: tuple
    n_inliers: int
    no_more: bool

    @property
    def found(self) -> bool:
        return self.transform is not None


def _rodrigues(axis_angle):
    theta = float(np.linalg.norm(axis_angle))
    if theta == 0.0 or not math.isfinite(theta):
        return np.eye(3)
    k = axis_angle / theta
    skew = np.array([
        [0.0, -k[2], k[1]],
        [k[2], 0.0, -k[0]],
        [-k[1], k[0], 0.0],
    ])
    return np.eye(3) + math.sin(theta) * skew + (1.0 - math.cos(theta)) * (skew @ skew)


def compute_sim3(points1, points2, fix_scale=True) -> Sim3Estimate:
    """Closed-form similarity aligning ``points2`` onto ``points1`` (Horn's method).

    Both inputs have shape ``(n, 3)``. With ``fix_scale`` the scale is 1.
    """
    p1 = np.asarray(points1, dtype=float)
    p2 = np.asarray(points2, dtype=float)
    if p1.ndim != 2 or p1.shape[1] != 3 or p1.shape != p2.shape:
        raise ValueError("point sets must both have shape (n, 3)")
    if p1.shape[0] == 0:
        raise ValueError("at least one point is required")

    o1 = p1.mean(axis=0)
    o2 = p2.mean(axis=0)
    pr1 = p1 - o1
    pr2 = p2 - o2

    m = pr2.T @ pr1
    n11 = m[0, 0] + m[1, 1] + m[2, 2]
    n12 = m[1, 2] - m[2, 1]
    n13 = m[2, 0] - m[0, 2]
    n14 = m[0, 1] - m[1, 0]
    n22 = m[0, 0] - m[1, 1] - m[2, 2]
    n23 = m[0, 1] + m[1, 0]
    n24 = m[2, 0] + m[0, 2]
    n33 = -m[0, 0] + m[1, 1] - m[2, 2]
    n34 = m[1, 2] + m[2, 1]
    n44 = -m[0, 0] - m[1, 1] + m[2, 2]
    n = np.array([
        [n11, n12, n13, n14],
        [n12, n22, n23, n24],
        [n13, n23, n33, n34],
        [n14, n24, n34, n44],
    ])

    _, vectors = np.linalg.eigh(n)
    quaternion = vectors[:, -1]
    vec = quaternion[1:]
    vec_norm = float(np.linalg.norm(vec))
    if vec_norm == 0.0:
        rotation = np.eye(3)
    else:
        angle = math.atan2(vec_norm, quaternion[0])
        rotation = _rodrigues(2.0 * angle * vec / vec_norm)

    p3 = pr2 @ rotation.T
    if fix_scale:
        scale = 1.0
    else:
        with np.errstate(divide="ignore", invalid="ignore"):
            scale = float(np.sum(pr1 * p3) / np.sum(p3 * p3))

    translation = o1 - scale * rotation @ o2

    t12 = np.eye(4)
    t12[:3, :3] = scale * rotation
    t12[:3, 3] = translation

    t21 = np.eye(4)
    with np.errstate(divide="ignore", invalid="ignore"):
        s_r_inv = (1.0 / scale) * rotation.T
    t21[:3, :3] = s_r_inv
    t21[:3, 3] = -s_r_inv @ translation

    return Sim3Estimate(rotation=rotation, translation=translation, scale=scale,
                        t12=t12, t21=t21)


def _intrinsics(k):
    k = np.asarray(k, dtype=float)
    if k.shape != (3, 3):
        raise ValueError("calibration must be a 3x3 matrix")
    return k[0, 0], k[1, 1], k[0, 2], k[1, 2]


def _to_image(points, k):
    fx, fy, cx, cy = _intrinsics(k)
    with np.errstate(divide="ignore", invalid="ignore"):
        inv_z = 1.0 / points[:, 2]
        return np.stack([fx * points[:, 0] * inv_z + cx, fy * points[:, 1] * inv_z + cy], axis=1)


def _project(points, transform, k):
    return _to_image(points @ transform[:3, :3].T + transform[:3, 3], k)


class Sim3Solver:
    """RANSAC over minimal three-point samples of matched map points."""

    def __init__(self, matches, n_matches=None, k1=None, k2=None, fix_scale=True, rng=None):
        match_list = list(matches)
        if k1 is None or k2 is None:
            raise ValueError("both calibration matrices are required")
        self._k1 = np.asarray(k1, dtype=float)
        self._k2 = np.asarray(k2, dtype=float)
        _intrinsics(self._k1)
        _intrinsics(self._k2)

        self._x3d_c1 = np.array([m.point1 for m in match_list], dtype=float).reshape(-1, 3)
        self._x3d_c2 = np.array([m.point2 for m in match_list], dtype=float).reshape(-1, 3)
        self._indices1 = [int(m.index1) for m in match_list]
        self._max_error1 = np.array([_CHI2_2DOF * m.sigma2_1 for m in match_list], dtype=float)
        self._max_error2 = np.array([_CHI2_2DOF * m.sigma2_2 for m in match_list], dtype=float)

        if n_matches is None:
            n_matches = max(self._indices1, default=-1) + 1
        if any(idx < 0 or idx >= n_matches for idx in self._indices1):
            raise ValueError("match index outside the range of matches")
        self.n_matches = int(n_matches)

        self.fix_scale = bool(fix_scale)
        self._rng = rng if rng is not None else random.Random()

        self._p1_im1 = _to_image(self._x3d_c1, self._k1)
        self._p2_im2 = _to_image(self._x3d_c2, self._k2)

        self._best: Optional[Sim3Estimate] = None
        self._best_count = 0
        self._best_inliers = np.zeros(len(match_list), dtype=bool)

        self.set_ransac_parameters()

    def __len__(self) -> int:
        return self._x3d_c1.shape[0]

    def set_ransac_parameters(self, probability=0.99, min_inliers=6, max_iterations=300):
        """Configure RANSAC and reset the iteration counter."""
        n = len(self)
        self.probability = float(probability)
        self.min_inliers = int(min_inliers)

        if self.min_inliers == n or n == 0:
            n_iterations = 1
        else:
            epsilon = self.min_inliers / n
            if epsilon >= 1.0:
                n_iterations = 1
            else:
                denominator = math.log(1.0 - epsilon ** 3)
                if self.probability >= 1.0 or denominator == 0.0:
                    n_iterations = int(max_iterations)
                else:
                    n_iterations = math.ceil(math.log(1.0 - self.probability) / denominator)

        self.max_iterations = max(1, min(n_iterations, int(max_iterations)))
        self._iterations = 0

    def find(self) -> Sim3Result:
        """Run RANSAC for the whole iteration budget."""
        return self.iterate(self.max_iterations)

    def iterate(self, n_iterations) -> Sim3Result:
        """Run up to ``n_iterations`` RANSAC iterations and return the outcome."""
        n = len(self)
        no_flags = (False,) * self.n_matches
        if n < self.min_inliers or n < _SAMPLE_SIZE:
            return Sim3Result(None, no_flags, 0, True)

        current = 0
        while self._iterations < self.max_iterations and current < n_iterations:
            current += 1
            self._iterations += 1

            sample = self._rng.sample(range(n), _SAMPLE_SIZE)
            estimate = compute_sim3(self._x3d_c1[sample], self._x3d_c2[sample], self.fix_scale)
            inliers = self._check_inliers(estimate)
            count = int(inliers.sum())

            if count >= self._best_count:
                self._best = estimate
                self._best_count = count
                self._best_inliers = inliers
                if count > self.min_inliers:
                    return Sim3Result(estimate.t12.copy(), self._flags(inliers), count, False)

        return Sim3Result(None, no_flags, 0, self._iterations >= self.max_iterations)

    def estimated_rotation(self) -> np.ndarray:
        return self._require_best().rotation.copy()

    def estimated_translation(self) -> np.ndarray:
        return self._require_best().translation.copy()

    def estimated_scale(self) -> float:
        return self._require_best().scale

    def _require_best(self) -> Sim3Estimate:
        if self._best is None:
            raise LookupError("no similarity has been estimated yet")
        return self._best

    def _check_inliers(self, estimate: Sim3Estimate) -> np.ndarray:
        with np.errstate(all="ignore"):
            p2_im1 = _project(self._x3d_c2, estimate.t12, self._k1)
            p1_im2 = _project(self._x3d_c1, estimate.t21, self._k2)
            err1 = np.sum((self._p1_im1 - p2_im1) ** 2, axis=1)
            err2 = np.sum((p1_im2 - self._p2_im2) ** 2, axis=1)
            return (err1 < self._max_error1) & (err2 < self._max_error2)

    def _flags(self, inliers):
        flags = [False] * self.n_matches
        for index, is_inlier in zip(self._indices1, inliers):
            if is_inlier:
                flags[index] = True
        return tuple(flags)