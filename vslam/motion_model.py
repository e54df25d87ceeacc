"""Constant-velocity motion model for predicting the next camera pose."""

from __future__ import annotations

from typing import Optional

import numpy as np


def _as_pose(pose) -> np.ndarray:
    pose = np.asarray(pose, dtype=float)
    if pose.shape != (4, 4):
        raise ValueError("pose must be a 4x4 matrix")
    return pose


def pose_inverse(pose) -> np.ndarray:
    """Inverse of a rigid 4x4 transform."""
    pose = _as_pose(pose)
    rotation_t = pose[:3, :3].T
    inverse = np.eye(4)
    inverse[:3, :3] = rotation_t
    inverse[:3, 3] = -rotation_t @ pose[:3, 3]
    return inverse


def compose(first, second) -> np.ndarray:
    """Transform applying ``second`` and then ``first``."""
    return _as_pose(first) @ _as_pose(second)


class MotionModel:
    """Keeps the last inter-frame motion and predicts the next pose from it."""

    def __init__(self):
        self._velocity: Optional[np.ndarray] = None

    @property
    def velocity(self) -> Optional[np.ndarray]:
        return None if self._velocity is None else self._velocity.copy()

    def update(self, current_pose, last_pose):
        """Record the motion from the last pose to the current one.

        Without a last pose the velocity is forgotten.
        """
        if last_pose is None:
            self._velocity = None
        else:
            self._velocity = compose(current_pose, pose_inverse(last_pose))

    def predict(self, last_pose) -> np.ndarray:
        """Pose expected for the next frame; raises ``LookupError`` without a velocity."""
        if self._velocity is None:
            raise LookupError("no velocity has been recorded")
        return compose(self._velocity, last_pose)

    def reset(self):
        self._velocity = None

    def has_velocity(self) -> bool:
        return self._velocity is not None