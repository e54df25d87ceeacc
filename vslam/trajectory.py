"""Tracked-frame records and export of camera trajectories in TUM, KITTI and CARLA formats."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .motion_model import pose_inverse

_CARLA_TIME_TOLERANCE = 1e-4


class TrackingState(enum.IntEnum):
    SYSTEM_NOT_READY = -1
    NO_IMAGES_YET = 0
    NOT_INITIALIZED = 1
    OK = 2
    LOST = 3


@dataclass(eq=False)
class KeyFrameRecord:
    """A keyframe's world-to-camera pose and its place in the spanning tree.

    ``tcp`` is the pose relative to the parent, recorded when the keyframe
    was culled (``bad``).
    """

    id: int
    timestamp: float
    pose: np.ndarray
    bad: bool = False
    parent: Optional["KeyFrameRecord"] = None
    tcp: Optional[np.ndarray] = None

    @property
    def rotation(self) -> np.ndarray:
        return np.asarray(self.pose, dtype=float)[:3, :3].copy()

    @property
    def camera_center(self) -> np.ndarray:
        pose = np.asarray(self.pose, dtype=float)
        return -pose[:3, :3].T @ pose[:3, 3]


@dataclass(eq=False)
class TrackedFrame:
    """Pose of a frame relative to its reference keyframe, kept to rebuild the trajectory."""

    relative_frame_pose: np.ndarray
    reference_keyframe: KeyFrameRecord
    time: float
    lost: bool = False


def rotation_to_quaternion(rotation) -> Tuple[float, float, float, float]:
    """Unit quaternion ``(x, y, z, w)`` of a 3x3 rotation matrix."""
    m = np.asarray(rotation, dtype=float)
    if m.shape != (3, 3):
        raise ValueError("rotation must be a 3x3 matrix")
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    q = [0.0, 0.0, 0.0]
    if trace > 0:
        t = math.sqrt(trace + 1.0)
        w = 0.5 * t
        t = 0.5 / t
        q = [(m[2, 1] - m[1, 2]) * t, (m[0, 2] - m[2, 0]) * t, (m[1, 0] - m[0, 1]) * t]
    else:
        i = 0
        if m[1, 1] > m[0, 0]:
            i = 1
        if m[2, 2] > m[i, i]:
            i = 2
        j = (i + 1) % 3
        k = (j + 1) % 3
        t = math.sqrt(m[i, i] - m[j, j] - m[k, k] + 1.0)
        q[i] = 0.5 * t
        t = 0.5 / t
        w = (m[k, j] - m[j, k]) * t
        q[j] = (m[j, i] + m[i, j]) * t
        q[k] = (m[k, i] + m[i, k]) * t
    return float(q[0]), float(q[1]), float(q[2]), float(w)


def reference_world_pose(keyframe: KeyFrameRecord) -> np.ndarray:
    """World-to-camera pose of a keyframe, walking up the spanning tree past culled ones."""
    transform = np.eye(4)
    current = keyframe
    while current.bad:
        if current.tcp is None or current.parent is None:
            raise LookupError(f"culled keyframe {current.id} has no parent to fall back on")
        transform = transform @ np.asarray(current.tcp, dtype=float)
        current = current.parent
    return transform @ np.asarray(current.pose, dtype=float)


def _sorted_keyframes(keyframes) -> List[KeyFrameRecord]:
    return sorted(keyframes, key=lambda kf: kf.id)


def camera_poses(tracked_frames, keyframes, skip_lost=True):
    """Camera-to-world poses of tracked frames, with the first keyframe at the origin.

    Returns a list of ``(time, rotation_wc, translation_wc)``.
    """
    ordered = _sorted_keyframes(keyframes)
    if not ordered:
        raise ValueError("at least one keyframe is required")
    origin = pose_inverse(ordered[0].pose)

    poses = []
    for frame in tracked_frames:
        if skip_lost and frame.lost:
            continue
        world = reference_world_pose(frame.reference_keyframe) @ origin
        tcw = np.asarray(frame.relative_frame_pose, dtype=float) @ world
        rwc = tcw[:3, :3].T
        twc = -rwc @ tcw[:3, 3]
        poses.append((float(frame.time), rwc, twc))
    return poses


def _f32(values) -> List[float]:
    return [float(v) for v in np.asarray(values, dtype=np.float32).reshape(-1)]


def _fixed(values: Sequence[float], digits: int) -> List[str]:
    return [f"{value:.{digits}f}" for value in values]


def write_trajectory_tum(path, tracked_frames, keyframes) -> int:
    """Write ``time tx ty tz qx qy qz qw`` for every frame that was not lost.

    Returns the number of lines written.
    """
    poses = camera_poses(tracked_frames, keyframes, skip_lost=True)
    lines = []
    for time, rwc, twc in poses:
        rwc32 = np.asarray(rwc, dtype=np.float32)
        values = _f32(twc) + _f32(rotation_to_quaternion(rwc32.astype(float)))
        lines.append(" ".join([f"{time:.6f}"] + _fixed(values, 9)))
    Path(path).write_text("".join(line + "\n" for line in lines), encoding="utf-8")
    return len(lines)


def write_trajectory_kitti(path, tracked_frames, keyframes) -> int:
    """Write the twelve entries of ``[R|t]`` (camera to world) for every tracked frame."""
    poses = camera_poses(tracked_frames, keyframes, skip_lost=False)
    lines = []
    for _, rwc, twc in poses:
        rwc32 = _f32(rwc)
        twc32 = _f32(twc)
        values = []
        for row in range(3):
            values.extend(rwc32[3 * row:3 * row + 3])
            values.append(twc32[row])
        lines.append(" ".join(_fixed(values, 9)))
    Path(path).write_text("".join(line + "\n" for line in lines), encoding="utf-8")
    return len(lines)


def write_keyframe_trajectory_tum(path, keyframes) -> int:
    """Write ``time tx ty tz qx qy qz qw`` for each good keyframe, ordered by id."""
    lines = []
    for keyframe in _sorted_keyframes(keyframes):
        if keyframe.bad:
            continue
        rwc = np.asarray(keyframe.rotation.T, dtype=np.float32).astype(float)
        values = _f32(keyframe.camera_center) + _f32(rotation_to_quaternion(rwc))
        lines.append(" ".join([f"{float(keyframe.timestamp):.6f}"] + _fixed(values, 7)))
    Path(path).write_text("".join(line + "\n" for line in lines), encoding="utf-8")
    return len(lines)


def write_carla_ground_truth(sequence_dir, result_dir, keyframes) -> Path:
    """Copy the ground-truth pose line of each good keyframe into ``carla_key_frame_sem.txt``.

    ``times.txt`` and ``pos_kitti.txt`` in ``sequence_dir`` are read in step;
    each keyframe takes the first following line whose time matches its own.
    Raises ``ValueError`` when the sequence ends before a match is found.
    """
    sequence_dir = Path(sequence_dir)
    times = iter(float(token) for token in
                 (sequence_dir / "times.txt").read_text(encoding="utf-8").split())
    positions = iter((sequence_dir / "pos_kitti.txt").read_text(encoding="utf-8").splitlines())
    output = Path(result_dir) / "carla_key_frame_sem.txt"

    def advance():
        try:
            return next(times), next(positions)
        except StopIteration:
            raise ValueError("ground truth ended before all keyframes were matched") from None

    lines = []
    for keyframe in _sorted_keyframes(keyframes):
        if keyframe.bad:
            continue
        time, line = advance()
        while abs(time - keyframe.timestamp) > _CARLA_TIME_TOLERANCE:
            time, line = advance()
        lines.append(line)

    output.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
    return output