# vslam

Geometry and tracking building blocks for feature-based visual SLAM, written
with NumPy. Poses are 4x4 NumPy arrays mapping world coordinates into the
camera frame.

## Modules

- `vslam.linalg`: `qr_solve(a, b)`, a Householder QR least-squares solver
  (raises `numpy.linalg.LinAlgError` on a vanishing pivot column);
  `mat_to_quat(rotation)`, which returns a quaternion with the vector part
  first and the scalar last; and `relative_error(...)`, which returns the
  rotation and translation error of an estimated pose relative to a true one.
- `vslam.epnp`: the EPnP algorithm. `EPnP(fu, fv, uc, vc).compute_pose(points_3d, points_2d)`
  returns a `PoseEstimate` with `rotation`, `translation` and the mean
  reprojection `error`; `EPnP.reprojection_error(...)` computes that error for
  any pose.
- `vslam.pnp_ransac`: `PnPSolver`, a RANSAC wrapper around EPnP built from
  `Correspondence` objects (3D point, 2D point, keypoint index, level
  variance). `set_ransac_parameters(...)` configures it; `iterate(n)` and
  `find()` return a `PnPResult` with `pose`, per-keypoint `inliers`,
  `n_inliers`, `no_more` and a `found` property. A random source can be passed
  as `rng` for repeatable runs.
- `vslam.sim3_solver`: `compute_sim3(points1, points2, fix_scale)`, Horn's
  closed-form alignment returning a `Sim3Estimate`, and `Sim3Solver`, a RANSAC
  estimator over `Sim3Match` pairs given both calibration matrices. It returns
  a `Sim3Result`; `estimated_rotation()`, `estimated_translation()` and
  `estimated_scale()` give the best estimate so far and raise `LookupError`
  before there is one.
- `vslam.settings`: `SensorType` (monocular, stereo, RGB-D), `CameraSettings`
  and `load_camera_settings(path, sensor)`, which reads calibration,
  distortion, frame rate and ORB extractor parameters from a YAML settings
  file (a leading `%YAML:1.0` line and `!!opencv-matrix` entries are
  accepted). `load_settings_file(path)` returns the raw mapping.
- `vslam.image_input`: `to_grayscale(image, rgb)` for RGB(A)/BGR(A) images,
  `depth_scale(depth_map_factor)` and `scale_depth(depth, scale)` for turning
  raw depth maps into float32 metres.
- `vslam.local_map`: `build_local_map(points, frame_id)` selects the keyframes
  and map points around a frame's matches from a graph of `KeyFrameNode` and
  `PointNode` objects and returns a `LocalMap` with the reference keyframe.
  `update_local_keyframes` and `update_local_points` are the two steps on
  their own.
- `vslam.motion_model`: a constant-velocity `MotionModel` (`update`,
  `predict`, `reset`, `has_velocity`) plus `compose` and `pose_inverse` for
  4x4 poses.
- `vslam.viewer_control`: `ViewerSettings.from_mapping(settings)` for the
  refresh period, image size and viewpoint, and `ViewerControl`, the
  thread-safe stop/finish flags a viewer loop and the tracking thread share.
- `vslam.trajectory`: `TrackingState`, `KeyFrameRecord` and `TrackedFrame`
  records, `camera_poses(...)`, and writers for the camera trajectory in TUM
  (`write_trajectory_tum`) and KITTI (`write_trajectory_kitti`) formats, the
  keyframe trajectory in TUM format (`write_keyframe_trajectory_tum`), and
  `write_carla_ground_truth`, which copies the ground-truth pose line
  matching each keyframe's time from a sequence's `times.txt` and
  `pos_kitti.txt`.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Example

```python
import numpy as np
from vslam.epnp import EPnP

rng = np.random.default_rng(0)
points_3d = rng.uniform(-1, 1, size=(20, 3)) + [0, 0, 5]
rotation = np.eye(3)
translation = np.array([0.1, -0.2, 0.3])
camera = points_3d @ rotation.T + translation
points_2d = np.column_stack([
    320 + 500 * camera[:, 0] / camera[:, 2],
    240 + 500 * camera[:, 1] / camera[:, 2],
])

estimate = EPnP(500.0, 500.0, 320.0, 240.0).compute_pose(points_3d, points_2d)
print(estimate.rotation, estimate.translation, estimate.error)
```

## What the package does not do

This is a library of parts, not a running SLAM system. It does not extract or
match image features, run bundle adjustment or pose-graph optimisation, or
decide when tracking should insert a new keyframe. There is no tracking loop
tying the parts together, no background mapping or loop-closing threads, no
command-line program, and no map or frame display: `ViewerControl` only holds
the flags a viewer would check.