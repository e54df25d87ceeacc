import math

import numpy as np
import pytest

from vslam.motion_model import MotionModel, compose, pose_inverse


def _pose(angle, translation):
    c, s = math.cos(angle), math.sin(angle)
    pose = np.eye(4)
    pose[:3, :3] = [[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]]
    pose[:3, 3] = translation
    return pose


def test_inverse_composes_to_identity():
    pose = _pose(0.7, [1.0, -2.0, 0.5])
    np.testing.assert_allclose(compose(pose, pose_inverse(pose)), np.eye(4), atol=1e-12)
    np.testing.assert_allclose(compose(pose_inverse(pose), pose), np.eye(4), atol=1e-12)


def test_inverse_of_pure_translation():
    pose = _pose(0.0, [1.0, 2.0, 3.0])
    np.testing.assert_allclose(pose_inverse(pose)[:3, 3], [-1.0, -2.0, -3.0])


def test_invalid_shape_raises():
    with pytest.raises(ValueError):
        pose_inverse(np.eye(3))
    with pytest.raises(ValueError):
        compose(np.eye(4), np.eye(3))


def test_predict_reproduces_recorded_motion():
    last = _pose(0.1, [0.0, 0.0, 1.0])
    current = _pose(0.3, [0.5, 0.0, 1.2])
    model = MotionModel()
    model.update(current, last)
    assert model.has_velocity()
    np.testing.assert_allclose(model.predict(last), current, atol=1e-12)


def test_constant_velocity_extrapolates():
    step = _pose(0.2, [0.1, 0.0, 0.0])
    p0 = np.eye(4)
    p1 = compose(step, p0)
    p2 = compose(step, p1)
    model = MotionModel()
    model.update(p1, p0)
    np.testing.assert_allclose(model.predict(p1), p2, atol=1e-12)


def test_predict_without_velocity_raises():
    model = MotionModel()
    assert not model.has_velocity()
    with pytest.raises(LookupError):
        model.predict(np.eye(4))


def test_update_without_last_pose_clears_velocity():
    model = MotionModel()
    model.update(_pose(0.1, [1.0, 0.0, 0.0]), np.eye(4))
    model.update(np.eye(4), None)
    assert not model.has_velocity()
    assert model.velocity is None


def test_reset_forgets_velocity():
    model = MotionModel()
    model.update(_pose(0.1, [1.0, 0.0, 0.0]), np.eye(4))
    model.reset()
    with pytest.raises(LookupError):
        model.predict(np.eye(4))


def test_velocity_is_a_copy():
    model = MotionModel()
    current = _pose(0.4, [0.0, 1.0, 0.0])
    model.update(current, np.eye(4))
    velocity = model.velocity
    velocity[:] = 0.0
    np.testing.assert_allclose(model.predict(np.eye(4)), current, atol=1e-12)