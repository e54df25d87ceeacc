import numpy as np
import pytest

from vslam.settings import (
    CameraSettings,
    SensorType,
    load_camera_settings,
    load_settings_file,
)

BASE = """%YAML:1.0
---
Camera.fx: 400.0
Camera.fy: 410.0
Camera.cx: 320.0
Camera.cy: 240.0
Camera.k1: 0.1
Camera.k2: -0.2
Camera.p1: 0.01
Camera.p2: 0.02
Camera.bf: 40.0
Camera.RGB: 1
ORBextractor.nFeatures: 1000
ORBextractor.scaleFactor: 1.2
ORBextractor.nLevels: 8
ORBextractor.iniThFAST: 20
ORBextractor.minThFAST: 7
ThDepth: 35.0
DepthMapFactor: 5000.0
"""


def _write(tmp_path, text):
    path = tmp_path / "settings.yaml"
    path.write_text(text)
    return path


def test_calibration_matrix_and_distortion(tmp_path):
    s = load_camera_settings(_write(tmp_path, BASE), SensorType.MONOCULAR)
    expected_k = np.array([[400.0, 0, 320.0], [0, 410.0, 240.0], [0, 0, 1]])
    assert np.allclose(s.k, expected_k)
    assert np.allclose(s.dist_coef, [0.1, -0.2, 0.01, 0.02])
    assert s.rgb is True
    assert s.n_features == 1000
    assert s.n_levels == 8
    assert s.th_depth is None
    assert s.depth_map_factor is None


def test_k3_extends_distortion(tmp_path):
    s = load_camera_settings(_write(tmp_path, BASE + "Camera.k3: 0.003\n"), SensorType.MONOCULAR)
    assert len(s.dist_coef) == 5
    assert s.dist_coef[4] == pytest.approx(0.003)


def test_missing_fps_defaults_to_thirty(tmp_path):
    s = load_camera_settings(_write(tmp_path, BASE), 0)
    assert s.fps == 30
    assert s.max_frames == 30
    assert s.min_frames == 0


def test_fps_sets_max_frames(tmp_path):
    s = load_camera_settings(_write(tmp_path, BASE + "Camera.fps: 10.0\n"), SensorType.STEREO)
    assert s.max_frames == 10


def test_stereo_depth_threshold(tmp_path):
    s = load_camera_settings(_write(tmp_path, BASE), SensorType.STEREO)
    assert s.th_depth == pytest.approx(40.0 * 35.0 / 400.0)
    assert s.sensor is SensorType.STEREO


def test_rgbd_depth_map_factor_is_inverted():
    settings = {"Camera.fx": 500.0, "Camera.bf": 40.0, "DepthMapFactor": 5000.0}
    s = CameraSettings.from_mapping(settings, SensorType.RGBD)
    assert s.depth_map_factor == pytest.approx(1.0 / 5000.0)


def test_rgbd_zero_depth_map_factor_means_one():
    s = CameraSettings.from_mapping({"Camera.fx": 500.0}, SensorType.RGBD)
    assert s.depth_map_factor == 1.0


def test_opencv_matrix_tag_is_parsed(tmp_path):
    text = BASE + "M: !!opencv-matrix\n   rows: 2\n   cols: 2\n   dt: f\n   data: [1, 2, 3, 4]\n"
    data = load_settings_file(_write(tmp_path, text))
    assert np.array_equal(data["M"], np.array([[1.0, 2.0], [3.0, 4.0]]))


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_settings_file(tmp_path / "absent.yaml")


def test_non_mapping_raises(tmp_path):
    with pytest.raises(ValueError):
        load_settings_file(_write(tmp_path, "- 1\n- 2\n"))


def test_unknown_sensor_raises():
    with pytest.raises(ValueError):
        CameraSettings.from_mapping({}, 7)