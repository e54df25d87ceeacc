"""Camera and feature-extractor settings read from a YAML settings file."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

import numpy as np
import yaml

_DEFAULT_FPS = 30.0
_DEPTH_FACTOR_EPS = 1e-5


class SensorType(enum.IntEnum):
    MONOCULAR = 0
    STEREO = 1
    RGBD = 2


class _SettingsLoader(yaml.SafeLoader):
    """Safe loader that understands matrices stored as ``!!opencv-matrix``."""


def _construct_matrix(loader, node):
    fields = loader.construct_mapping(node, deep=True)
    rows, cols = int(fields["rows"]), int(fields["cols"])
    return np.array(fields["data"], dtype=float).reshape(rows, cols)


_SettingsLoader.add_constructor("tag:yaml.org,2002:opencv-matrix", _construct_matrix)


def load_settings_file(path) -> dict:
    """Read a settings file into a dictionary.

    A leading ``%YAML:1.0`` directive line is accepted. Raises ``OSError``
    when the file cannot be opened and ``ValueError`` when it holds no mapping.
    """
    text = Path(path).read_text(encoding="utf-8")
    first, _, rest = text.partition("\n")
    if first.strip().startswith("%YAML:"):
        text = rest
    data = yaml.load(text, Loader=_SettingsLoader)
    if not isinstance(data, dict):
        raise ValueError(f"settings file {path} does not hold a mapping")
    return data


def _number(settings: Mapping[str, Any], key: str) -> float:
    value = settings.get(key)
    if value is None:
        return 0.0
    return float(value)


@dataclass(frozen=True, eq=False)
class CameraSettings:
    """Calibration, keyframe rates and extractor parameters used by tracking."""

    sensor: SensorType
    fx: float
    fy: float
    cx: float
    cy: float
    k: np.ndarray
    dist_coef: np.ndarray
    bf: float
    fps: float
    min_frames: int
    max_frames: int
    rgb: bool
    n_features: int
    scale_factor: float
    n_levels: int
    ini_th_fast: int
    min_th_fast: int
    th_depth: Optional[float]
    depth_map_factor: Optional[float]

    @classmethod
    def from_mapping(cls, settings, sensor):
        """Build settings from a parsed mapping; missing entries read as zero."""
        sensor = SensorType(sensor)
        fx = _number(settings, "Camera.fx")
        fy = _number(settings, "Camera.fy")
        cx = _number(settings, "Camera.cx")
        cy = _number(settings, "Camera.cy")

        k = np.eye(3)
        k[0, 0], k[1, 1], k[0, 2], k[1, 2] = fx, fy, cx, cy

        coefficients = [_number(settings, name)
                        for name in ("Camera.k1", "Camera.k2", "Camera.p1", "Camera.p2")]
        k3 = _number(settings, "Camera.k3")
        if k3 != 0:
            coefficients.append(k3)

        bf = _number(settings, "Camera.bf")
        fps = _number(settings, "Camera.fps")
        if fps == 0:
            fps = _DEFAULT_FPS

        th_depth = None
        if sensor in (SensorType.STEREO, SensorType.RGBD):
            th_depth = bf * _number(settings, "ThDepth") / fx

        depth_map_factor = None
        if sensor is SensorType.RGBD:
            factor = _number(settings, "DepthMapFactor")
            depth_map_factor = 1.0 if abs(factor) < _DEPTH_FACTOR_EPS else 1.0 / factor

        return cls(
            sensor=sensor,
            fx=fx,
            fy=fy,
            cx=cx,
            cy=cy,
            k=k,
            dist_coef=np.array(coefficients),
            bf=bf,
            fps=fps,
            min_frames=0,
            max_frames=int(fps),
            rgb=bool(int(_number(settings, "Camera.RGB"))),
            n_features=int(_number(settings, "ORBextractor.nFeatures")),
            scale_factor=_number(settings, "ORBextractor.scaleFactor"),
            n_levels=int(_number(settings, "ORBextractor.nLevels")),
            ini_th_fast=int(_number(settings, "ORBextractor.iniThFAST")),
            min_th_fast=int(_number(settings, "ORBextractor.minThFAST")),
            th_depth=th_depth,
            depth_map_factor=depth_map_factor,
        )


def load_camera_settings(path, sensor) -> CameraSettings:
    """Read a settings file and build the camera settings for ``sensor``."""
    return CameraSettings.from_mapping(load_settings_file(path), sensor)