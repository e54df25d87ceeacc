"""Conversion of incoming images and depth maps into tracking input."""

from __future__ import annotations

import numpy as np

_LUMA = np.array([0.299, 0.587, 0.114])
_DEPTH_FACTOR_EPS = 1e-5


def to_grayscale(image, rgb):
    """Convert a colour image to one channel.

    Three- and four-channel images are weighted as RGB(A) when ``rgb`` is true
    and as BGR(A) otherwise; any other image is returned unchanged.
    """
    image = np.asarray(image)
    if image.ndim != 3 or image.shape[2] not in (3, 4):
        return image
    weights = _LUMA if rgb else _LUMA[::-1]
    gray = image[:, :, :3].astype(float) @ weights
    if np.issubdtype(image.dtype, np.integer):
        info = np.iinfo(image.dtype)
        return np.clip(np.rint(gray), info.min, info.max).astype(image.dtype)
    return gray.astype(image.dtype)


def depth_scale(depth_map_factor):
    """Multiplier turning raw depth values into metres."""
    factor = float(depth_map_factor)
    if abs(factor) < _DEPTH_FACTOR_EPS:
        return 1.0
    return 1.0 / factor


def scale_depth(depth, scale):
    """Return the depth map as float32 multiplied by ``scale``.

    A float32 map with a unit scale is returned as it is.
    """
    depth = np.asarray(depth)
    if abs(scale - 1.0) > _DEPTH_FACTOR_EPS or depth.dtype != np.float32:
        return (depth.astype(np.float64) * scale).astype(np.float32)
    return depth