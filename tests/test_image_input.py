import numpy as np
import pytest

from vslam.image_input import depth_scale, scale_depth, to_grayscale


def test_single_channel_returned_unchanged():
    image = np.arange(12, dtype=np.uint8).reshape(3, 4)
    assert to_grayscale(image, True) is image


def test_two_channel_returned_unchanged():
    image = np.zeros((2, 2, 2), dtype=np.uint8)
    assert to_grayscale(image, False) is image


def test_uniform_gray_preserved():
    image = np.full((4, 5, 3), 128, dtype=np.uint8)
    gray = to_grayscale(image, True)
    assert gray.shape == (4, 5)
    assert gray.dtype == np.uint8
    assert np.all(gray == 128)


def test_rgb_and_bgr_orders_agree_on_swapped_channels():
    gen = np.random.default_rng(0)
    rgb = gen.integers(0, 256, size=(6, 7, 3), dtype=np.uint8)
    bgr = rgb[:, :, ::-1]
    assert np.array_equal(to_grayscale(rgb, True), to_grayscale(bgr, False))


def test_alpha_channel_ignored():
    gen = np.random.default_rng(1)
    rgb = gen.integers(0, 256, size=(3, 3, 3), dtype=np.uint8)
    alpha = gen.integers(0, 256, size=(3, 3, 1), dtype=np.uint8)
    rgba = np.concatenate([rgb, alpha], axis=2)
    assert np.array_equal(to_grayscale(rgba, True), to_grayscale(rgb, True))


def test_green_weighted_more_than_blue():
    image = np.zeros((1, 2, 3), dtype=np.uint8)
    image[0, 0, 1] = 255
    image[0, 1, 2] = 255
    gray = to_grayscale(image, True)
    assert gray[0, 0] > gray[0, 1]


def test_depth_scale_zero_factor_is_unity():
    assert depth_scale(0.0) == 1.0


def test_depth_scale_inverts_factor():
    assert depth_scale(5000.0) == pytest.approx(1 / 5000.0)


def test_scale_depth_keeps_float32_unit():
    depth = np.ones((2, 2), dtype=np.float32)
    assert scale_depth(depth, 1.0) is depth


def test_scale_depth_converts_integer_map():
    depth = np.array([[5000, 10000]], dtype=np.uint16)
    out = scale_depth(depth, 1 / 5000.0)
    assert out.dtype == np.float32
    assert np.allclose(out, [[1.0, 2.0]])