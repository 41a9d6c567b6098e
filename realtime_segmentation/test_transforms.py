#!/usr/bin/env python3
"""
Tests for the preprocessing transforms
Letterbox geometry, scaling, normalization and planar buffer writes
"""
import numpy as np
import pytest
import torch

from .transforms import Compose, DivConstant, LetterResize, Normalize, write_planar

IMAGE_SIZES = [(480, 640), (640, 480), (50, 60), (1, 1000), (720, 1280), (123, 77), (640, 640)]


@pytest.mark.parametrize("height,width", IMAGE_SIZES)
def test_letterbox_output_is_stride_multiple(height, width):
    letterbox = LetterResize((640, 640), (114, 114, 114), 32)
    image = np.random.randint(0, 255, (height, width, 3), dtype=np.uint8)

    output = letterbox(image)

    assert output.shape[0] % 32 == 0
    assert output.shape[1] % 32 == 0
    assert output.shape[0] <= 640 and output.shape[1] <= 640
    assert output.shape[:2] == letterbox.plan(height, width).padded_size


@pytest.mark.parametrize("height,width", [(480, 640), (640, 480), (50, 60), (720, 1280), (123, 77)])
def test_letterbox_preserves_aspect_ratio(height, width):
    info = LetterResize((640, 640)).plan(height, width)
    new_h, new_w = info.resized_size

    # Rounding to whole pixels is the only distortion
    epsilon = (width / height) * (1.0 / new_h + 1.0 / new_w)
    assert abs(new_w / new_h - width / height) <= epsilon
    assert max(new_h, new_w) == 640


def test_letterbox_uneven_padding_goes_to_trailing_edge():
    info = LetterResize((640, 640), stride=32).plan(50, 60)

    assert info.resized_size == (533, 640)
    assert info.padded_size == (544, 640)
    assert (info.top, info.bottom) == (5, 6)
    assert (info.left, info.right) == (0, 0)


def test_letterbox_fills_padding_with_constant():
    letterbox = LetterResize((640, 640), (114, 114, 114), 32)
    image = np.full((50, 60, 3), 255, dtype=np.uint8)

    output = letterbox(image)

    assert np.all(output[:5] == 114)
    assert np.all(output[-6:] == 114)
    assert np.all(output[5:-6] == 255)


def test_letterbox_upscales_small_images():
    info = LetterResize((640, 640)).plan(32, 64)
    assert info.resized_size == (320, 640)
    assert info.padded_size == (320, 640)
    assert info.scale == pytest.approx(10.0)


def test_div_constant_maps_to_unit_range():
    image = np.array([[[0, 51, 255]]], dtype=np.uint8)
    result = DivConstant(255)(image)

    assert result.dtype == np.float32
    np.testing.assert_allclose(result, [[[0.0, 0.2, 1.0]]], rtol=1e-6)


def test_normalize_per_channel():
    image = np.ones((2, 2, 3), dtype=np.float32)
    result = Normalize((0.5, 1.0, 0.0), (0.5, 1.0, 2.0))(image)

    np.testing.assert_allclose(result[0, 0], [1.0, 0.0, 0.5])


def test_compose_applies_left_to_right():
    calls = []
    compose = Compose([lambda x: calls.append('a') or x + 1,
                       lambda x: calls.append('b') or x * 2])

    assert compose(np.array([1]))[0] == 4
    assert calls == ['a', 'b']


def test_write_planar_uses_channel_planes_in_place():
    image = np.zeros((4, 5, 3), dtype=np.float32)
    for channel in range(3):
        image[:, :, channel] = channel + 1
    host = torch.full((3 * 8 * 8,), -1.0)

    shape = write_planar(image, host)

    assert shape.as_tuple() == (1, 3, 4, 5)
    planes = host[:shape.count].view(3, 4, 5)
    for channel in range(3):
        assert torch.all(planes[channel] == channel + 1)
    # Bytes past the current shape are left alone
    assert torch.all(host[shape.count:] == -1.0)


def test_write_planar_rejects_oversized_image():
    with pytest.raises(ValueError):
        write_planar(np.zeros((10, 10, 3), dtype=np.float32), torch.zeros(10))
