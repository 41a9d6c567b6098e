#!/usr/bin/env python3
"""
Tests for the execution coordinator
Runs the full infer path against the fake engine from conftest
"""
import numpy as np
import pytest

from .conftest import FakeEngine
from .errors import ConcurrentInferenceError, ExecutionError, InputShapeError
from .reducers import DeviceArgmaxReducer, HostArgmaxReducer
from .segmenter import Segmenter

BLUE, GREEN, RED = (255, 0, 0), (0, 255, 0), (0, 0, 255)


def solid_image(height, width, bgr):
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, :] = bgr
    return image


@pytest.fixture
def segmenter(make_config, fake_engine):
    with Segmenter(make_config(), engine=fake_engine) as seg:
        yield seg


def test_empty_image_short_circuits(segmenter, fake_engine, monkeypatch):
    def fail_transform(image):
        raise AssertionError("transforms must not run for empty images")

    monkeypatch.setattr(segmenter, 'transforms', fail_transform)
    empty = np.zeros((0, 0, 3), dtype=np.uint8)

    assert segmenter.infer(empty) is empty
    assert segmenter.infer(None) is None
    assert fake_engine.executions == 0


@pytest.mark.parametrize("height,width", [(480, 640), (640, 480), (50, 60), (1, 1000), (300, 300)])
def test_mask_matches_model_output_resolution(segmenter, height, width):
    image = np.random.randint(0, 255, (height, width, 3), dtype=np.uint8)
    result = segmenter.segment(image)

    assert result.mask.dtype == np.uint8
    assert result.mask.shape == result.letterbox.padded_size
    assert result.mask.shape == result.output_shape.spatial
    assert result.mask.max() < 3


def test_classes_follow_brightest_channel(segmenter):
    assert np.all(segmenter.infer(solid_image(64, 64, BLUE)) == 0)
    assert np.all(segmenter.infer(solid_image(64, 64, GREEN)) == 1)
    assert np.all(segmenter.infer(solid_image(64, 64, RED)) == 2)


def test_letterbox_padding_ties_to_class_zero(segmenter):
    mask = segmenter.infer(solid_image(50, 60, RED))

    assert mask.shape == (544, 640)
    # Gray padding has equal channels -> lowest index wins
    assert np.all(mask[:5] == 0)
    assert np.all(mask[-6:] == 0)
    assert np.all(mask[5:-6] == 2)


def test_sequential_calls_do_not_leak(segmenter):
    first = segmenter.infer(solid_image(640, 640, RED))
    second = segmenter.infer(solid_image(50, 60, GREEN))

    assert first.shape == (640, 640)
    assert np.all(first == 2)
    assert second.shape == (544, 640)
    assert not np.any(second == 2)
    assert np.all(second[5:-6] == 1)
    # The first mask is owned by the caller and untouched by the second call
    assert np.all(first == 2)


def test_context_shape_set_per_call(segmenter, fake_engine):
    segmenter.infer(solid_image(640, 320, RED))
    context = fake_engine.contexts[0]
    assert context.input_shape.as_tuple() == (1, 3, 640, 320)

    segmenter.infer(solid_image(100, 100, RED))
    assert context.input_shape.as_tuple() == (1, 3, 640, 640)
    assert fake_engine.executions == 2


def test_host_and_device_reduction_match(segmenter):
    image = np.random.RandomState(3).randint(0, 255, (200, 360, 3), dtype=np.uint8)

    segmenter.reducer = HostArgmaxReducer()
    host_mask = segmenter.infer(image)
    segmenter.reducer = DeviceArgmaxReducer()
    device_mask = segmenter.infer(image)

    np.testing.assert_array_equal(host_mask, device_mask)


def test_device_reducer_selected_by_config(make_config, fake_engine):
    with Segmenter(make_config(reducer='device'), engine=fake_engine) as seg:
        assert isinstance(seg.reducer, DeviceArgmaxReducer)
        assert np.all(seg.infer(solid_image(32, 32, GREEN)) == 1)


def test_concurrent_call_is_rejected(segmenter):
    segmenter._call_lock.acquire()
    try:
        with pytest.raises(ConcurrentInferenceError):
            segmenter.infer(solid_image(32, 32, RED))
    finally:
        segmenter._call_lock.release()

    assert np.all(segmenter.infer(solid_image(32, 32, RED)) == 2)


def test_wrong_channel_count_is_rejected(segmenter):
    with pytest.raises(InputShapeError):
        segmenter.infer(np.zeros((32, 32), dtype=np.uint8))


def test_closed_segmenter_refuses_work(make_config, fake_engine):
    seg = Segmenter(make_config(), engine=fake_engine)
    seg.close()

    with pytest.raises(ExecutionError):
        seg.infer(solid_image(32, 32, RED))


def test_timings_are_reported(segmenter):
    result = segmenter.segment(solid_image(64, 64, RED))
    assert set(result.timings) == {'preprocess', 'execute', 'postprocess', 'total'}
    assert result.timings['total'] >= result.timings['execute']


def test_oversized_output_rejected_before_launch(make_config):
    engine = FakeEngine(upscale=2)
    with Segmenter(make_config(), engine=engine) as seg:
        with pytest.raises(ExecutionError):
            seg.infer(solid_image(640, 640, RED))

        assert engine.executions == 0
