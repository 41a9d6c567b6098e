#!/usr/bin/env python3
"""
Tests for mask post-processing and the configuration layer
"""
import json

import numpy as np
import pytest

from .cli import main as cli_main
from .config import SegmenterConfig, create_config, get_segmenter_configs
from .errors import ConfigError
from .postprocess import MaskPostProcessor, get_palette
from .transforms import LetterResize


def test_restore_original_size_crops_padding():
    letterbox = LetterResize((640, 640)).plan(50, 60)
    mask = np.zeros(letterbox.padded_size, dtype=np.uint8)
    mask[letterbox.top:letterbox.top + letterbox.resized_size[0]] = 7

    restored = MaskPostProcessor().restore_original_size(mask, letterbox)

    assert restored.shape == (50, 60)
    assert np.all(restored == 7)


def test_colorize_uses_bgr_palette():
    post = MaskPostProcessor(19)
    colored = post.colorize(np.array([[0, 1]], dtype=np.uint8))

    assert colored.shape == (1, 2, 3)
    assert tuple(colored[0, 0]) == (128, 64, 128)
    assert tuple(colored[0, 1]) == (232, 35, 244)
    assert get_palette(40).shape == (256, 3)


def test_class_metrics_count_present_classes():
    mask = np.array([[0, 0, 1, 3]], dtype=np.uint8)
    metrics = MaskPostProcessor(4).calculate_class_metrics(mask)

    assert metrics['total_pixels'] == 4
    assert metrics['num_classes_present'] == 3
    assert metrics['classes']['0']['pixels'] == 2
    assert metrics['classes']['3']['percentage'] == pytest.approx(25.0)


def test_save_results_writes_mask_overlay_and_metadata(tmp_path):
    image = np.zeros((50, 60, 3), dtype=np.uint8)
    letterbox = LetterResize((640, 640)).plan(50, 60)
    mask = np.ones(letterbox.padded_size, dtype=np.uint8)

    paths = MaskPostProcessor(3).save_results(image, mask, str(tmp_path), "frame",
                                              letterbox=letterbox, timings={'total': 0.01})

    for key in ('mask_path', 'overlay_path', 'metadata_path'):
        assert (tmp_path / paths[key].split('/')[-1]).exists()
    with open(paths['metadata_path']) as f:
        metadata = json.load(f)
    assert metadata['mask_size'] == [50, 60]
    assert metadata['timings_ms']['total'] == pytest.approx(10.0)


def test_config_validation(tmp_path):
    base = {'model_path': 'model.pt', 'cache_path': str(tmp_path / 'model.ts')}

    with pytest.raises(ConfigError):
        SegmenterConfig(**base, num_classes=300)
    with pytest.raises(ConfigError):
        SegmenterConfig(**base, target_size=(600, 640))
    with pytest.raises(ConfigError):
        SegmenterConfig(**base, max_shape=(2, 3, 640, 640))
    with pytest.raises(ConfigError):
        SegmenterConfig(**base, mean=(0.5, 0.5))
    with pytest.raises(ConfigError):
        SegmenterConfig(**base, engine='onnxruntime')
    with pytest.raises(ConfigError):
        SegmenterConfig.from_dict({**base, 'batch_size': 4})


def test_config_json_round_trip(tmp_path):
    config = create_config('bisenet_cityscapes', model_path='bisenet.onnx',
                           cache_path=str(tmp_path / 'bisenet.engine'))
    config.save(str(tmp_path / 'config.json'))

    loaded = SegmenterConfig.from_json(str(tmp_path / 'config.json'))
    assert loaded == config
    assert loaded.engine == 'tensorrt'
    assert set(get_segmenter_configs()) >= {'bisenet_cityscapes', 'torchscript_cpu'}


def test_cli_reports_startup_failure(tmp_path, monkeypatch):
    monkeypatch.setattr('realtime_segmentation.cli.setup_logging', lambda *args, **kwargs: None)
    image = tmp_path / "image.png"
    image.write_bytes(b"")
    code = cli_main(['infer', '--model-path', str(tmp_path / 'missing.pt'),
                     '--cache-path', str(tmp_path / 'cache.ts'), '--device', 'cpu',
                     '--input-image', str(image)])
    assert code == 1


def test_cli_usage_without_command(capsys):
    assert cli_main([]) == 2
    assert 'build-engine' in capsys.readouterr().out
