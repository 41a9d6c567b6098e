#!/usr/bin/env python3
"""
Configuration for the Real-time Segmentation Pipeline
Presets, JSON loading and validation of the recognized options
"""
import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Dict, Optional, Tuple

from .errors import ConfigError
from .shape import ShapeDescriptor

# ImageNet statistics, same defaults as the building segmentation preprocessing
IMAGENET_MEAN = (0.485, 0.456, 0.406)
IMAGENET_STD = (0.229, 0.224, 0.225)

ENGINES = ('torchscript', 'tensorrt')
REDUCERS = ('device', 'host')


@dataclass
class SegmenterConfig:
    """All options recognized by the segmentation pipeline"""

    model_path: str
    cache_path: str
    engine: str = 'torchscript'
    device: str = 'auto'
    device_index: int = 0
    use_fp16: bool = False
    max_shape: Tuple[int, int, int, int] = (1, 3, 640, 640)
    num_classes: int = 19
    mean: Tuple[float, ...] = IMAGENET_MEAN
    std: Tuple[float, ...] = IMAGENET_STD
    target_size: Tuple[int, int] = (640, 640)
    pad_value: Tuple[int, int, int] = (114, 114, 114)
    stride: int = 32
    reducer: str = 'device'
    fingerprint_cache: bool = True
    workspace_size: int = 1 << 30

    def __post_init__(self):
        self.max_shape = tuple(int(d) for d in self.max_shape)
        self.mean = tuple(float(m) for m in self.mean)
        self.std = tuple(float(s) for s in self.std)
        self.target_size = tuple(int(s) for s in self.target_size)
        self.pad_value = tuple(int(v) for v in self.pad_value)
        self.validate()

    @property
    def max_shape_descriptor(self) -> ShapeDescriptor:
        return ShapeDescriptor.from_sequence(self.max_shape)

    def validate(self):
        """Raise ConfigError for values the pipeline cannot honour"""
        if not self.model_path:
            raise ConfigError("model_path is required")
        if not self.cache_path:
            raise ConfigError("cache_path is required")
        if self.engine not in ENGINES:
            raise ConfigError(f"Unknown engine: {self.engine} (expected one of {ENGINES})")
        if self.reducer not in REDUCERS:
            raise ConfigError(f"Unknown reducer: {self.reducer} (expected one of {REDUCERS})")
        if self.device not in ('auto', 'cuda', 'cpu'):
            raise ConfigError(f"Unknown device: {self.device}")
        if self.device_index < 0:
            raise ConfigError("device_index must be >= 0")

        try:
            shape = self.max_shape_descriptor
        except ValueError as e:
            raise ConfigError(f"Invalid max_shape {self.max_shape}: {e}") from e
        if shape.num != 1:
            raise ConfigError("Only batch size 1 is supported (max_shape[0] must be 1)")

        # Class indices are written as one byte per pixel
        if not 0 < self.num_classes <= 256:
            raise ConfigError(f"num_classes must be in [1, 256], got {self.num_classes}")

        if len(self.mean) != shape.channels or len(self.std) != shape.channels:
            raise ConfigError(f"mean/std need {shape.channels} values, "
                              f"got {len(self.mean)}/{len(self.std)}")
        if any(s == 0 for s in self.std):
            raise ConfigError("std values must be non-zero")

        if len(self.target_size) != 2 or self.stride <= 0:
            raise ConfigError("target_size must be (height, width) and stride > 0")
        target_h, target_w = self.target_size
        if target_h % self.stride or target_w % self.stride:
            raise ConfigError(f"target_size {self.target_size} must be a multiple of stride {self.stride}")
        if target_h > shape.height or target_w > shape.width:
            raise ConfigError(f"target_size {self.target_size} exceeds max_shape {shape}")
        if len(self.pad_value) != shape.channels:
            raise ConfigError(f"pad_value needs {shape.channels} values")

    @classmethod
    def from_dict(cls, values: Dict) -> 'SegmenterConfig':
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {sorted(unknown)}")
        return cls(**values)

    @classmethod
    def from_json(cls, path: str) -> 'SegmenterConfig':
        with open(path, 'r') as f:
            return cls.from_dict(json.load(f))

    def to_dict(self) -> Dict:
        return asdict(self)

    def save(self, path: str):
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def get_segmenter_configs() -> Dict[str, Dict]:
    """Named option presets, completed with model_path/cache_path by the caller"""
    configs = {
        'bisenet_cityscapes': {
            'engine': 'tensorrt',
            'num_classes': 19,
            'use_fp16': True,
            'max_shape': (1, 3, 640, 640),
            'mean': (0.3257, 0.3690, 0.3223),
            'std': (0.2112, 0.2148, 0.2115),
        },
        'torchscript_cpu': {
            'engine': 'torchscript',
            'device': 'cpu',
            'reducer': 'host',
            'num_classes': 19,
        },
        'torchscript_cuda': {
            'engine': 'torchscript',
            'device': 'cuda',
            'use_fp16': True,
            'num_classes': 19,
        },
    }

    return configs


def create_config(preset: Optional[str] = None, **overrides) -> SegmenterConfig:
    """Build a config from an optional preset name plus keyword overrides"""
    values = {}
    if preset is not None:
        presets = get_segmenter_configs()
        if preset not in presets:
            raise ConfigError(f"Unknown preset: {preset}")
        values.update(presets[preset])
    values.update({k: v for k, v in overrides.items() if v is not None})
    return SegmenterConfig.from_dict(values)
