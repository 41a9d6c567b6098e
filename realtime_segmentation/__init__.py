"""
Real-time Segmentation Package
Compiled-graph semantic segmentation inference components
"""

from .config import SegmenterConfig, create_config, get_segmenter_configs
from .errors import (
    ConfigError,
    InferenceError,
    SegmentationRuntimeError,
    StartupError,
)
from .graph_manager import GraphLifecycleManager
from .postprocess import MaskPostProcessor
from .reducers import DeviceArgmaxReducer, HostArgmaxReducer, create_reducer, softmax
from .segmenter import SegmentationResult, Segmenter
from .shape import ShapeDescriptor

__version__ = "1.0.0"

__all__ = [
    'ConfigError',
    'DeviceArgmaxReducer',
    'GraphLifecycleManager',
    'HostArgmaxReducer',
    'InferenceError',
    'MaskPostProcessor',
    'SegmentationResult',
    'SegmentationRuntimeError',
    'Segmenter',
    'SegmenterConfig',
    'ShapeDescriptor',
    'StartupError',
    'create_config',
    'create_reducer',
    'get_segmenter_configs',
    'softmax'
]
