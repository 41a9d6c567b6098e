#!/usr/bin/env python3
"""
Error Types for Real-time Segmentation
Separates startup failures from per-call inference failures
"""


class SegmentationRuntimeError(Exception):
    """Base class for all runtime errors raised by this package"""


class ConfigError(ValueError):
    """Invalid configuration value"""


# Startup failures: the pipeline instance is not usable

class StartupError(SegmentationRuntimeError):
    """Raised while preparing the compiled graph, context or buffers"""


class ModelNotFoundError(StartupError, FileNotFoundError):
    """The model description file does not exist"""


class GraphBuildError(StartupError):
    """The engine could not build an executable graph"""


class ArtifactLoadError(StartupError):
    """A compiled artifact could not be read or deserialized"""


class ContextCreationError(StartupError):
    """The engine returned no usable execution context"""


class BufferAllocationError(StartupError):
    """Host or device buffers could not be allocated"""


# Per-call failures

class InferenceError(SegmentationRuntimeError):
    """Raised by a single inference call"""


class ConcurrentInferenceError(InferenceError):
    """Another call is already using this instance's buffers"""


class InputShapeError(InferenceError):
    """The input does not fit the allocated buffers or the graph profile"""


class ExecutionError(InferenceError):
    """Device execution failed; the instance should be rebuilt"""
