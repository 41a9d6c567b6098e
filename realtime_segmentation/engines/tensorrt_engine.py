#!/usr/bin/env python3
"""
TensorRT Execution Engine
Parses an ONNX model description, builds a serialized TensorRT engine with a
dynamic-shape optimization profile and runs it on a CUDA stream

TensorRT is an optional install (``pip install realtime-segmentation[tensorrt]``);
it is imported when the engine is created.
"""
import importlib
import logging
from typing import Optional

import torch

from ..buffers import BindingList
from ..device import ExecutionStream
from ..errors import ArtifactLoadError, ContextCreationError, ExecutionError, GraphBuildError, InputShapeError, StartupError
from ..shape import ShapeDescriptor
from .base import BuildOptions, OptimizationProfile

logger = logging.getLogger(__name__)


def _import_tensorrt():
    try:
        return importlib.import_module('tensorrt')
    except ImportError as e:
        raise StartupError("The tensorrt engine requires the 'tensorrt' package "
                           "(pip install realtime-segmentation[tensorrt])") from e


class TensorRTContext:
    """Deserialized engine plus its execution context"""

    def __init__(self, trt, engine, context, trt10: bool):
        self.trt = trt
        self.engine = engine
        self.context = context
        self.trt10 = trt10

        if trt10:
            names = [engine.get_tensor_name(i) for i in range(engine.num_io_tensors)]
            inputs = [n for n in names if engine.get_tensor_mode(n) == trt.TensorIOMode.INPUT]
            outputs = [n for n in names if engine.get_tensor_mode(n) == trt.TensorIOMode.OUTPUT]
        else:
            names = [engine.get_binding_name(i) for i in range(engine.num_bindings)]
            inputs = [n for i, n in enumerate(names) if engine.binding_is_input(i)]
            outputs = [n for i, n in enumerate(names) if not engine.binding_is_input(i)]

        if len(inputs) != 1 or len(outputs) != 1:
            raise ContextCreationError(f"Expected one input and one output tensor, "
                                       f"got inputs={inputs} outputs={outputs}")
        self.input_name = inputs[0]
        self.output_name = outputs[0]

    def set_input_shape(self, shape: ShapeDescriptor):
        dims = self.trt.Dims4(*shape.as_tuple())
        if self.trt10:
            ok = self.context.set_input_shape(self.input_name, dims)
        else:
            ok = self.context.set_binding_shape(0, dims)
        if ok is False:
            raise InputShapeError(f"Input shape {shape} rejected by the optimization profile")

    def output_shape(self) -> ShapeDescriptor:
        if self.trt10:
            dims = self.context.get_tensor_shape(self.output_name)
        else:
            dims = self.context.get_binding_shape(1)
        return ShapeDescriptor.from_sequence(tuple(dims))

    def resolved_output_shape(self) -> Optional[ShapeDescriptor]:
        # TensorRT resolves output dims as soon as the input shape is set
        return self.output_shape()

    def release(self):
        self.context = None
        self.engine = None


class TensorRTEngine:
    """GraphEngine backed by TensorRT"""

    name = 'tensorrt'

    def __init__(self, log: Optional[logging.Logger] = None, verbose: bool = False):
        self.trt = _import_tensorrt()
        self.trt10 = int(self.trt.__version__.split('.')[0]) >= 10
        self.logger = log or logger
        severity = self.trt.Logger.VERBOSE if verbose else self.trt.Logger.WARNING
        self.trt_logger = self.trt.Logger(severity)

    def version_tag(self) -> str:
        return f"tensorrt-{self.trt.__version__}"

    def build(self, description_path: str, profile: OptimizationProfile,
              options: BuildOptions) -> bytes:
        trt = self.trt
        if options.device.type != 'cuda':
            raise GraphBuildError("TensorRT engines need a CUDA device")

        builder = trt.Builder(self.trt_logger)
        flags = 0
        if not self.trt10:
            flags = 1 << int(trt.NetworkDefinitionCreationFlag.EXPLICIT_BATCH)
        network = builder.create_network(flags)
        parser = trt.OnnxParser(network, self.trt_logger)

        with open(description_path, 'rb') as f:
            if not parser.parse(f.read()):
                errors = [str(parser.get_error(i)) for i in range(parser.num_errors)]
                raise GraphBuildError(f"ONNX parse failed for {description_path}: {errors}")

        if network.num_inputs != 1:
            raise GraphBuildError(f"Model must declare exactly one input, found {network.num_inputs}")
        model_input = network.get_input(0)
        dims = tuple(model_input.shape)
        if len(dims) != 4:
            raise GraphBuildError(f"Model input must be 4D, got {dims}")
        self.logger.info(f"batch_size: {dims[0]} channels: {dims[1]} height: {dims[2]} width: {dims[3]}")

        if dims[1] > 0 and dims[1] != profile.max_shape.channels:
            raise GraphBuildError(f"Model expects {dims[1]} channels, "
                                  f"profile has {profile.max_shape.channels}")

        build_config = builder.create_builder_config()
        trt_profile = builder.create_optimization_profile()
        trt_profile.set_shape(model_input.name,
                              profile.min_shape.as_tuple(),
                              profile.opt_shape.as_tuple(),
                              profile.max_shape.as_tuple())
        build_config.add_optimization_profile(trt_profile)
        build_config.set_memory_pool_limit(trt.MemoryPoolType.WORKSPACE, options.workspace_size)

        if options.use_fp16:
            if builder.platform_has_fast_fp16:
                build_config.set_flag(trt.BuilderFlag.FP16)
                self.logger.info("useFP16 : True")
            else:
                self.logger.info("FP16 requested but not supported by the platform, using FP32")
        else:
            self.logger.info("Using GPU FP32 !")

        serialized = builder.build_serialized_network(network, build_config)
        if serialized is None:
            raise GraphBuildError("TensorRT engine build failed")
        return bytes(serialized)

    def load(self, artifact: bytes, device: torch.device) -> TensorRTContext:
        runtime = self.trt.Runtime(self.trt_logger)
        engine = runtime.deserialize_cuda_engine(artifact)
        if engine is None:
            raise ArtifactLoadError("TensorRT could not deserialize the engine artifact")

        context = engine.create_execution_context()
        if context is None:
            raise ContextCreationError("TensorRT returned no execution context")
        return TensorRTContext(self.trt, engine, context, self.trt10)

    def execute(self, context: TensorRTContext, bindings: BindingList,
                stream: ExecutionStream):
        output_shape = context.output_shape()
        if output_shape.count > bindings.output.numel():
            raise ExecutionError(f"Graph output {output_shape} needs {output_shape.count} elements, "
                                 f"output buffer holds {bindings.output.numel()}")

        pointers = bindings.pointers()
        if self.trt10:
            context.context.set_tensor_address(context.input_name, pointers[BindingList.INPUT])
            context.context.set_tensor_address(context.output_name, pointers[BindingList.OUTPUT])
            ok = context.context.execute_async_v3(stream_handle=stream.handle)
        else:
            ok = context.context.execute_async_v2(bindings=pointers, stream_handle=stream.handle)
        if not ok:
            raise ExecutionError("TensorRT enqueue failed")
