#!/usr/bin/env python3
"""
TorchScript Execution Engine
Builds a frozen TorchScript artifact from a scripted/traced model and runs it
on CPU or CUDA against the pipeline's bound buffers
"""
import io
import json
import logging
from typing import Optional

import torch

from ..buffers import BindingList
from ..device import ExecutionStream
from ..errors import ArtifactLoadError, ContextCreationError, ExecutionError, GraphBuildError, InputShapeError
from ..shape import ShapeDescriptor
from .base import BuildOptions, OptimizationProfile

logger = logging.getLogger(__name__)


def platform_has_fast_fp16(device: torch.device) -> bool:
    """Half precision is only worth it on CUDA devices with native fp16 math"""
    if device.type != 'cuda':
        return False
    major, minor = torch.cuda.get_device_capability(device)
    return (major, minor) >= (5, 3)


class TorchScriptContext:
    """Loaded module plus the per-call shapes"""

    def __init__(self, module: torch.jit.ScriptModule, device: torch.device,
                 half: bool, profile: Optional[OptimizationProfile]):
        self.module = module
        self.device = device
        self.half = half
        self.profile = profile
        self.input_shape: Optional[ShapeDescriptor] = None
        self.current_output_shape: Optional[ShapeDescriptor] = None

    def set_input_shape(self, shape: ShapeDescriptor):
        if self.profile is not None and not self.profile.accepts(shape):
            raise InputShapeError(f"Input shape {shape} outside of profile "
                                  f"[{self.profile.min_shape}, {self.profile.max_shape}]")
        self.input_shape = shape
        self.current_output_shape = None

    def output_shape(self) -> ShapeDescriptor:
        if self.current_output_shape is None:
            raise ExecutionError("Output shape is only known after execution")
        return self.current_output_shape

    def resolved_output_shape(self) -> Optional[ShapeDescriptor]:
        # Module outputs are sized by running it; execute guards the copy itself
        return None

    def release(self):
        self.module = None


class TorchScriptEngine:
    """GraphEngine backed by torch.jit"""

    name = 'torchscript'

    def __init__(self, log: Optional[logging.Logger] = None):
        self.logger = log or logger

    def version_tag(self) -> str:
        return f"torch-{torch.__version__}"

    def build(self, description_path: str, profile: OptimizationProfile,
              options: BuildOptions) -> bytes:
        try:
            module = torch.jit.load(description_path, map_location=options.device)
        except (RuntimeError, ValueError) as e:
            raise GraphBuildError(f"Could not parse model description {description_path}: {e}") from e

        half = False
        if options.use_fp16:
            if platform_has_fast_fp16(options.device):
                half = True
                self.logger.info("useFP16 : True")
            else:
                self.logger.info(f"FP16 requested but not supported on {options.device}, using FP32")
        else:
            self.logger.info(f"Using {options.device.type.upper()} FP32")

        module.eval()
        if half:
            module.half()

        try:
            frozen = torch.jit.freeze(module)
            # Dry run at the optimal shape validates the description and warms up the graph
            opt = profile.opt_shape
            dummy = torch.zeros(opt.as_tuple(), device=options.device,
                                dtype=torch.float16 if half else torch.float32)
            with torch.inference_mode():
                output = frozen(dummy)
        except RuntimeError as e:
            raise GraphBuildError(f"Graph optimization failed: {e}") from e

        if not isinstance(output, torch.Tensor) or output.dim() != 4:
            raise GraphBuildError("Model must return a single 4D (N, C, H, W) tensor")
        if options.num_classes is not None and output.shape[1] != options.num_classes:
            raise GraphBuildError(f"Model produces {output.shape[1]} classes, "
                                  f"configured for {options.num_classes}")

        self.logger.info(f"batch_size: {opt.num} channels: {opt.channels} "
                         f"height: {opt.height} width: {opt.width}")

        meta = {
            'precision': 'fp16' if half else 'fp32',
            'profile': {
                'min': profile.min_shape.as_tuple(),
                'opt': profile.opt_shape.as_tuple(),
                'max': profile.max_shape.as_tuple(),
            },
        }
        buffer = io.BytesIO()
        torch.jit.save(frozen, buffer, _extra_files={'meta.json': json.dumps(meta)})
        return buffer.getvalue()

    def load(self, artifact: bytes, device: torch.device) -> TorchScriptContext:
        extra = {'meta.json': ''}
        try:
            module = torch.jit.load(io.BytesIO(artifact), map_location=device, _extra_files=extra)
            meta = json.loads(extra['meta.json'] or '{}')
        except (RuntimeError, ValueError) as e:
            raise ArtifactLoadError(f"Could not deserialize TorchScript artifact: {e}") from e

        if module is None:
            raise ContextCreationError("TorchScript runtime returned no module")

        profile = None
        if 'profile' in meta:
            profile = OptimizationProfile(
                min_shape=ShapeDescriptor.from_sequence(meta['profile']['min']),
                opt_shape=ShapeDescriptor.from_sequence(meta['profile']['opt']),
                max_shape=ShapeDescriptor.from_sequence(meta['profile']['max']),
            )
        return TorchScriptContext(module.eval(), device, meta.get('precision') == 'fp16', profile)

    def execute(self, context: TorchScriptContext, bindings: BindingList,
                stream: ExecutionStream):
        shape = context.input_shape
        if shape is None:
            raise ExecutionError("Input shape must be set before execution")

        with stream.activate(), torch.no_grad():
            x = bindings.input[:shape.count].view(shape.as_tuple())
            if context.half:
                x = x.half()
            try:
                output = context.module(x)
            except RuntimeError as e:
                raise ExecutionError(f"TorchScript execution failed: {e}") from e

            if output.numel() > bindings.output.numel():
                raise ExecutionError(f"Output of {output.numel()} elements exceeds output buffer "
                                     f"of {bindings.output.numel()}")
            bindings.output[:output.numel()].copy_(output.reshape(-1))

        context.current_output_shape = ShapeDescriptor.from_sequence(output.shape)
