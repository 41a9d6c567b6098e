#!/usr/bin/env python3
"""
Execution Engine Contract
The pipeline only talks to a graph compiler/runtime through this interface
"""
from dataclasses import dataclass
from typing import Optional, Protocol

import torch

from ..buffers import BindingList
from ..device import ExecutionStream
from ..shape import ShapeDescriptor


@dataclass(frozen=True)
class OptimizationProfile:
    """Range of input shapes the compiled graph must accept"""

    min_shape: ShapeDescriptor
    opt_shape: ShapeDescriptor
    max_shape: ShapeDescriptor

    @classmethod
    def for_max_shape(cls, max_shape: ShapeDescriptor) -> 'OptimizationProfile':
        channels = max_shape.channels
        full = ShapeDescriptor(1, channels, max_shape.height, max_shape.width)
        return cls(
            min_shape=ShapeDescriptor(1, channels, 1, 1),
            opt_shape=full,
            max_shape=full,
        )

    def accepts(self, shape: ShapeDescriptor) -> bool:
        lo, hi = self.min_shape, self.max_shape
        return (lo.num <= shape.num <= hi.num
                and shape.channels == hi.channels
                and lo.height <= shape.height <= hi.height
                and lo.width <= shape.width <= hi.width)


@dataclass
class BuildOptions:
    """Build request passed to GraphEngine.build"""

    device: torch.device
    use_fp16: bool = False
    workspace_size: int = 1 << 30
    num_classes: Optional[int] = None


class ExecutionContext(Protocol):
    """Ready-to-run state produced by GraphEngine.load"""

    def set_input_shape(self, shape: ShapeDescriptor) -> None: ...

    def output_shape(self) -> ShapeDescriptor: ...

    def resolved_output_shape(self) -> Optional[ShapeDescriptor]:
        """Output shape known before launch, or None if only known afterwards"""
        ...

    def release(self) -> None: ...


class GraphEngine(Protocol):
    """Graph compiler/runtime capability

    - build: portable model description -> serialized artifact bytes
    - load: artifact bytes -> execution context
    - execute: queue one run of the context against the bound buffers
    """

    name: str

    def version_tag(self) -> str: ...

    def build(self, description_path: str, profile: OptimizationProfile,
              options: BuildOptions) -> bytes: ...

    def load(self, artifact: bytes, device: torch.device) -> ExecutionContext: ...

    def execute(self, context: ExecutionContext, bindings: BindingList,
                stream: ExecutionStream) -> None: ...
