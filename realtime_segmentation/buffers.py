#!/usr/bin/env python3
"""
Buffer Manager
Owns the paired host (pinned) / device buffers for model input and output

Buffers are sized once from the configured maximum shape and reused by every
inference call. Smaller inputs only use a prefix of each buffer.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import torch

from .device import ExecutionStream
from .errors import BufferAllocationError, InputShapeError
from .shape import ShapeDescriptor

logger = logging.getLogger(__name__)

ELEMENT_SIZE = torch.tensor([], dtype=torch.float32).element_size()


@dataclass
class BufferPair:
    """Host and device buffer of the same size, allocated and freed together"""

    role: str
    host: Optional[torch.Tensor]
    device: Optional[torch.Tensor]

    @property
    def numel(self) -> int:
        return self.host.numel() if self.host is not None else 0

    @property
    def nbytes(self) -> int:
        return self.numel * ELEMENT_SIZE

    @property
    def pinned(self) -> bool:
        return self.host is not None and self.host.is_pinned()


class BindingList:
    """Position-indexed device buffers: index 0 is the input, index 1 the output"""

    INPUT = 0
    OUTPUT = 1

    def __init__(self, input_buffer: torch.Tensor, output_buffer: torch.Tensor):
        self._buffers: Tuple[torch.Tensor, torch.Tensor] = (input_buffer, output_buffer)

    def __getitem__(self, index: int) -> torch.Tensor:
        return self._buffers[index]

    def __len__(self):
        return len(self._buffers)

    def __iter__(self):
        return iter(self._buffers)

    @property
    def input(self) -> torch.Tensor:
        return self._buffers[self.INPUT]

    @property
    def output(self) -> torch.Tensor:
        return self._buffers[self.OUTPUT]

    def pointers(self) -> List[int]:
        """Device addresses in binding order"""
        return [buffer.data_ptr() for buffer in self._buffers]


class BufferManager:
    """Allocates, copies between and releases the input/output buffer pairs"""

    def __init__(self, device: torch.device, log: Optional[logging.Logger] = None):
        self.device = device
        self.logger = log or logger
        self.input: Optional[BufferPair] = None
        self.output: Optional[BufferPair] = None
        self.bindings: Optional[BindingList] = None

    @property
    def allocated(self) -> bool:
        return self.bindings is not None

    def _alloc_pair(self, role: str, count: int) -> BufferPair:
        pin = self.device.type == 'cuda'
        host = torch.zeros(count, dtype=torch.float32, pin_memory=pin)
        device = torch.zeros(count, dtype=torch.float32, device=self.device)
        return BufferPair(role=role, host=host, device=device)

    def allocate(self, max_shape: ShapeDescriptor, num_classes: int) -> BindingList:
        """Allocate both buffer pairs for the maximum shape; only once per manager"""
        if self.allocated:
            raise BufferAllocationError("Buffers are already allocated")

        in_count = max_shape.count
        out_count = max_shape.num * num_classes * max_shape.height * max_shape.width

        try:
            self.input = self._alloc_pair('input', in_count)
            self.output = self._alloc_pair('output', out_count)
            if self.device.type == 'cuda':
                # zero-fill is queued on the default stream, not the execution stream
                torch.cuda.synchronize(self.device)
        except RuntimeError as e:
            self.release()
            raise BufferAllocationError(f"Could not allocate buffers for {max_shape}: {e}") from e

        self.bindings = BindingList(self.input.device, self.output.device)
        self.logger.info(f"Allocated input buffers: {self.input.nbytes / 1e6:.1f} MB x2 "
                         f"(pinned={self.input.pinned})")
        self.logger.info(f"Allocated output buffers: {self.output.nbytes / 1e6:.1f} MB x2 "
                         f"({num_classes} classes)")
        return self.bindings

    def _check(self, pair: Optional[BufferPair], count: int):
        if pair is None or pair.host is None:
            raise InputShapeError("Buffers are not allocated")
        if count > pair.numel:
            raise InputShapeError(f"{pair.role} needs {count} elements, "
                                  f"buffer holds {pair.numel}")

    def copy_input_to_device(self, count: int, stream: ExecutionStream):
        """Copy the first ``count`` input elements host -> device"""
        self._check(self.input, count)
        with stream.activate():
            self.input.device[:count].copy_(self.input.host[:count], non_blocking=True)

    def copy_output_to_host(self, count: int, stream: ExecutionStream) -> torch.Tensor:
        """Copy the first ``count`` output elements device -> host and wait for them"""
        self._check(self.output, count)
        with stream.activate():
            self.output.host[:count].copy_(self.output.device[:count], non_blocking=True)
        stream.synchronize()
        return self.output.host[:count]

    def release(self):
        """Free all four buffers; safe to call more than once"""
        for pair in (self.input, self.output):
            if pair is None:
                continue
            pair.host = None
            pair.device = None
        if self.bindings is not None:
            self.logger.info("Released host and device buffers")
        self.input = None
        self.output = None
        self.bindings = None
        if self.device.type == 'cuda':
            torch.cuda.empty_cache()
