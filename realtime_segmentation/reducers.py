#!/usr/bin/env python3
"""
Class Reduction
Per-pixel argmax over the class channels, on the host or on the device

Both strategies resolve ties to the lowest channel index and return a fresh
uint8 mask owned by the caller.
"""
from typing import Protocol, Sequence

import numpy as np
import torch

from .buffers import BufferManager
from .device import ExecutionStream
from .shape import ShapeDescriptor


def softmax(values: Sequence[float]) -> np.ndarray:
    """Probabilities for one channel vector; argmax is unchanged by it"""
    values = np.asarray(values, dtype=np.float64)
    if values.size == 0:
        return values
    exp = np.exp(values - values.max())
    return exp / exp.sum()


def find_max_index(values: Sequence[float]) -> int:
    """Index of the first maximum, or -1 for an empty vector"""
    values = np.asarray(values)
    if values.size == 0:
        return -1
    return int(np.argmax(values))


def argmax_mask(scores: np.ndarray) -> np.ndarray:
    """(C, H, W) scores -> (H, W) uint8 class indices"""
    channels, height, width = scores.shape
    mask = np.zeros((height, width), dtype=np.uint8)
    if channels == 0:
        return mask
    mask[...] = np.argmax(scores, axis=0)
    return mask


class ClassReducer(Protocol):
    name: str

    def reduce(self, buffers: BufferManager, output_shape: ShapeDescriptor,
               stream: ExecutionStream) -> np.ndarray: ...


class HostArgmaxReducer:
    """Copy the scores to the pinned host buffer and reduce with NumPy"""

    name = 'host'

    def reduce(self, buffers: BufferManager, output_shape: ShapeDescriptor,
               stream: ExecutionStream) -> np.ndarray:
        scores = buffers.copy_output_to_host(output_shape.count, stream)
        scores = scores.numpy().reshape(output_shape.channels, output_shape.height, output_shape.width)
        return argmax_mask(scores)


class DeviceArgmaxReducer:
    """Reduce on the device and copy back only the one-byte mask"""

    name = 'device'

    def reduce(self, buffers: BufferManager, output_shape: ShapeDescriptor,
               stream: ExecutionStream) -> np.ndarray:
        channels, height, width = output_shape.channels, output_shape.height, output_shape.width
        with stream.activate():
            scores = buffers.output.device[:output_shape.count].view(channels, height, width)
            # torch.argmax returns the first maximal index
            indices = torch.argmax(scores, dim=0).to(torch.uint8)
            mask = indices.cpu().numpy()
        stream.synchronize()
        return np.ascontiguousarray(mask)


def create_reducer(name: str) -> ClassReducer:
    if name == 'device':
        return DeviceArgmaxReducer()
    elif name == 'host':
        return HostArgmaxReducer()
    else:
        raise ValueError(f"Unknown reducer: {name}")
