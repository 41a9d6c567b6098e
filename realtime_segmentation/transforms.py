#!/usr/bin/env python3
"""
Preprocessing Transforms for Segmentation Inference
Letterbox resize, scaling and normalization composed into one pipeline
"""
import math
from dataclasses import dataclass
from typing import Callable, List, Sequence, Tuple

import cv2
import numpy as np
import torch

from .shape import ShapeDescriptor


@dataclass(frozen=True)
class LetterboxInfo:
    """Geometry of one letterbox resize"""

    original_size: Tuple[int, int]   # (height, width) of the input image
    resized_size: Tuple[int, int]    # (height, width) after scaling
    padded_size: Tuple[int, int]     # (height, width) after padding
    scale: float
    top: int
    bottom: int
    left: int
    right: int


class LetterResize:
    """Aspect-preserving resize into a target canvas, padded to a stride multiple"""

    def __init__(self, target_size: Tuple[int, int] = (640, 640),
                 fill: Sequence[int] = (114, 114, 114), stride: int = 32):
        self.target_size = tuple(target_size)
        self.fill = tuple(int(v) for v in fill)
        self.stride = int(stride)

    def plan(self, height: int, width: int) -> LetterboxInfo:
        target_h, target_w = self.target_size
        scale = min(target_h / height, target_w / width)

        new_h = min(max(int(round(height * scale)), 1), target_h)
        new_w = min(max(int(round(width * scale)), 1), target_w)

        padded_h = int(math.ceil(new_h / self.stride)) * self.stride
        padded_w = int(math.ceil(new_w / self.stride)) * self.stride

        # Odd remainders put the extra pixel on the trailing edge
        pad_h = padded_h - new_h
        pad_w = padded_w - new_w
        top, left = pad_h // 2, pad_w // 2

        return LetterboxInfo(
            original_size=(height, width),
            resized_size=(new_h, new_w),
            padded_size=(padded_h, padded_w),
            scale=scale,
            top=top,
            bottom=pad_h - top,
            left=left,
            right=pad_w - left,
        )

    def __call__(self, image: np.ndarray) -> np.ndarray:
        info = self.plan(*image.shape[:2])
        new_h, new_w = info.resized_size

        if (new_h, new_w) != image.shape[:2]:
            image = cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_LINEAR)

        channels = 1 if image.ndim == 2 else image.shape[2]
        value = self.fill[:channels] if channels > 1 else self.fill[0]
        return cv2.copyMakeBorder(image, info.top, info.bottom, info.left, info.right,
                                  cv2.BORDER_CONSTANT, value=value)


class DivConstant:
    """Divide every channel value by a constant, as float32"""

    def __init__(self, divisor: float = 255.0):
        if divisor == 0:
            raise ValueError("divisor must be non-zero")
        self.divisor = float(divisor)

    def __call__(self, image: np.ndarray) -> np.ndarray:
        return image.astype(np.float32) / np.float32(self.divisor)


class Normalize:
    """Subtract a per-channel mean and divide by a per-channel std"""

    def __init__(self, mean: Sequence[float], std: Sequence[float]):
        self.mean = np.asarray(mean, dtype=np.float32)
        self.std = np.asarray(std, dtype=np.float32)

    def __call__(self, image: np.ndarray) -> np.ndarray:
        return (image.astype(np.float32) - self.mean) / self.std


class Compose:
    """Apply transforms left to right"""

    def __init__(self, transforms: List[Callable[[np.ndarray], np.ndarray]]):
        self.transforms = list(transforms)

    def __call__(self, image: np.ndarray) -> np.ndarray:
        for transform in self.transforms:
            image = transform(image)
        return image


def build_transforms(config) -> Tuple[LetterResize, Compose]:
    """Canonical preprocessing: letterbox -> /255 -> normalize"""
    letterbox = LetterResize(config.target_size, config.pad_value, config.stride)
    compose = Compose([
        letterbox,
        DivConstant(255),
        Normalize(config.mean, config.std),
    ])
    return letterbox, compose


def write_planar(image: np.ndarray, host_buffer: torch.Tensor) -> ShapeDescriptor:
    """Write an HWC float image into the host buffer as CHW planes, in place"""
    if image.ndim == 2:
        image = image[:, :, np.newaxis]
    height, width, channels = image.shape
    shape = ShapeDescriptor(1, channels, height, width)

    if shape.count > host_buffer.numel():
        raise ValueError(f"Image {shape} does not fit host buffer of {host_buffer.numel()} elements")

    planes = host_buffer[:shape.count].numpy().reshape(channels, height, width)
    np.copyto(planes, image.transpose(2, 0, 1), casting='same_kind')
    return shape
