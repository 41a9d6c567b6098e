#!/usr/bin/env python3
"""
Shape Descriptor
Immutable 4D (num, channels, height, width) shape used for buffer sizing
"""
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class ShapeDescriptor:
    """NCHW shape with derived element counts"""

    num: int
    channels: int
    height: int
    width: int

    def __post_init__(self):
        for name in ('num', 'channels', 'height', 'width'):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ValueError(f"ShapeDescriptor.{name} must be a positive int, got {value!r}")

    @classmethod
    def from_sequence(cls, dims) -> 'ShapeDescriptor':
        dims = tuple(int(d) for d in dims)
        if len(dims) != 4:
            raise ValueError(f"Expected 4 dimensions (N, C, H, W), got {len(dims)}")
        return cls(*dims)

    @property
    def count(self) -> int:
        return self.num * self.channels * self.height * self.width

    @property
    def spatial(self) -> Tuple[int, int]:
        return self.height, self.width

    def reshape(self, num: int, channels: int, height: int, width: int) -> 'ShapeDescriptor':
        return ShapeDescriptor(num, channels, height, width)

    def with_channels(self, channels: int) -> 'ShapeDescriptor':
        return ShapeDescriptor(self.num, channels, self.height, self.width)

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return self.num, self.channels, self.height, self.width

    def __str__(self):
        return f"{self.num}x{self.channels}x{self.height}x{self.width}"
