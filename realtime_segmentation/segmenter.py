#!/usr/bin/env python3
"""
Segmentation Execution Coordinator
Drives one inference call: preprocess -> host-to-device copy -> graph
execution -> class reduction -> mask

One Segmenter owns one stream and one set of buffers. Calls are blocking and
must not overlap; a second concurrent call is rejected instead of corrupting
the shared scratch buffers.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np

from .config import SegmenterConfig
from .engines import GraphEngine
from .errors import ConcurrentInferenceError, ExecutionError, InputShapeError
from .graph_manager import GraphLifecycleManager
from .reducers import ClassReducer, create_reducer
from .shape import ShapeDescriptor
from .transforms import LetterboxInfo, build_transforms, write_planar


@dataclass
class SegmentationResult:
    """Mask plus the geometry and timings of the call that produced it"""

    mask: np.ndarray
    letterbox: Optional[LetterboxInfo] = None
    input_shape: Optional[ShapeDescriptor] = None
    output_shape: Optional[ShapeDescriptor] = None
    timings: Dict[str, float] = field(default_factory=dict)


class Segmenter:
    """Real-time semantic segmentation on a compiled graph"""

    def __init__(self, config: SegmenterConfig, engine: Optional[GraphEngine] = None,
                 reducer: Optional[ClassReducer] = None, logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

        self.manager = GraphLifecycleManager(engine, self.logger)
        self.manager.initialize(config)

        self.letterbox, self.transforms = build_transforms(config)
        self.reducer = reducer or create_reducer(config.reducer)
        self._call_lock = threading.Lock()

        self.logger.info(f"Segmenter initialized ({config.num_classes} classes, "
                         f"{self.reducer.name} reduction)")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        """Release context and buffers once no call is running"""
        with self._call_lock:
            self.manager.release()

    def infer(self, image: np.ndarray) -> np.ndarray:
        """Segment one BGR image; empty images are returned unchanged"""
        if image is None or image.size == 0:
            return image
        return self.segment(image).mask

    def segment(self, image: np.ndarray) -> SegmentationResult:
        if image is None or image.size == 0:
            return SegmentationResult(mask=image)

        if not self._call_lock.acquire(blocking=False):
            raise ConcurrentInferenceError("Segmenter is not reentrant; another call is in progress")
        try:
            return self._run(image)
        finally:
            self._call_lock.release()

    def _check_output(self, output_shape: ShapeDescriptor):
        if output_shape.channels != self.config.num_classes:
            raise ExecutionError(f"Graph produces {output_shape.channels} channels, "
                                 f"expected {self.config.num_classes}")
        if output_shape.count > self.manager.buffers.output.numel:
            raise ExecutionError(f"Graph output {output_shape} exceeds the output buffer")

    def _run(self, image: np.ndarray) -> SegmentationResult:
        manager = self.manager
        if not manager.ready:
            raise ExecutionError("Segmenter has been closed")

        channels = 1 if image.ndim == 2 else image.shape[2]
        expected = manager.max_shape.channels
        if channels != expected:
            raise InputShapeError(f"Expected a {expected}-channel image, got {channels} channels")

        timings = {}
        start = time.perf_counter()

        letterbox = self.letterbox.plan(*image.shape[:2])
        sample = self.transforms(image)
        input_shape = write_planar(sample, manager.buffers.input.host)
        timings['preprocess'] = time.perf_counter() - start

        t0 = time.perf_counter()
        manager.buffers.copy_input_to_device(input_shape.count, manager.stream)
        manager.context.set_input_shape(input_shape)
        resolved = manager.context.resolved_output_shape()
        if resolved is not None:
            self._check_output(resolved)
        manager.engine.execute(manager.context, manager.bindings, manager.stream)
        manager.stream.synchronize()
        timings['execute'] = time.perf_counter() - t0

        t0 = time.perf_counter()
        output_shape = manager.context.output_shape()
        self._check_output(output_shape)
        mask = self.reducer.reduce(manager.buffers, output_shape, manager.stream)
        timings['postprocess'] = time.perf_counter() - t0
        timings['total'] = time.perf_counter() - start

        self.logger.debug(f"infer {input_shape} -> {output_shape}: "
                          f"pre {timings['preprocess'] * 1e3:.2f} ms, "
                          f"exec {timings['execute'] * 1e3:.2f} ms, "
                          f"post {timings['postprocess'] * 1e3:.2f} ms")

        return SegmentationResult(
            mask=mask,
            letterbox=letterbox,
            input_shape=input_shape,
            output_shape=output_shape,
            timings=timings,
        )
