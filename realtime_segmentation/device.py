#!/usr/bin/env python3
"""
Device and Stream Helpers
Resolves the execution device and wraps the per-instance execution stream
"""
import contextlib
import logging
from typing import Optional

import torch

logger = logging.getLogger(__name__)


def resolve_device(device: str = 'auto', device_index: int = 0,
                   log: Optional[logging.Logger] = None) -> torch.device:
    """Setup and validate the execution device"""
    log = log or logger

    if device == 'auto':
        if torch.cuda.is_available():
            device = 'cuda'
        else:
            device = 'cpu'
            log.info("No GPU available, using CPU")

    if device == 'cuda' and not torch.cuda.is_available():
        log.warning("CUDA requested but not available, falling back to CPU")
        device = 'cpu'

    if device == 'cuda':
        if device_index >= torch.cuda.device_count():
            raise ValueError(f"CUDA device index {device_index} out of range "
                             f"({torch.cuda.device_count()} devices)")
        torch_device = torch.device('cuda', device_index)
        torch.cuda.set_device(torch_device)
        log.info(f"GPU: {torch.cuda.get_device_name(device_index)}")
        log.info(f"GPU Memory: {torch.cuda.get_device_properties(device_index).total_memory / 1e9:.1f} GB")
    else:
        torch_device = torch.device('cpu')

    log.info(f"Using device: {torch_device}")
    return torch_device


def device_tag(device: torch.device) -> str:
    """Short description of the hardware a compiled artifact is tied to"""
    if device.type == 'cuda':
        index = device.index if device.index is not None else torch.cuda.current_device()
        major, minor = torch.cuda.get_device_capability(index)
        return f"{torch.cuda.get_device_name(index)}-sm{major}{minor}"
    return 'cpu'


class ExecutionStream:
    """One execution stream per pipeline instance

    On CUDA this wraps a dedicated torch.cuda.Stream. On CPU all work is
    already synchronous and the stream is a no-op.
    """

    def __init__(self, device: torch.device):
        self.device = device
        self.stream = torch.cuda.Stream(device=device) if device.type == 'cuda' else None

    @property
    def handle(self) -> int:
        """Raw stream handle for engines that launch on a cudaStream_t"""
        return self.stream.cuda_stream if self.stream is not None else 0

    def activate(self):
        """Context manager making this stream current for queued work"""
        if self.stream is None:
            return contextlib.nullcontext()
        return torch.cuda.stream(self.stream)

    def synchronize(self):
        if self.stream is not None:
            self.stream.synchronize()
