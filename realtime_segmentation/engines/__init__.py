"""
Execution Engines
Graph compiler/runtime backends behind the GraphEngine contract
"""
import logging
from typing import Optional

from .base import BuildOptions, ExecutionContext, GraphEngine, OptimizationProfile
from .torchscript_engine import TorchScriptEngine


def create_engine(name: str, log: Optional[logging.Logger] = None) -> GraphEngine:
    """Create an engine by configuration name"""
    if name == 'torchscript':
        return TorchScriptEngine(log)
    elif name == 'tensorrt':
        from .tensorrt_engine import TensorRTEngine
        return TensorRTEngine(log)
    else:
        raise ValueError(f"Unknown engine: {name}")


__all__ = [
    'BuildOptions',
    'ExecutionContext',
    'GraphEngine',
    'OptimizationProfile',
    'TorchScriptEngine',
    'create_engine'
]
