#!/usr/bin/env python3
"""
Graph Lifecycle Manager
Loads a cached compiled artifact or builds one from the model description,
persists it, creates the execution context and allocates the I/O buffers

Building is expensive, so the compiled artifact is cached on disk at the
configured path. A ``<cache>.fingerprint`` sidecar records a hash of everything
the artifact depends on (model bytes, precision, max shape, engine version,
device). When the model description is present and the hash differs, the
artifact is rebuilt in place; without the description the artifact is trusted.
"""
import hashlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from .buffers import BindingList, BufferManager
from .config import SegmenterConfig
from .device import ExecutionStream, device_tag, resolve_device
from .engines import BuildOptions, GraphEngine, OptimizationProfile, create_engine
from .errors import ArtifactLoadError, ContextCreationError, ModelNotFoundError, StartupError
from .shape import ShapeDescriptor


def compute_fingerprint(config: SegmenterConfig, engine: GraphEngine, device_name: str) -> str:
    """Hash of the model description and the build settings"""
    digest = hashlib.sha256()
    with open(config.model_path, 'rb') as f:
        for chunk in iter(lambda: f.read(1 << 20), b''):
            digest.update(chunk)
    settings = (f"{engine.name}|{engine.version_tag()}|{device_name}|"
                f"fp16={config.use_fp16}|max={config.max_shape}|classes={config.num_classes}")
    digest.update(settings.encode('utf-8'))
    return digest.hexdigest()[:16]


def fingerprint_path(artifact_path: Path) -> Path:
    return artifact_path.with_name(artifact_path.name + '.fingerprint')


class GraphLifecycleManager:
    """Owns the execution context, stream and buffers of one pipeline instance"""

    def __init__(self, engine: Optional[GraphEngine] = None, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.engine = engine
        self.config: Optional[SegmenterConfig] = None
        self.device = None
        self.stream: Optional[ExecutionStream] = None
        self.context = None
        self.buffers: Optional[BufferManager] = None
        self.profile: Optional[OptimizationProfile] = None
        self.artifact_path: Optional[Path] = None
        self.fingerprint: Optional[str] = None
        self.built = False

    @property
    def ready(self) -> bool:
        return self.context is not None and self.buffers is not None and self.buffers.allocated

    @property
    def bindings(self) -> Optional[BindingList]:
        return self.buffers.bindings if self.buffers is not None else None

    @property
    def max_shape(self) -> ShapeDescriptor:
        return self.config.max_shape_descriptor

    def _prepare(self, config: SegmenterConfig):
        self.config = config
        try:
            self.device = resolve_device(config.device, config.device_index, self.logger)
        except (ValueError, RuntimeError) as e:
            raise StartupError(f"Could not select device: {e}") from e

        if self.engine is None:
            self.engine = create_engine(config.engine, self.logger)
        self.profile = OptimizationProfile.for_max_shape(config.max_shape_descriptor)
        self.artifact_path = Path(config.cache_path)
        self.fingerprint = None
        if os.path.exists(config.model_path):
            self.fingerprint = compute_fingerprint(config, self.engine, device_tag(self.device))

    def read_fingerprint(self) -> Optional[str]:
        path = fingerprint_path(self.artifact_path)
        if not path.exists():
            return None
        with open(path, 'r') as f:
            return f.read().strip()

    def cache_is_valid(self) -> bool:
        """True when the cached artifact can be loaded without rebuilding"""
        if not self.artifact_path.exists():
            return False
        if not self.config.fingerprint_cache or self.fingerprint is None:
            return True
        stored = self.read_fingerprint()
        if stored != self.fingerprint:
            self.logger.info(f"Cached artifact {self.artifact_path} is stale "
                             f"(fingerprint {stored} != {self.fingerprint}), rebuilding")
            return False
        return True

    def initialize(self, config: SegmenterConfig) -> 'GraphLifecycleManager':
        """Load or build the compiled graph, then allocate buffers once"""
        if self.ready:
            raise StartupError("Graph lifecycle manager is already initialized")

        self._prepare(config)
        self.stream = ExecutionStream(self.device)

        try:
            if self.cache_is_valid():
                self.logger.info(f"read rt model... {self.artifact_path}")
                artifact = self.read_artifact(self.artifact_path)
            else:
                artifact = self.build_artifact()
                self.save_artifact(artifact, self.artifact_path)

            self.context = self.engine.load(artifact, self.device)
            if self.context is None:
                raise ContextCreationError(f"{self.engine.name} returned no execution context")

            self.buffers = BufferManager(self.device, self.logger)
            self.buffers.allocate(config.max_shape_descriptor, config.num_classes)
        except StartupError as e:
            self.logger.error(f"Initialization failed: {e}")
            self.release()
            raise

        self.logger.info(f"Execution context ready ({self.engine.name} on {self.device}, "
                         f"max shape {config.max_shape_descriptor})")
        return self

    def build_artifact(self) -> bytes:
        """Compile the model description; it must exist"""
        config = self.config
        if not os.path.exists(config.model_path):
            self.logger.error(f"model description is not found {config.model_path}")
            raise ModelNotFoundError(f"Model description not found: {config.model_path}")

        self.logger.info(f"Building {self.engine.name} graph from {config.model_path} "
                         f"(profile min {self.profile.min_shape}, opt {self.profile.opt_shape}, "
                         f"max {self.profile.max_shape})")
        options = BuildOptions(
            device=self.device,
            use_fp16=config.use_fp16,
            workspace_size=config.workspace_size,
            num_classes=config.num_classes,
        )
        artifact = self.engine.build(config.model_path, self.profile, options)
        self.built = True
        self.logger.info(f"Graph built: {len(artifact) / 1e6:.2f} MB artifact")
        return artifact

    def read_artifact(self, path: Path) -> bytes:
        try:
            with open(path, 'rb') as f:
                return f.read()
        except OSError as e:
            raise ArtifactLoadError(f"Can't read rt model from {path}: {e}") from e

    def _replace_file(self, data: bytes, path: Path):
        """Write next to the final path, then move in place"""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
            os.replace(tmp_path, path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise StartupError(f"Could not save compiled artifact to {path}: {e}") from e

    def save_artifact(self, artifact: bytes, path: Path):
        """Persist the artifact at the cache path, then its fingerprint sidecar"""
        self._replace_file(artifact, path)
        if self.fingerprint is not None:
            self._replace_file(self.fingerprint.encode('utf-8'), fingerprint_path(path))
        self.logger.info(f"Saved compiled artifact to {path}")

    def build_only(self, config: SegmenterConfig, force: bool = False) -> Path:
        """Populate the artifact cache without creating a context"""
        self._prepare(config)
        if self.cache_is_valid() and not force:
            self.logger.info(f"Artifact already cached at {self.artifact_path}")
            return self.artifact_path
        artifact = self.build_artifact()
        self.save_artifact(artifact, self.artifact_path)
        return self.artifact_path

    def release(self):
        """Drain the stream, then drop the context and free the buffers"""
        if self.stream is not None:
            self.stream.synchronize()
        if self.context is not None:
            self.context.release()
            self.context = None
        if self.buffers is not None:
            self.buffers.release()
            self.buffers = None
        self.stream = None
