"""
Shared fixtures: a scriptable stand-in for the graph compiler/runtime and
config factories pointing at temporary model/cache files
"""
import pytest

from .config import SegmenterConfig
from .errors import ArtifactLoadError
from .shape import ShapeDescriptor

ARTIFACT_MAGIC = b"FAKEGRAPH:"


class FakeContext:
    def __init__(self, num_classes: int, upscale: int = 1):
        self.num_classes = num_classes
        self.upscale = upscale
        self.input_shape = None
        self.released = False

    def set_input_shape(self, shape):
        self.input_shape = shape

    def output_shape(self):
        shape = self.input_shape
        return ShapeDescriptor(shape.num, self.num_classes,
                               shape.height * self.upscale, shape.width * self.upscale)

    def resolved_output_shape(self):
        return self.output_shape()

    def release(self):
        self.released = True


class FakeEngine:
    """Copies the normalized input planes straight to the output planes

    With zero mean / unit std the class of a pixel is then the index of its
    brightest color channel, which makes expected masks easy to write down.
    """

    name = 'fake'

    def __init__(self, num_classes: int = 3, upscale: int = 1):
        self.num_classes = num_classes
        self.upscale = upscale
        self.builds = 0
        self.loads = 0
        self.executions = 0
        self.profiles = []
        self.contexts = []

    def version_tag(self):
        return 'fake-1'

    def build(self, description_path, profile, options):
        self.builds += 1
        self.profiles.append(profile)
        with open(description_path, 'rb') as f:
            return ARTIFACT_MAGIC + f.read()

    def load(self, artifact, device):
        if not artifact.startswith(ARTIFACT_MAGIC):
            raise ArtifactLoadError("not a fake graph artifact")
        self.loads += 1
        context = FakeContext(self.num_classes, self.upscale)
        self.contexts.append(context)
        return context

    def execute(self, context, bindings, stream):
        self.executions += 1
        count = context.input_shape.count
        bindings.output[:count].copy_(bindings.input[:count])


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def model_file(tmp_path):
    path = tmp_path / "model.onnx"
    path.write_bytes(b"fake model description v1")
    return path


@pytest.fixture
def make_config(tmp_path, model_file):
    def factory(**overrides):
        values = {
            'model_path': str(model_file),
            'cache_path': str(tmp_path / "cache" / "model.engine"),
            'device': 'cpu',
            'num_classes': 3,
            'mean': (0.0, 0.0, 0.0),
            'std': (1.0, 1.0, 1.0),
            'reducer': 'host',
        }
        values.update(overrides)
        return SegmenterConfig(**values)
    return factory
