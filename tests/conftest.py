import numpy as np
import pytest

from realtime_detector.errors import ModelLoadError
from realtime_detector.inference.base import InferenceEngine, OutputTensor
from realtime_detector.utils.config import AppConfig


class FakeSource:
    def __init__(self):
        self.frame = np.full((48, 64, 3), 127, dtype=np.uint8)
        self.started = False
        self.stopped = False

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def frame_available(self):
        return self.frame is not None

    def read_frame(self):
        return self.frame


class FakeEngine(InferenceEngine):
    """Always reports one centered person."""

    def __init__(self, fail_load=False):
        self.fail_load = fail_load
        self.closed = False

    def load(self):
        if self.fail_load:
            raise ModelLoadError("Model not found: missing.onnx")

    def run(self, tensor):
        row = [0.5, 0.5, 0.25, 0.25, 0.9, 1.0, 0.0]
        return OutputTensor.from_array(np.array([[row]], dtype=np.float32))

    def close(self):
        self.closed = True


class EngineFactory:
    """Hands out engines whose load fails for the first ``failures`` calls."""

    def __init__(self, failures=0):
        self.failures = failures
        self.created = []

    def __call__(self):
        engine = FakeEngine(fail_load=len(self.created) < self.failures)
        self.created.append(engine)
        return engine


@pytest.fixture
def config():
    cfg = AppConfig()
    cfg.inference.labels = ["person", "car"]
    cfg.inference.input_size = 32
    cfg.scheduler.min_interval_ms = 20
    cfg.scheduler.tick_hz = 200
    cfg.scheduler.offload_inference = False
    return cfg


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def engine_factory():
    return EngineFactory
