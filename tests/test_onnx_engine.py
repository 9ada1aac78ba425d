import numpy as np
import pytest

from realtime_detector.errors import InferenceError, ModelLoadError
from realtime_detector.inference.factory import create_engine
from realtime_detector.inference.onnx_engine import OnnxYoloEngine
from realtime_detector.utils.config import InferenceConfig


def test_missing_model_raises_load_error(tmp_path):
    engine = OnnxYoloEngine(model_path=str(tmp_path / "missing.onnx"))

    with pytest.raises(ModelLoadError):
        engine.load()
    assert not engine.loaded


def test_corrupt_model_raises_load_error(tmp_path):
    path = tmp_path / "broken.onnx"
    path.write_bytes(b"not a model")
    engine = OnnxYoloEngine(model_path=str(path))

    with pytest.raises(ModelLoadError):
        engine.load()


def test_run_before_load_raises():
    engine = OnnxYoloEngine(model_path="unused.onnx")

    with pytest.raises(InferenceError):
        engine.run(np.zeros((1, 3, 8, 8), dtype=np.float32))


@pytest.mark.parametrize(
    "device,available,expected",
    [
        ("cpu", ["CUDAExecutionProvider", "CPUExecutionProvider"], ["CPUExecutionProvider"]),
        ("cuda", ["CUDAExecutionProvider", "CPUExecutionProvider"], ["CUDAExecutionProvider", "CPUExecutionProvider"]),
        ("cuda:0", ["CPUExecutionProvider"], ["CPUExecutionProvider"]),
        ("auto", ["CUDAExecutionProvider", "CPUExecutionProvider"], ["CUDAExecutionProvider", "CPUExecutionProvider"]),
        ("auto", ["CPUExecutionProvider"], ["CPUExecutionProvider"]),
        ("tpu", ["CPUExecutionProvider"], ["CPUExecutionProvider"]),
    ],
)
def test_provider_resolution(device, available, expected):
    engine = OnnxYoloEngine(model_path="unused.onnx")

    assert engine._resolve_providers(device, available) == expected


def test_raw_output_sampling_limits_rows_and_cols():
    engine = OnnxYoloEngine(model_path="unused.onnx", debug_log_raw_rows=2, debug_log_raw_cols=3)
    output = np.arange(1 * 4 * 6, dtype=np.float32).reshape(1, 4, 6)

    sample = engine._sample_rows(output)

    assert sample == [[0.0, 1.0, 2.0], [6.0, 7.0, 8.0]]


def test_factory_builds_onnx_engine():
    config = InferenceConfig(model_path="m.onnx", input_size=320, output_name="dets")

    engine = create_engine(config)

    assert isinstance(engine, OnnxYoloEngine)
    assert engine.input_size == 320
    assert engine.output_name == "dets"


def test_factory_rejects_unknown_engine():
    with pytest.raises(ValueError):
        create_engine(InferenceConfig(engine="tensorrt"))
