import time
from pathlib import Path
from typing import List, Optional

import numpy as np

from .base import InferenceEngine, OutputTensor
from ..errors import InferenceError, ModelLoadError
from ..utils.logging import get_logger


class OnnxYoloEngine(InferenceEngine):
    """ONNX Runtime session wrapper: [1, 3, S, S] tensor in, named output tensor out."""
    def __init__(
        self,
        model_path: str,
        input_size: int = 640,
        output_name: str = "output0",
        device: str = "cpu",
        log_severity_level: int = 2,
        warmup_iters: int = 0,
        debug_log_raw_output: bool = False,
        debug_log_raw_interval_seconds: float = 2.0,
        debug_log_raw_rows: int = 3,
        debug_log_raw_cols: int = 6,
    ):
        self.model_path = model_path
        self.input_size = int(input_size)
        self.output_name = output_name
        self.device = device
        self.log_severity_level = log_severity_level
        self.warmup_iters = max(0, int(warmup_iters))
        self.debug_log_raw_output = debug_log_raw_output
        self.debug_log_raw_interval_seconds = debug_log_raw_interval_seconds
        self.debug_log_raw_rows = debug_log_raw_rows
        self.debug_log_raw_cols = debug_log_raw_cols
        self.session = None
        self.input_name: Optional[str] = None
        self.input_dtype = np.float32
        self._output_index = 0
        self._last_raw_log_ts = 0.0
        self.logger = get_logger("inference.onnx")

    @property
    def loaded(self) -> bool:
        return self.session is not None

    def load(self) -> None:
        if not Path(self.model_path).is_file():
            raise ModelLoadError(f"Model not found: {self.model_path}")

        try:
            import onnxruntime as ort
        except ImportError as exc:
            raise ModelLoadError("onnxruntime is required for ONNX inference") from exc

        providers = self._resolve_providers(self.device, ort.get_available_providers())
        session_options = ort.SessionOptions()
        session_options.log_severity_level = self.log_severity_level
        try:
            session = ort.InferenceSession(self.model_path, sess_options=session_options, providers=providers)
        except Exception as exc:
            raise ModelLoadError(f"Failed to load ONNX model {self.model_path}: {exc}") from exc

        model_input = session.get_inputs()[0]
        output_names = [output.name for output in session.get_outputs()]
        if not output_names:
            raise ModelLoadError(f"Model {self.model_path} declares no outputs")
        if self.output_name in output_names:
            self._output_index = output_names.index(self.output_name)
        else:
            self.logger.warning(
                "Output %r not found in %s; using %r", self.output_name, output_names, output_names[0]
            )
            self._output_index = 0

        self.session = session
        self.input_name = model_input.name
        self.input_dtype = self._resolve_input_dtype(model_input.type)
        self.logger.info(
            "Loaded ONNX model %s (input=%s %s, providers=%s)",
            self.model_path,
            self.input_name,
            model_input.shape,
            providers,
        )
        self._warmup()

    def run(self, tensor: np.ndarray) -> OutputTensor:
        if self.session is None:
            raise InferenceError("ONNX engine is not loaded")

        feed = np.asarray(tensor).astype(self.input_dtype, copy=False)
        try:
            outputs = self.session.run(None, {self.input_name: feed})
        except Exception as exc:
            raise InferenceError(f"ONNX inference failed: {exc}") from exc

        output = outputs[self._output_index]
        if isinstance(output, list):
            output = np.array(output)
        self._maybe_log_raw_output(output)
        name = self.session.get_outputs()[self._output_index].name
        return OutputTensor.from_array(output, name=name)

    def close(self) -> None:
        self.session = None

    def _warmup(self) -> None:
        if self.warmup_iters <= 0:
            return
        dummy = np.zeros((1, 3, self.input_size, self.input_size), dtype=np.float32)
        try:
            for _ in range(self.warmup_iters):
                self.run(dummy)
        except InferenceError as exc:
            self.logger.warning("Warmup failed: %s", exc)
            return
        self.logger.info("Warmup complete (%d iters)", self.warmup_iters)

    def _resolve_input_dtype(self, type_name: str):
        if not type_name:
            return np.float32
        if "float16" in type_name:
            return np.float16
        return np.float32

    def _resolve_providers(self, device: str, available_providers) -> List[str]:
        value = (device or "auto").lower()
        if value.startswith("cpu"):
            return ["CPUExecutionProvider"]
        if value.startswith("cuda") or value.startswith("gpu") or value.startswith("auto"):
            if "CUDAExecutionProvider" in available_providers:
                return ["CUDAExecutionProvider", "CPUExecutionProvider"]
            if not value.startswith("auto"):
                self.logger.warning("CUDAExecutionProvider unavailable; falling back to CPUExecutionProvider")
            return ["CPUExecutionProvider"]
        self.logger.warning("Unknown device %r; using CPUExecutionProvider", device)
        return ["CPUExecutionProvider"]

    def _maybe_log_raw_output(self, output: np.ndarray) -> None:
        if not self.debug_log_raw_output:
            return

        now = time.time()
        if now - self._last_raw_log_ts < self.debug_log_raw_interval_seconds:
            return
        self._last_raw_log_ts = now

        if output.size:
            stats = {
                "min": float(np.min(output)),
                "max": float(np.max(output)),
                "mean": float(np.mean(output)),
            }
        else:
            stats = {"min": None, "max": None, "mean": None}

        sample = self._sample_rows(output)
        self.logger.info("Raw output shape=%s stats=%s sample=%s", output.shape, stats, sample)

    def _sample_rows(self, output: np.ndarray):
        data = output
        while data.ndim > 2:
            data = data[0]
        if data.ndim == 0:
            return []
        if data.ndim == 1:
            return [self._round_list(data[: self.debug_log_raw_cols])]

        rows = min(self.debug_log_raw_rows, data.shape[0])
        cols = min(self.debug_log_raw_cols, data.shape[1])
        return [self._round_list(row[:cols]) for row in data[:rows]]

    def _round_list(self, values):
        return [round(float(v), 4) for v in values]
