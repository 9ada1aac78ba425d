from .onnx_engine import OnnxYoloEngine
from ..utils.config import InferenceConfig


def create_engine(config: InferenceConfig):
    engine_name = config.engine.lower()
    if engine_name == "onnx":
        return OnnxYoloEngine(
            model_path=config.model_path,
            input_size=config.input_size,
            output_name=config.output_name,
            device=config.device,
            log_severity_level=config.onnx_log_severity_level,
            warmup_iters=config.warmup_iters,
            debug_log_raw_output=config.debug_log_raw_output,
            debug_log_raw_interval_seconds=config.debug_log_raw_interval_seconds,
            debug_log_raw_rows=config.debug_log_raw_rows,
            debug_log_raw_cols=config.debug_log_raw_cols,
        )
    raise ValueError(f"Unsupported inference engine: {config.engine}")
