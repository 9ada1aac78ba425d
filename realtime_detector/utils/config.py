import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from ..inference.nms import NMS_MODES

ENGINES = ("onnx",)
RESIZE_MODES = ("stretch", "letterbox")
CHANNEL_ORDERS = ("bgr", "rgb", "bgra", "rgba")
CONFIDENCE_MODES = ("objectness", "objectness_x_class")
BOX_UNITS = ("normalized", "pixels")
OUTPUT_LAYOUTS = ("rows", "channel_first")
LOG_FORMATS = ("json", "console")


@dataclass
class AppSettings:
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    log_format: str = "json"
    suppress_cv_warnings: bool = False


@dataclass
class CameraConfig:
    device: Union[int, str] = 0
    width: int = 0
    height: int = 0
    channel_order: str = "bgr"
    reconnect_min_backoff: float = 1.0
    reconnect_max_backoff: float = 30.0


@dataclass
class InferenceConfig:
    engine: str = "onnx"
    model_path: str = "models/yolov10n.onnx"
    labels: List[str] = field(default_factory=list)
    labels_path: Optional[str] = None
    input_size: int = 640
    resize_mode: str = "stretch"
    confidence_threshold: float = 0.5
    confidence_mode: str = "objectness"
    box_units: str = "normalized"
    output_layout: str = "rows"
    output_name: str = "output0"
    map_to_frame: bool = False
    nms_iou_threshold: float = 0.5
    nms_mode: str = "first_match"
    class_agnostic_nms: bool = True
    device: str = "cpu"
    onnx_log_severity_level: int = 2
    warmup_iters: int = 1
    debug_log_detections: bool = False
    debug_log_interval_seconds: float = 2.0
    debug_log_max_detections: int = 5
    debug_log_raw_output: bool = False
    debug_log_raw_interval_seconds: float = 2.0
    debug_log_raw_rows: int = 3
    debug_log_raw_cols: int = 6


@dataclass
class SchedulerConfig:
    min_interval_ms: float = 110.0
    tick_hz: float = 60.0
    offload_inference: bool = True


@dataclass
class AppConfig:
    app: AppSettings = field(default_factory=AppSettings)
    camera: CameraConfig = field(default_factory=CameraConfig)
    inference: InferenceConfig = field(default_factory=InferenceConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)


def _load_json(path: Path) -> dict:
    raw = path.read_text(encoding="utf-8")
    return json.loads(raw)


def _check_choice(name: str, value: str, choices) -> str:
    value = str(value).lower()
    if value not in choices:
        raise ValueError(f"{name} must be one of {', '.join(choices)}; got {value!r}")
    return value


def _check_unit_interval(name: str, value: float) -> float:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be within [0, 1]; got {value}")
    return value


def _check_positive(name: str, value):
    if value <= 0:
        raise ValueError(f"{name} must be positive; got {value}")
    return value


def _check_labels(value) -> List[str]:
    if not isinstance(value, list):
        raise ValueError(f"inference.labels must be a list of class names; got {type(value).__name__}")
    return [str(label) for label in value]


def parse_device(value) -> Union[int, str]:
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.isdigit():
        return int(text)
    return text


def parse_config(data: dict) -> AppConfig:
    app_data = data.get("app", {})
    app = AppSettings(
        host=app_data.get("host", AppSettings.host),
        port=int(app_data.get("port", AppSettings.port)),
        log_level=str(app_data.get("log_level", AppSettings.log_level)).upper(),
        log_format=_check_choice("app.log_format", app_data.get("log_format", "json"), LOG_FORMATS),
        suppress_cv_warnings=bool(app_data.get("suppress_cv_warnings", False)),
    )

    camera_data = data.get("camera", {})
    camera = CameraConfig(
        device=parse_device(camera_data.get("device", 0)),
        width=int(camera_data.get("width", 0)),
        height=int(camera_data.get("height", 0)),
        channel_order=_check_choice(
            "camera.channel_order", camera_data.get("channel_order", "bgr"), CHANNEL_ORDERS
        ),
        reconnect_min_backoff=float(camera_data.get("reconnect_min_backoff", 1.0)),
        reconnect_max_backoff=float(camera_data.get("reconnect_max_backoff", 30.0)),
    )

    inference_raw = data.get("inference", {})
    inference = InferenceConfig(
        engine=_check_choice("inference.engine", inference_raw.get("engine", "onnx"), ENGINES),
        model_path=inference_raw.get("model_path", InferenceConfig.model_path),
        labels=_check_labels(inference_raw.get("labels", [])),
        labels_path=inference_raw.get("labels_path"),
        input_size=_check_positive("inference.input_size", int(inference_raw.get("input_size", 640))),
        resize_mode=_check_choice(
            "inference.resize_mode", inference_raw.get("resize_mode", "stretch"), RESIZE_MODES
        ),
        confidence_threshold=_check_unit_interval(
            "inference.confidence_threshold", float(inference_raw.get("confidence_threshold", 0.5))
        ),
        confidence_mode=_check_choice(
            "inference.confidence_mode", inference_raw.get("confidence_mode", "objectness"), CONFIDENCE_MODES
        ),
        box_units=_check_choice("inference.box_units", inference_raw.get("box_units", "normalized"), BOX_UNITS),
        output_layout=_check_choice(
            "inference.output_layout", inference_raw.get("output_layout", "rows"), OUTPUT_LAYOUTS
        ),
        output_name=inference_raw.get("output_name", "output0"),
        map_to_frame=bool(inference_raw.get("map_to_frame", False)),
        nms_iou_threshold=_check_unit_interval(
            "inference.nms_iou_threshold", float(inference_raw.get("nms_iou_threshold", 0.5))
        ),
        nms_mode=_check_choice("inference.nms_mode", inference_raw.get("nms_mode", "first_match"), NMS_MODES),
        class_agnostic_nms=bool(inference_raw.get("class_agnostic_nms", True)),
        device=inference_raw.get("device", "cpu"),
        onnx_log_severity_level=int(inference_raw.get("onnx_log_severity_level", 2)),
        warmup_iters=int(inference_raw.get("warmup_iters", 1)),
        debug_log_detections=bool(inference_raw.get("debug_log_detections", False)),
        debug_log_interval_seconds=float(inference_raw.get("debug_log_interval_seconds", 2.0)),
        debug_log_max_detections=int(inference_raw.get("debug_log_max_detections", 5)),
        debug_log_raw_output=bool(inference_raw.get("debug_log_raw_output", False)),
        debug_log_raw_interval_seconds=float(inference_raw.get("debug_log_raw_interval_seconds", 2.0)),
        debug_log_raw_rows=int(inference_raw.get("debug_log_raw_rows", 3)),
        debug_log_raw_cols=int(inference_raw.get("debug_log_raw_cols", 6)),
    )

    scheduler_raw = data.get("scheduler", {})
    scheduler = SchedulerConfig(
        min_interval_ms=float(scheduler_raw.get("min_interval_ms", 110.0)),
        tick_hz=_check_positive("scheduler.tick_hz", float(scheduler_raw.get("tick_hz", 60.0))),
        offload_inference=bool(scheduler_raw.get("offload_inference", True)),
    )
    if scheduler.min_interval_ms < 0:
        raise ValueError(f"scheduler.min_interval_ms must not be negative; got {scheduler.min_interval_ms}")

    return AppConfig(app=app, camera=camera, inference=inference, scheduler=scheduler)


def load_config(path: Optional[str]) -> AppConfig:
    if not path:
        return AppConfig()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {path}")

    return parse_config(_load_json(config_path))
