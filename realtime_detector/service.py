import asyncio
import threading
import time
from typing import Callable, Optional

from .errors import ModelLoadError
from .inference.base import Detection, InferenceEngine
from .inference.factory import create_engine
from .ingestion.webcam import FrameSource, WebcamSource
from .labels import load_labels
from .pipeline.scheduler import FrameScheduler
from .pipeline.store import DetectionSet, DetectionStore
from .utils.config import AppConfig
from .utils.logging import get_logger
from .utils.opencv import configure_opencv_logging


def format_detection(det: Detection) -> str:
    return (
        f"Class {det.class_index} ({det.class_label}): {det.confidence:.4f} - "
        f"Position: ({det.x:.2f}, {det.y:.2f}) - "
        f"Size: {det.width:.2f}x{det.height:.2f}"
    )


class DetectionService:
    def __init__(
        self,
        config: AppConfig,
        source: Optional[FrameSource] = None,
        engine_factory: Optional[Callable[[], InferenceEngine]] = None,
    ) -> None:
        self.config = config
        self.logger = get_logger("service")
        self.labels = load_labels(config.inference.labels, config.inference.labels_path)
        self.store = DetectionStore()
        if source is None:
            source = WebcamSource(
                device=config.camera.device,
                width=config.camera.width,
                height=config.camera.height,
                min_backoff=config.camera.reconnect_min_backoff,
                max_backoff=config.camera.reconnect_max_backoff,
            )
        self.source = source
        self.scheduler = FrameScheduler.from_config(config, source, self.store, self.labels)
        self._engine_factory = engine_factory or (lambda: create_engine(config.inference))
        self._engine: Optional[InferenceEngine] = None
        self._model_error: Optional[str] = None
        self._model_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._loop_thread: Optional[threading.Thread] = None
        self._debug_last_log_ts = 0.0
        if config.inference.debug_log_detections:
            self.store.subscribe(self._maybe_log_detections)

    @property
    def model_loaded(self) -> bool:
        return self._engine is not None

    @property
    def model_error(self) -> Optional[str]:
        return self._model_error

    def start(self) -> None:
        self.logger.info("Starting detection service")
        configure_opencv_logging(self.config.app.suppress_cv_warnings)
        self._stop_event.clear()
        self._start_source()
        self.load_model()
        self._loop_thread = threading.Thread(target=self._run_loop, name="frame-scheduler", daemon=True)
        self._loop_thread.start()

    def stop(self) -> None:
        self.logger.info("Stopping detection service")
        self._stop_event.set()
        if self._loop_thread is not None:
            self._loop_thread.join(timeout=5)
            self._loop_thread = None
        self._stop_source()
        with self._model_lock:
            self.scheduler.detach_engine()
            if self._engine is not None:
                self._engine.close()
                self._engine = None

    def load_model(self) -> bool:
        """(Re)load the model; on failure detection stays off until the next reload."""
        with self._model_lock:
            try:
                engine = self._engine_factory()
                engine.load()
            except ModelLoadError as exc:
                self._model_error = str(exc)
                self.logger.error("Model unavailable, detection disabled: %s", exc)
                return False

            previous = self._engine
            self._engine = engine
            self._model_error = None
            self.scheduler.attach_engine(engine)
            if previous is not None:
                previous.close()
            self.logger.info("Model ready: %s", self.config.inference.model_path)
            return True

    def reload_model(self) -> bool:
        self.logger.info("Reloading model %s", self.config.inference.model_path)
        return self.load_model()

    def latest(self) -> DetectionSet:
        return self.store.latest()

    def wait_for_update(self, after_version: int, timeout: Optional[float] = None) -> Optional[DetectionSet]:
        return self.store.wait_for_update(after_version, timeout=timeout)

    def subscribe(self, callback: Callable[[DetectionSet], None]) -> Callable[[], None]:
        return self.store.subscribe(callback)

    def status(self) -> dict:
        camera_state = getattr(self.source, "state", None)
        return {
            "model_loaded": self.model_loaded,
            "model_path": self.config.inference.model_path,
            "model_error": self._model_error,
            "phase": self.scheduler.phase.value,
            "scheduler": self.scheduler.stats.to_dict(),
            "camera": camera_state.snapshot() if camera_state is not None else None,
            "latest_version": self.store.version,
        }

    def _run_loop(self) -> None:
        asyncio.run(self.scheduler.run(self._stop_event))

    def _start_source(self) -> None:
        start = getattr(self.source, "start", None)
        if callable(start):
            start()

    def _stop_source(self) -> None:
        stop = getattr(self.source, "stop", None)
        if callable(stop):
            stop()

    def _maybe_log_detections(self, detection_set: DetectionSet) -> None:
        inference_cfg = self.config.inference
        now = time.time()
        if now - self._debug_last_log_ts < inference_cfg.debug_log_interval_seconds:
            return
        self._debug_last_log_ts = now

        sample = [format_detection(det) for det in detection_set.detections[: inference_cfg.debug_log_max_detections]]
        self.logger.info(
            "Detections v%d: count=%d sample=%s", detection_set.version, len(detection_set), sample
        )
