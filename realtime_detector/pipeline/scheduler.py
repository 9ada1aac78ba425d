import asyncio
import inspect
import threading
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, List, Optional

import numpy as np

from ..errors import DecodingError, DetectorError, InferenceError
from ..inference.base import Detection, InferenceEngine, OutputTensor
from ..inference.nms import suppress
from ..inference.yolo import decode_output, encode_frame
from ..ingestion.webcam import FrameSource
from ..labels import ClassLabelTable
from ..utils.config import AppConfig
from ..utils.logging import get_logger
from .store import DetectionStore


class Phase(str, Enum):
    IDLE = "idle"
    ENCODING = "encoding"
    INFERRING = "inferring"
    DECODING = "decoding"
    PUBLISHING = "publishing"


@dataclass
class SchedulerStats:
    cycles_started: int = 0
    cycles_completed: int = 0
    cycles_failed: int = 0
    skipped_busy: int = 0
    last_cycle_ms: float = 0.0
    last_error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class FrameScheduler:
    """Drives encode -> infer -> decode -> suppress -> publish, one frame at a time.

    A cycle starts on a tick only when nothing is in flight and more than
    ``min_interval_ms`` has passed since the last successful cycle started. Ticks
    that land while a cycle is running are dropped, not queued. A failed
    cycle publishes an empty set and the next tick may retry straight away.
    """

    def __init__(
        self,
        source: FrameSource,
        store: DetectionStore,
        labels: ClassLabelTable,
        engine: Optional[InferenceEngine] = None,
        input_size: int = 640,
        resize_mode: str = "stretch",
        channel_order: str = "bgr",
        confidence_threshold: float = 0.5,
        confidence_mode: str = "objectness",
        box_units: str = "normalized",
        output_layout: str = "rows",
        map_to_frame: bool = False,
        nms_iou_threshold: float = 0.5,
        nms_mode: str = "first_match",
        class_agnostic_nms: bool = True,
        min_interval_ms: float = 110.0,
        tick_hz: float = 60.0,
        offload_inference: bool = True,
        clock: Callable[[], float] = _monotonic_ms,
    ) -> None:
        self.source = source
        self.store = store
        self.labels = labels
        self.input_size = input_size
        self.resize_mode = resize_mode
        self.channel_order = channel_order
        self.confidence_threshold = confidence_threshold
        self.confidence_mode = confidence_mode
        self.box_units = box_units
        self.output_layout = output_layout
        self.map_to_frame = map_to_frame
        self.nms_iou_threshold = nms_iou_threshold
        self.nms_mode = nms_mode
        self.class_agnostic_nms = class_agnostic_nms
        self.min_interval_ms = min_interval_ms
        self.tick_hz = tick_hz
        self.offload_inference = offload_inference
        self.stats = SchedulerStats()
        self.logger = get_logger("pipeline.scheduler")
        self._clock = clock
        self._engine = engine
        self._phase = Phase.IDLE
        self._last_processed_ms: Optional[float] = None

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        source: FrameSource,
        store: DetectionStore,
        labels: ClassLabelTable,
        engine: Optional[InferenceEngine] = None,
    ) -> "FrameScheduler":
        inference = config.inference
        return cls(
            source=source,
            store=store,
            labels=labels,
            engine=engine,
            input_size=inference.input_size,
            resize_mode=inference.resize_mode,
            channel_order=config.camera.channel_order,
            confidence_threshold=inference.confidence_threshold,
            confidence_mode=inference.confidence_mode,
            box_units=inference.box_units,
            output_layout=inference.output_layout,
            map_to_frame=inference.map_to_frame,
            nms_iou_threshold=inference.nms_iou_threshold,
            nms_mode=inference.nms_mode,
            class_agnostic_nms=inference.class_agnostic_nms,
            min_interval_ms=config.scheduler.min_interval_ms,
            tick_hz=config.scheduler.tick_hz,
            offload_inference=config.scheduler.offload_inference,
        )

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def engine(self) -> Optional[InferenceEngine]:
        return self._engine

    @property
    def last_processed_ms(self) -> Optional[float]:
        return self._last_processed_ms

    def attach_engine(self, engine: InferenceEngine) -> None:
        self._engine = engine

    def detach_engine(self) -> None:
        self._engine = None

    def _claim(self, now_ms: float) -> bool:
        if self._phase is not Phase.IDLE:
            self.stats.skipped_busy += 1
            return False
        if self._engine is None:
            return False
        if self._last_processed_ms is not None and now_ms - self._last_processed_ms <= self.min_interval_ms:
            return False
        if not self.source.frame_available():
            return False

        self._phase = Phase.ENCODING
        self.stats.cycles_started += 1
        return True

    async def tick(self, now_ms: float) -> bool:
        """Handle one display tick; returns True when a cycle ran."""
        if not self._claim(now_ms):
            return False
        await self._run_cycle(now_ms)
        return True

    async def run(self, stop_event: threading.Event) -> None:
        period = 1.0 / self.tick_hz
        pending: Optional[asyncio.Task] = None
        self.logger.info(
            "Frame scheduler started (tick=%.1fHz, min_interval=%.0fms)", self.tick_hz, self.min_interval_ms
        )
        try:
            while not stop_event.is_set():
                now_ms = self._clock()
                if self._claim(now_ms):
                    pending = asyncio.create_task(self._run_cycle(now_ms))
                await asyncio.sleep(period)
        finally:
            if pending is not None and not pending.done():
                await pending
            self.logger.info("Frame scheduler stopped")

    async def _run_cycle(self, started_ms: float) -> None:
        engine = self._engine
        t0 = time.perf_counter()
        try:
            self._phase = Phase.ENCODING
            frame = self.source.read_frame()
            tensor, meta = encode_frame(
                frame,
                size=self.input_size,
                resize_mode=self.resize_mode,
                channel_order=self.channel_order,
            )

            self._phase = Phase.INFERRING
            output = await self._infer(engine, tensor)

            self._phase = Phase.DECODING
            candidates = decode_output(
                output,
                self.labels,
                confidence_threshold=self.confidence_threshold,
                input_size=self.input_size,
                confidence_mode=self.confidence_mode,
                box_units=self.box_units,
                output_layout=self.output_layout,
                meta=meta,
                map_to_frame=self.map_to_frame,
            )
            detections = suppress(
                candidates,
                iou_threshold=self.nms_iou_threshold,
                mode=self.nms_mode,
                class_agnostic=self.class_agnostic_nms,
            )
        except DecodingError as exc:
            self.logger.error("Model output does not match the decoder configuration: %s", exc)
            self._fail(started_ms, exc)
        except DetectorError as exc:
            self.logger.warning("Detection cycle failed (%s): %s", type(exc).__name__, exc)
            self._fail(started_ms, exc)
        except Exception as exc:
            self.logger.exception("Unexpected error in detection cycle")
            self._fail(started_ms, exc)
        else:
            self._phase = Phase.PUBLISHING
            self._publish(detections, started_ms)
            self._last_processed_ms = started_ms
            self.stats.cycles_completed += 1
        finally:
            self.stats.last_cycle_ms = (time.perf_counter() - t0) * 1000.0
            self._phase = Phase.IDLE

    async def _infer(self, engine: Optional[InferenceEngine], tensor: np.ndarray) -> OutputTensor:
        if engine is None:
            raise InferenceError("No inference engine attached")
        try:
            if self.offload_inference and not inspect.iscoroutinefunction(engine.run):
                result = await asyncio.to_thread(engine.run, tensor)
            else:
                result = engine.run(tensor)
            if inspect.isawaitable(result):
                result = await result
            return result
        except DetectorError:
            raise
        except Exception as exc:
            raise InferenceError(f"{type(exc).__name__}: {exc}") from exc

    def _fail(self, started_ms: float, exc: BaseException) -> None:
        self.stats.cycles_failed += 1
        self.stats.last_error = type(exc).__name__
        self._publish([], started_ms, error=type(exc).__name__)

    def _publish(self, detections: List[Detection], started_ms: float, error: Optional[str] = None) -> None:
        self.store.publish(detections, started_ms, error=error)
