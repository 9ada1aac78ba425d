import threading
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

from ..inference.base import Detection
from ..utils.logging import get_logger

Subscriber = Callable[["DetectionSet"], None]


@dataclass(frozen=True)
class DetectionSet:
    version: int
    timestamp_ms: float
    detections: Tuple[Detection, ...] = ()
    error: Optional[str] = None

    def __len__(self) -> int:
        return len(self.detections)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "timestamp_ms": self.timestamp_ms,
            "error": self.error,
            "detections": [det.to_dict() for det in self.detections],
        }


class DetectionStore:
    """Single-slot cell holding the latest DetectionSet.

    Every publish bumps the version by one and replaces the previous set;
    no history is kept. Subscribers are called synchronously after the swap.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._latest = DetectionSet(version=0, timestamp_ms=0.0)
        self._subscribers: List[Subscriber] = []
        self.logger = get_logger("pipeline.store")

    def latest(self) -> DetectionSet:
        with self._cond:
            return self._latest

    @property
    def version(self) -> int:
        with self._cond:
            return self._latest.version

    def publish(
        self,
        detections: Iterable[Detection],
        timestamp_ms: float,
        error: Optional[str] = None,
    ) -> Optional[DetectionSet]:
        with self._cond:
            current = self._latest
            # A cycle that started before the published one must not overwrite it.
            if current.version > 0 and timestamp_ms < current.timestamp_ms:
                self.logger.debug(
                    "Dropping stale detection set (started=%.1f, current=%.1f)", timestamp_ms, current.timestamp_ms
                )
                return None
            published = DetectionSet(
                version=current.version + 1,
                timestamp_ms=timestamp_ms,
                detections=tuple(detections),
                error=error,
            )
            self._latest = published
            subscribers = list(self._subscribers)
            self._cond.notify_all()

        for callback in subscribers:
            try:
                callback(published)
            except Exception:
                self.logger.exception("Detection subscriber failed")
        return published

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._cond:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._cond:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def wait_for_update(self, after_version: int, timeout: Optional[float] = None) -> Optional[DetectionSet]:
        with self._cond:
            self._cond.wait_for(lambda: self._latest.version > after_version, timeout=timeout)
            if self._latest.version > after_version:
                return self._latest
            return None
