import threading
import time
from typing import Optional, Protocol, Union

import cv2
import numpy as np

from ..utils.logging import get_logger


class FrameSource(Protocol):
    def frame_available(self) -> bool:
        ...

    def read_frame(self) -> Optional[np.ndarray]:
        ...


class CameraState:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.connected = False
        self.last_frame_ts = 0.0
        self.last_error: Optional[str] = None
        self.fps = 0.0

    def update(self, **kwargs) -> None:
        with self._lock:
            for key, value in kwargs.items():
                setattr(self, key, value)

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "connected": self.connected,
                "last_frame_ts": self.last_frame_ts,
                "last_error": self.last_error,
                "fps": self.fps,
            }


class WebcamSource:
    """Live capture device read on its own thread.

    Only the most recent frame is kept; readers never see a queue and the
    pipeline never touches the capture device itself.
    """

    def __init__(
        self,
        device: Union[int, str] = 0,
        width: int = 0,
        height: int = 0,
        min_backoff: float = 1.0,
        max_backoff: float = 30.0,
    ) -> None:
        self.device = device
        self.width = width
        self.height = height
        self.min_backoff = min_backoff
        self.max_backoff = max_backoff
        self.state = CameraState()
        self.logger = get_logger("ingestion.webcam")
        self._lock = threading.Lock()
        self._latest: Optional[np.ndarray] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            self.logger.warning("Capture for device %s is already running", self.device)
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="webcam-capture", daemon=True)
        self._thread.start()
        self.logger.info("Started capture on device %s", self.device)

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=2)
            self._thread = None
        with self._lock:
            self._latest = None
        self.state.update(connected=False)
        self.logger.info("Stopped capture on device %s", self.device)

    def frame_available(self) -> bool:
        with self._lock:
            return self._latest is not None

    def read_frame(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._latest

    def _open(self):
        cap = cv2.VideoCapture(self.device)
        if self.width > 0:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        if self.height > 0:
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        return cap

    def _run(self) -> None:
        backoff = self.min_backoff
        fps_window_start = time.time()
        frame_counter = 0

        while not self._stop_event.is_set():
            cap = self._open()
            if not cap.isOpened():
                self.state.update(connected=False, last_error="open_failed")
                self.logger.warning("Failed to open capture device %s; retrying in %.1fs", self.device, backoff)
                cap.release()
                self._stop_event.wait(backoff)
                backoff = min(backoff * 2, self.max_backoff)
                continue

            self.state.update(connected=True, last_error=None)
            backoff = self.min_backoff

            while not self._stop_event.is_set():
                ok, frame = cap.read()
                now = time.time()
                if not ok:
                    with self._lock:
                        self._latest = None
                    self.state.update(connected=False, last_error="read_failed")
                    self.logger.warning("Frame read failed on device %s", self.device)
                    break

                with self._lock:
                    self._latest = frame

                frame_counter += 1
                if now - fps_window_start >= 1.0:
                    self.state.update(fps=frame_counter / (now - fps_window_start))
                    fps_window_start = now
                    frame_counter = 0
                self.state.update(connected=True, last_frame_ts=now)

            cap.release()
            self._stop_event.wait(backoff)
            backoff = min(backoff * 2, self.max_backoff)
