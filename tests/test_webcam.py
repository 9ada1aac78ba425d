import time

import numpy as np

from realtime_detector.ingestion import webcam
from realtime_detector.ingestion.webcam import CameraState, WebcamSource


class FakeCapture:
    def __init__(self, device):
        self.device = device
        self.props = {}
        self.released = False

    def isOpened(self):
        return True

    def set(self, prop, value):
        self.props[prop] = value

    def read(self):
        time.sleep(0.001)
        return True, np.zeros((4, 6, 3), dtype=np.uint8)

    def release(self):
        self.released = True


class ClosedCapture(FakeCapture):
    def isOpened(self):
        return False


def _wait_for(predicate, timeout=2.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return False


def test_camera_state_snapshot():
    state = CameraState()
    state.update(connected=True, fps=29.5)

    assert state.snapshot() == {"connected": True, "last_frame_ts": 0.0, "last_error": None, "fps": 29.5}


def test_no_frame_before_start():
    source = WebcamSource(device=0)

    assert source.frame_available() is False
    assert source.read_frame() is None


def test_capture_thread_keeps_latest_frame(monkeypatch):
    monkeypatch.setattr(webcam.cv2, "VideoCapture", FakeCapture)
    source = WebcamSource(device=1, width=640, height=480)

    source.start()
    try:
        assert _wait_for(source.frame_available)
        assert source.read_frame().shape == (4, 6, 3)
        assert source.state.snapshot()["connected"] is True
    finally:
        source.stop()

    assert source.frame_available() is False
    assert source.state.snapshot()["connected"] is False


def test_open_failure_is_reported(monkeypatch):
    monkeypatch.setattr(webcam.cv2, "VideoCapture", ClosedCapture)
    source = WebcamSource(device=2, min_backoff=0.01, max_backoff=0.02)

    source.start()
    try:
        assert _wait_for(lambda: source.state.snapshot()["last_error"] == "open_failed")
        assert source.frame_available() is False
    finally:
        source.stop()


class DroppingCapture(FakeCapture):
    """Delivers two frames in total, then every read fails."""

    reads = 0

    def read(self):
        time.sleep(0.001)
        DroppingCapture.reads += 1
        if DroppingCapture.reads > 2:
            return False, None
        return True, np.zeros((4, 6, 3), dtype=np.uint8)


def test_read_failure_clears_latest_frame(monkeypatch):
    monkeypatch.setattr(DroppingCapture, "reads", 0)
    monkeypatch.setattr(webcam.cv2, "VideoCapture", DroppingCapture)
    source = WebcamSource(device=3, min_backoff=0.01, max_backoff=0.02)

    source.start()
    try:
        assert _wait_for(lambda: DroppingCapture.reads > 2)
        assert _wait_for(lambda: source.state.snapshot()["last_error"] == "read_failed")
        assert source.frame_available() is False
        assert source.read_frame() is None
    finally:
        source.stop()
