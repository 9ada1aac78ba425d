"""Realtime Detector - live webcam object detection with an ONNX YOLO model."""

__version__ = "1.0.0"

# Lazy imports keep `import realtime_detector` free of cv2/onnxruntime side effects
__all__ = [
    'load_config',
    'DetectionService',
    'FrameScheduler',
    'DetectionStore',
    'Detection',
    'encode_frame',
    'decode_output',
    'suppress',
    'create_app',
]


def __getattr__(name):
    """Lazy import of modules."""
    if name == 'load_config':
        from .utils.config import load_config
        return load_config
    elif name == 'DetectionService':
        from .service import DetectionService
        return DetectionService
    elif name == 'FrameScheduler':
        from .pipeline.scheduler import FrameScheduler
        return FrameScheduler
    elif name == 'DetectionStore':
        from .pipeline.store import DetectionStore
        return DetectionStore
    elif name == 'Detection':
        from .inference.base import Detection
        return Detection
    elif name in ('encode_frame', 'decode_output'):
        from .inference import yolo
        return getattr(yolo, name)
    elif name == 'suppress':
        from .inference.nms import suppress
        return suppress
    elif name == 'create_app':
        from .api.app import create_app
        return create_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
