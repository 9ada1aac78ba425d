import argparse
import threading

from .pipeline.store import DetectionSet
from .service import DetectionService, format_detection
from .utils.logging import get_logger, setup_logging
from .utils.settings import load_settings


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Realtime object detection on a live video stream")
    parser.add_argument("--config", default=None, help="Path to JSON config (defaults to $RTD_CONFIG)")
    parser.add_argument("--headless", action="store_true", help="Run without the HTTP API and log detections")
    parser.add_argument("--host", default=None, help="API bind address")
    parser.add_argument("--port", type=int, default=None, help="API port")
    parser.add_argument("--log-level", default=None, help="Logging level (DEBUG, INFO, ...)")
    return parser.parse_args()


def run_headless(service: DetectionService) -> None:
    logger = get_logger("headless")

    def on_update(detection_set: DetectionSet) -> None:
        if detection_set.error:
            logger.info("v%d: cycle failed (%s)", detection_set.version, detection_set.error)
            return
        logger.info("v%d: %d detections", detection_set.version, len(detection_set))
        for det in detection_set.detections:
            logger.info("  %s", format_detection(det))

    service.subscribe(on_update)
    service.start()
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        service.stop()


def main() -> None:
    args = _parse_args()
    config = load_settings(args.config)
    if args.host:
        config.app.host = args.host
    if args.port:
        config.app.port = args.port
    if args.log_level:
        config.app.log_level = args.log_level.upper()

    if args.headless:
        setup_logging(config.app.log_level, config.app.log_format)
        run_headless(DetectionService(config))
        return

    import uvicorn

    from .api.app import create_app

    app = create_app(config)
    uvicorn.run(app, host=config.app.host, port=config.app.port, log_level=config.app.log_level.lower())


if __name__ == "__main__":
    main()
