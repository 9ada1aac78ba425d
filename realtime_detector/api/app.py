from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Response

from .schemas import DetectionSetModel, ReloadResponse
from ..service import DetectionService
from ..utils.config import AppConfig
from ..utils.logging import get_logger, setup_logging


def create_app(config: AppConfig, service: Optional[DetectionService] = None) -> FastAPI:
    setup_logging(config.app.log_level, config.app.log_format)
    logger = get_logger("api")
    service = service or DetectionService(config)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        logger.info("API startup")
        service.start()
        try:
            yield
        finally:
            logger.info("API shutdown")
            service.stop()

    app = FastAPI(title="Realtime Detector", lifespan=lifespan)
    app.state.service = service

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.get("/status")
    def status() -> dict:
        return service.status()

    @app.get("/detections", response_model=DetectionSetModel)
    def detections() -> dict:
        return service.latest().to_dict()

    @app.get("/detections/next", response_model=DetectionSetModel, responses={204: {"description": "No new set"}})
    def next_detections(
        after: int = Query(0, ge=0),
        timeout: float = Query(5.0, gt=0, le=60.0),
    ):
        detection_set = service.wait_for_update(after, timeout=timeout)
        if detection_set is None:
            return Response(status_code=204)
        return detection_set.to_dict()

    @app.post("/model/reload", response_model=ReloadResponse)
    def reload_model() -> dict:
        if not service.reload_model():
            raise HTTPException(status_code=503, detail=service.model_error or "Model unavailable")
        return {"model_loaded": True, "model_error": None}

    return app
