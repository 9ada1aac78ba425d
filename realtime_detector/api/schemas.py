from typing import List, Optional

import pydantic
from pydantic import BaseModel


class DetectionModel(BaseModel):
    class_label: str = pydantic.Field(json_schema_extra={"example": "person"})
    class_index: int = pydantic.Field(json_schema_extra={"example": 0})
    confidence: float = pydantic.Field(json_schema_extra={"example": 0.91})
    x: float = pydantic.Field(description="Top-left x")
    y: float = pydantic.Field(description="Top-left y")
    width: float
    height: float


class DetectionSetModel(BaseModel):
    version: int = pydantic.Field(description="Increments on every published set; 0 before the first cycle")
    timestamp_ms: float = pydantic.Field(description="Tick time at which the producing cycle started")
    error: Optional[str] = pydantic.Field(default=None, description="Error class name when the cycle failed")
    detections: List[DetectionModel] = pydantic.Field(default_factory=list)


class ReloadResponse(BaseModel):
    model_loaded: bool
    model_error: Optional[str] = None
