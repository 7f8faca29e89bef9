from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class RecognitionResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    confidence: float
    word_count: int = Field(ge=0, alias="wordCount")
    language: str
    timestamp: datetime


class SuccessResponse(BaseModel):
    status: Literal["success"] = "success"
    data: RecognitionResult


class ErrorResponse(BaseModel):
    status: Literal["error"] = "error"
    message: str
    error: str | None = None


class HealthResponse(BaseModel):
    status: Literal["success"] = "success"
    message: str = "Server is running"
    timestamp: datetime
