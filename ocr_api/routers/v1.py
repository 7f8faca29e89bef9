from datetime import datetime, timezone

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile

from ..config import Settings, get_settings
from ..schemas import ErrorResponse, HealthResponse, SuccessResponse
from ..services.engine import EngineFactory, get_engine_factory
from ..services.recognition import recognize_upload, validate_upload

router = APIRouter()

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid upload or image the engine cannot read"},
    500: {"model": ErrorResponse, "description": "OCR engine fault or unexpected failure"},
}


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(timestamp=datetime.now(timezone.utc))


@router.post("/api/recognize-text", response_model=SuccessResponse, responses=_ERROR_RESPONSES)
async def recognize_text(
    image: UploadFile | None = File(None, description="Image file (JPEG, PNG, GIF, BMP, WEBP, TIFF), up to 10MB"),
    language: str | None = Form(None, description='Tesseract language code, e.g. "eng", "fra", "eng+fra"'),
    cfg: Settings = Depends(get_settings),
    engine_factory: EngineFactory = Depends(get_engine_factory),
):
    upload = await validate_upload(image, language, cfg)
    result = await recognize_upload(upload, cfg, engine_factory)
    return SuccessResponse(data=result)


@router.options("/{full_path:path}", include_in_schema=False)
def preflight(full_path: str):
    return Response(status_code=200)
