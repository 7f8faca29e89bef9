from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone

from fastapi import UploadFile

from ..config import Settings
from ..errors import ERROR_TABLE, ErrorKind, RecognitionError
from ..schemas import RecognitionResult
from .engine import EngineFactory, RawRecognition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadRequest:
    image_bytes: bytes
    language: str
    content_type: str
    filename: str | None = None


def file_too_large(cfg: Settings, detail: str) -> RecognitionError:
    message = ERROR_TABLE[ErrorKind.FILE_TOO_LARGE].message.format(limit_mb=cfg.upload_max_mb)
    return RecognitionError(ErrorKind.FILE_TOO_LARGE, message=message, detail=detail)


def resolve_language(language: object, cfg: Settings) -> str:
    if language is None or language == "":
        return cfg.default_language
    if not isinstance(language, str) or len(language) > cfg.language_max_length:
        raise RecognitionError(ErrorKind.INVALID_LANGUAGE, detail=f"Rejected language value: {language!r}")
    return language


async def read_limited(image: UploadFile, cfg: Settings) -> bytes:
    """Read the upload in chunks, giving up as soon as it passes the size limit."""
    limit = cfg.upload_max_bytes
    if image.size is not None and image.size > limit:
        raise file_too_large(cfg, f"Declared part size {image.size} bytes exceeds {limit}")

    buf = bytearray()
    while chunk := await image.read(cfg.upload_chunk_bytes):
        buf.extend(chunk)
        if len(buf) > limit:
            raise file_too_large(cfg, f"Upload exceeded {limit} bytes while reading")
    return bytes(buf)


async def validate_upload(image: UploadFile | None, language: object, cfg: Settings) -> UploadRequest:
    """Gate an upload: presence, declared type, size, then language."""
    if image is None:
        raise RecognitionError(ErrorKind.MISSING_FILE)

    content_type = (image.content_type or "").split(";")[0].strip().lower()
    if content_type not in cfg.allowed_mime_types:
        raise RecognitionError(ErrorKind.UNSUPPORTED_FORMAT, detail=f"Rejected content type: {content_type!r}")

    image_bytes = await read_limited(image, cfg)
    if not image_bytes:
        raise RecognitionError(ErrorKind.MISSING_FILE, detail="Image part is empty")

    resolved = resolve_language(language, cfg)
    return UploadRequest(
        image_bytes=image_bytes,
        language=resolved,
        content_type=content_type,
        filename=image.filename,
    )


def normalize_result(raw: RawRecognition, language: str) -> RecognitionResult:
    return RecognitionResult(
        text=raw.text.strip(),
        confidence=raw.confidence,
        word_count=len(raw.words) if raw.words else 0,
        language=language,
        timestamp=datetime.now(timezone.utc),
    )


def run_recognition(upload: UploadRequest, cfg: Settings, engine_factory: EngineFactory) -> RecognitionResult:
    started = time.perf_counter()
    with engine_factory(upload.language, cfg) as engine:
        raw = engine.recognize(upload.image_bytes)
    result = normalize_result(raw, upload.language)
    logger.info(
        "Recognized %s (%d bytes, lang=%s): %d words in %.2fs",
        upload.filename or "<unnamed>",
        len(upload.image_bytes),
        upload.language,
        result.word_count,
        time.perf_counter() - started,
    )
    return result


async def recognize_upload(upload: UploadRequest, cfg: Settings, engine_factory: EngineFactory) -> RecognitionResult:
    """Run acquisition, recognition and release off the event loop."""
    try:
        return await asyncio.to_thread(run_recognition, upload, cfg, engine_factory)
    except RecognitionError:
        raise
    except Exception as exc:
        logger.exception("OCR failed for %s", upload.filename or "<unnamed>")
        raise RecognitionError(ErrorKind.UNCLASSIFIED, detail=str(exc)) from exc
