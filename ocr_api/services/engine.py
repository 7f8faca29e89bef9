from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Callable, Iterator

import pytesseract
from PIL import Image
from pytesseract import Output, TesseractError, TesseractNotFoundError

from ..config import Settings
from ..errors import ErrorKind, RecognitionError

logger = logging.getLogger(__name__)

# Tesseract data levels: 1=page, 2=block, 3=paragraph, 4=line, 5=word
_WORD_LEVEL = 5


@dataclass(frozen=True)
class RecognizedWord:
    text: str
    confidence: float
    left: int
    top: int
    width: int
    height: int


@dataclass(frozen=True)
class RawRecognition:
    """Engine output before it is shaped into a response."""

    text: str
    confidence: float
    words: list[RecognizedWord] | None


class OcrEngine(ABC):
    """OCR capability bound to one language for the lifetime of one request."""

    language: str

    @abstractmethod
    def recognize(self, image_bytes: bytes) -> RawRecognition:
        raise NotImplementedError

    def close(self) -> None:
        """Release whatever the engine holds. Safe to call more than once."""


EngineFactory = Callable[[str, Settings], AbstractContextManager[OcrEngine]]


class TesseractEngine(OcrEngine):
    """Tesseract via pytesseract; one engine per request, no pooling."""

    def __init__(self, language: str, cfg: Settings):
        self.language = language
        self._config = cfg.tesseract_config
        self._timeout = cfg.ocr_timeout_seconds or 0
        self._image: Image.Image | None = None

    @classmethod
    @contextmanager
    def open(cls, language: str, cfg: Settings) -> Iterator[TesseractEngine]:
        _ensure_languages_installed(language)
        engine = cls(language, cfg)
        try:
            yield engine
        finally:
            engine.close()

    def recognize(self, image_bytes: bytes) -> RawRecognition:
        self._image = _decode_image(image_bytes)
        try:
            data = pytesseract.image_to_data(
                self._image,
                lang=self.language,
                config=self._config,
                output_type=Output.DICT,
                timeout=self._timeout,
            )
        except TesseractNotFoundError as exc:
            raise RecognitionError(ErrorKind.ENGINE_FAULT, detail=str(exc)) from exc
        except TesseractError as exc:
            # A negative status means the process was killed by a signal.
            kind = ErrorKind.ENGINE_FAULT if exc.status < 0 else ErrorKind.OCR_RECOGNITION
            raise RecognitionError(kind, detail=f"Tesseract exited with {exc.status}: {exc.message}") from exc
        except RuntimeError as exc:
            # pytesseract raises a bare RuntimeError only when it kills the process on timeout.
            raise RecognitionError(
                ErrorKind.OCR_TIMEOUT, detail=f"Tesseract did not finish within {self._timeout}s"
            ) from exc
        return parse_tesseract_data(data)

    def close(self) -> None:
        if self._image is not None:
            self._image.close()
            self._image = None


def configure_tesseract(cfg: Settings) -> None:
    """Point pytesseract at the configured binary. Called once at startup."""
    if cfg.tesseract_cmd:
        pytesseract.pytesseract.tesseract_cmd = cfg.tesseract_cmd
        logger.info("Using tesseract binary at %s", cfg.tesseract_cmd)


def _ensure_languages_installed(language: str) -> None:
    try:
        installed = set(pytesseract.get_languages(config=""))
    except TesseractNotFoundError as exc:
        raise RecognitionError(ErrorKind.ENGINE_FAULT, detail=str(exc)) from exc
    except TesseractError as exc:
        raise RecognitionError(ErrorKind.OCR_INIT, detail=str(exc)) from exc

    parts = language.split("+")
    missing = [part for part in parts if part not in installed]
    if missing:
        raise RecognitionError(
            ErrorKind.OCR_INIT,
            detail=f"Language pack(s) not installed: {', '.join(repr(p) for p in missing)}",
        )


def _decode_image(image_bytes: bytes) -> Image.Image:
    try:
        image = Image.open(BytesIO(image_bytes))
        # Multi-frame GIF/TIFF: Tesseract reads the current (first) frame.
        image.load()
        if image.mode in ("1", "L", "RGB"):
            return image
        converted = image.convert("RGB")
        image.close()
        return converted
    except Image.DecompressionBombError as exc:
        raise RecognitionError(ErrorKind.OCR_RECOGNITION, detail=str(exc)) from exc
    except (OSError, SyntaxError, ValueError) as exc:
        raise RecognitionError(ErrorKind.OCR_RECOGNITION, detail=f"Cannot decode image: {exc}") from exc


def parse_tesseract_data(data: dict[str, list[Any]]) -> RawRecognition:
    """Build text, words and overall confidence from `image_to_data` output.

    Words keep Tesseract's structural order. Lines are separated by a newline,
    paragraphs and blocks by a blank line.
    """
    rows: list[tuple[tuple[int, int, int, int, int], RecognizedWord]] = []
    for i, level in enumerate(data.get("level", [])):
        if int(level) != _WORD_LEVEL:
            continue
        text = str(data["text"][i]).strip()
        if not text:
            continue
        key = (
            int(data["page_num"][i]),
            int(data["block_num"][i]),
            int(data["par_num"][i]),
            int(data["line_num"][i]),
            int(data["word_num"][i]),
        )
        word = RecognizedWord(
            text=text,
            confidence=float(str(data["conf"][i])),
            left=int(data["left"][i]),
            top=int(data["top"][i]),
            width=int(data["width"][i]),
            height=int(data["height"][i]),
        )
        rows.append((key, word))
    rows.sort(key=lambda row: row[0])

    parts: list[str] = []
    prev: tuple[int, int, int, int, int] | None = None
    for key, word in rows:
        if prev is not None:
            if key[:3] != prev[:3]:
                parts.append("\n\n")
            elif key[3] != prev[3]:
                parts.append("\n")
            else:
                parts.append(" ")
        parts.append(word.text)
        prev = key

    words = [word for _, word in rows]
    scored = [w.confidence for w in words if w.confidence >= 0]
    confidence = round(sum(scored) / len(scored), 2) if scored else 0.0
    return RawRecognition(text="".join(parts), confidence=confidence, words=words)


def get_engine_factory() -> EngineFactory:
    return TesseractEngine.open
