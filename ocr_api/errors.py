from dataclasses import dataclass
from enum import Enum

from fastapi.responses import JSONResponse


class ErrorKind(str, Enum):
    MISSING_FILE = "missing_file"
    UNSUPPORTED_FORMAT = "unsupported_format"
    FILE_TOO_LARGE = "file_too_large"
    INVALID_LANGUAGE = "invalid_language"
    OCR_INIT = "ocr_init"
    OCR_RECOGNITION = "ocr_recognition"
    ENGINE_FAULT = "engine_fault"
    OCR_TIMEOUT = "ocr_timeout"
    UNCLASSIFIED = "unclassified"


@dataclass(frozen=True)
class ErrorMapping:
    status_code: int
    message: str


GENERIC_MESSAGE = "An error occurred while processing the image. Please try again."

ERROR_TABLE: dict[ErrorKind, ErrorMapping] = {
    ErrorKind.MISSING_FILE: ErrorMapping(
        400, 'No image file provided. Please upload an image file using the "image" field.'
    ),
    ErrorKind.UNSUPPORTED_FORMAT: ErrorMapping(
        400, "Invalid file type. Only image files (JPEG, PNG, GIF, BMP, WEBP, TIFF) are allowed."
    ),
    # {limit_mb} is filled in from settings when the error is raised.
    ErrorKind.FILE_TOO_LARGE: ErrorMapping(400, "File size exceeds the maximum limit of {limit_mb}MB"),
    ErrorKind.INVALID_LANGUAGE: ErrorMapping(
        400, 'Invalid language parameter. Language code should be a string (e.g., "eng", "fra", "spa")'
    ),
    ErrorKind.OCR_INIT: ErrorMapping(400, "Invalid or unsupported language code"),
    ErrorKind.OCR_RECOGNITION: ErrorMapping(
        400, "The image could not be processed. Make sure it is a valid, uncorrupted image file."
    ),
    ErrorKind.ENGINE_FAULT: ErrorMapping(500, GENERIC_MESSAGE),
    ErrorKind.OCR_TIMEOUT: ErrorMapping(500, "OCR processing timed out. Please try again with a smaller image."),
    ErrorKind.UNCLASSIFIED: ErrorMapping(500, GENERIC_MESSAGE),
}

_missing = set(ErrorKind) - set(ERROR_TABLE)
if _missing:
    raise RuntimeError(f"ERROR_TABLE is missing kinds: {sorted(k.value for k in _missing)}")


class RecognitionError(Exception):
    """Failure of one recognize-text request, tagged with its kind.

    `message` is safe to show to clients. `detail` carries the raw cause and is
    only exposed in development mode.
    """

    def __init__(self, kind: ErrorKind, *, message: str | None = None, detail: str | None = None):
        self.kind = kind
        self.message = message or ERROR_TABLE[kind].message
        self.detail = detail
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return ERROR_TABLE[self.kind].status_code

    @property
    def is_client_error(self) -> bool:
        return self.status_code < 500

    def __repr__(self) -> str:
        return f"RecognitionError(kind={self.kind.value!r}, message={self.message!r})"


def render_error(status_code: int, message: str, detail: str | None, *, verbose: bool) -> JSONResponse:
    body = {"status": "error", "message": message}
    if verbose and detail:
        body["error"] = detail
    return JSONResponse(status_code=status_code, content=body)
