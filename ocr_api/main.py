import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import Settings, get_settings, settings
from .errors import ERROR_TABLE, ErrorKind, RecognitionError, render_error
from .logging_config import configure_logging
from .middleware import UploadLimitMiddleware
from .routers.v1 import router as v1_router
from .services.engine import configure_tesseract

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Endpoint not found"


def _error_response(status_code: int, message: str, detail: str | None, cfg: Settings):
    return render_error(status_code, message, detail, verbose=cfg.is_development)


def _kind_for_validation_error(exc: RequestValidationError) -> ErrorKind | None:
    for err in exc.errors():
        loc = err.get("loc", ())
        if "image" in loc:
            return ErrorKind.MISSING_FILE
        if "language" in loc:
            return ErrorKind.INVALID_LANGUAGE
    return None


def _register_exception_handlers(app: FastAPI, cfg: Settings) -> None:
    def _recognition_error_response(request: Request, exc: RecognitionError):
        if exc.is_client_error:
            logger.warning("Rejected %s %s: %s (%s)", request.method, request.url.path, exc.kind.value, exc.detail)
        else:
            logger.error("Failed %s %s: %s (%s)", request.method, request.url.path, exc.kind.value, exc.detail)
        return _error_response(exc.status_code, exc.message, exc.detail, cfg)

    @app.exception_handler(RecognitionError)
    async def recognition_error_handler(request: Request, exc: RecognitionError):
        return _recognition_error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        kind = _kind_for_validation_error(exc)
        detail = str(exc.errors())
        logger.warning("Invalid request to %s: %s", request.url.path, detail)
        if kind is None:
            return _error_response(400, "Bad request", detail, cfg)
        return _error_response(ERROR_TABLE[kind].status_code, ERROR_TABLE[kind].message, detail, cfg)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        # Body parsing wraps failures raised while the request streams in.
        if isinstance(exc.__cause__, RecognitionError):
            return _recognition_error_response(request, exc.__cause__)
        # Unknown method on a known path is reported like any unknown route.
        if exc.status_code in (404, 405):
            return _error_response(404, NOT_FOUND_MESSAGE, None, cfg)
        return _error_response(exc.status_code, str(exc.detail) or "Bad request", None, cfg)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        mapping = ERROR_TABLE[ErrorKind.UNCLASSIFIED]
        return _error_response(mapping.status_code, mapping.message, str(exc), cfg)


def create_app(cfg: Settings = settings) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(cfg)
        configure_tesseract(cfg)
        logger.info("Server is running on port %d (%s mode)", cfg.port, cfg.app_env)
        logger.info("OCR endpoint: http://localhost:%d/api/recognize-text", cfg.port)
        yield
        logger.info("Shutting down %s", cfg.app_name)

    app = FastAPI(title=cfg.app_name, version=__version__, lifespan=lifespan)
    app.add_middleware(UploadLimitMiddleware, cfg=cfg)
    # Outermost, so early rejections carry CORS headers too. Any requested
    # method or header is accepted so every preflight is answered with 200.
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.include_router(v1_router)
    if cfg is not settings:
        app.dependency_overrides[get_settings] = lambda: cfg
    _register_exception_handlers(app, cfg)
    return app


app = create_app()
