import uvicorn

from .config import settings


def main() -> None:
    uvicorn.run(
        "ocr_api.main:app",
        host=settings.host,
        port=settings.port,
        log_level="debug" if settings.debug_logs else settings.log_level_default.lower(),
    )


if __name__ == "__main__":
    main()
