from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(frozen=True)

    app_name: str = "OCR Text API"
    host: str = "0.0.0.0"
    port: int = 3000
    # NODE_ENV is honoured for deployments carried over from the Node service.
    app_env: str = Field("production", validation_alias=AliasChoices("app_env", "node_env"))
    debug_logs: bool = False
    log_level_default: str = "INFO"

    # Upload limits
    upload_max_mb: int = 10
    image_mime_whitelist: str = "image/jpeg,image/jpg,image/png,image/gif,image/bmp,image/webp,image/tiff"
    upload_chunk_bytes: int = 1024 * 1024
    # Room for multipart boundaries, part headers and the language field.
    upload_overhead_bytes: int = 64 * 1024

    # Language
    default_language: str = "eng"
    language_max_length: int = 10

    # Tesseract
    tesseract_cmd: str | None = None
    tesseract_config: str = ""
    ocr_timeout_seconds: float | None = None

    @property
    def is_development(self) -> bool:
        return self.app_env.strip().lower() == "development"

    @property
    def upload_max_bytes(self) -> int:
        return self.upload_max_mb * 1024 * 1024

    @property
    def allowed_mime_types(self) -> frozenset[str]:
        return frozenset(m.strip().lower() for m in self.image_mime_whitelist.split(",") if m.strip())


settings = Settings()


def get_settings() -> Settings:
    return settings
