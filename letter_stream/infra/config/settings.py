"""
Application configuration settings.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=[".env", "../.env"],
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Backend API
    backend_base_url: str = Field("http://localhost:3000", alias="BACKEND_BASE_URL")
    stream_path: str = Field(
        "/api/ai/generate-letter-stream", alias="GENERATION_STREAM_PATH"
    )
    templates_path: str = Field("/api/prompts", alias="TEMPLATES_PATH")
    documents_path: str = Field("/api/letters", alias="DOCUMENTS_PATH")

    # Authentication (token is issued elsewhere; absence is reported, not handled)
    api_token: Optional[str] = Field(None, alias="API_TOKEN")

    # Generation
    generation_model: str = Field("gpt-4o-mini", alias="GENERATION_MODEL")
    template_source_mode: str = Field("remote", alias="TEMPLATE_SOURCE_MODE")
    min_result_length: int = Field(1, alias="MIN_RESULT_LENGTH")

    # Progress estimate for streaming snapshots
    progress_source_variable: str = Field(
        "transcription", alias="PROGRESS_SOURCE_VARIABLE"
    )
    progress_length_factor: int = Field(3, alias="PROGRESS_LENGTH_FACTOR")
    progress_floor_length: int = Field(2000, alias="PROGRESS_FLOOR_LENGTH")
    progress_cap: int = Field(95, alias="PROGRESS_CAP")

    # HTTP
    http_connect_timeout: float = Field(10.0, alias="HTTP_CONNECT_TIMEOUT")

    # Observability
    metrics_enabled: bool = Field(True, alias="METRICS_ENABLED")

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_format: str = Field("json", alias="LOG_FORMAT")


_settings = None


def get_settings() -> Settings:
    """Get settings instance (useful for dependency injection)."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
