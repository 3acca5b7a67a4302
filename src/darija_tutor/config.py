"""
Application configuration using pydantic-settings.

Loads configuration from environment variables and .env files.
"""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DARIJA_TUTOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Inference gateway (Gemini REST API)
    api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DARIJA_TUTOR_API_KEY", "GEMINI_API_KEY", "API_KEY"),
        description="API credential for the inference service",
    )
    api_base_url: str = Field(
        default="https://generativelanguage.googleapis.com",
        description="Base URL of the inference service",
    )
    analysis_model: str = Field(
        default="gemini-3-pro-preview",
        description="Model used to analyze text/audio input",
    )
    speech_model: str = Field(
        default="gemini-2.5-flash-preview-tts",
        description="Model used to synthesize pronunciation audio",
    )
    speech_voice: str = Field(
        default="Kore",
        description="Prebuilt voice name for speech synthesis",
    )
    request_timeout: float = Field(
        default=120.0,
        description="Timeout in seconds for inference requests",
    )

    # Persistence
    storage_url: str = Field(
        default="sqlite:///./data/darija_tutor.db",
        description="SQLAlchemy URL of the key-value store",
    )

    # Audio
    capture_sample_rate: int = Field(
        default=16000,
        description="Microphone capture sample rate in Hz",
    )
    playback_sample_rate: int = Field(
        default=24000,
        description="Sample rate of synthesized PCM speech in Hz",
    )
    max_upload_bytes: int = Field(
        default=20 * 1024 * 1024,
        description="Largest accepted audio upload in bytes",
    )

    # Application
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
