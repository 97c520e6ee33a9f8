"""Configuration helpers for the article digest service."""

import logging
from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_IMAGE_ENDPOINTS = [
    "https://api-inference.huggingface.co/models/{model}",
    "https://router.huggingface.co/models/{model}",
    "https://hf-inference.huggingface.co/models/{model}",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    openrouter_api_key: str | None = Field(None, alias="OPENROUTER_API_KEY")
    huggingface_api_key: str | None = Field(None, alias="HUGGINGFACE_API_KEY")
    openrouter_base_url: str = Field(
        "https://openrouter.ai/api/v1",
        alias="OPENROUTER_BASE_URL",
        description="OpenAI-compatible chat completions root used for text tasks.",
    )
    image_backend: Literal["huggingface", "openai"] = Field(
        "huggingface",
        alias="IMAGE_BACKEND",
        description=(
            "'huggingface' posts to raw inference endpoints; 'openai' goes through "
            "the OpenAI SDK images API at IMAGE_API_BASE_URL."
        ),
    )
    image_api_base_url: str | None = Field(
        None,
        alias="IMAGE_API_BASE_URL",
        description="Base URL for the 'openai' image backend; SDK default when unset.",
    )
    image_endpoint_templates: List[str] = Field(
        default_factory=lambda: list(DEFAULT_IMAGE_ENDPOINTS),
        alias="IMAGE_ENDPOINT_TEMPLATES",
        description="Ordered endpoint templates tried per image model; '{model}' is substituted.",
    )
    request_timeout: float = Field(
        60.0,
        alias="REQUEST_TIMEOUT",
        description="Seconds before any single outbound call is abandoned.",
    )
    default_retry_after: int = Field(
        1,
        alias="DEFAULT_RETRY_AFTER",
        description="Wait hint (seconds) reported for a 429 without a Retry-After header.",
    )
    default_warmup_wait: float = Field(
        20.0,
        alias="DEFAULT_WARMUP_WAIT",
        description="Wait hint (seconds) reported when a warming image model omits one.",
    )
    user_agent: str = Field(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36",
        alias="USER_AGENT",
    )
    log_level: str = Field("INFO", alias="LOG_LEVEL")


def get_settings() -> Settings:
    """Return a fresh settings snapshot."""
    return Settings()


def configure_logging(level: str | None = None) -> None:
    """Set up root logging once for the CLI and the server."""
    resolved = (level or get_settings().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, resolved, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
