from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    default_provider: str | None = None
    log_level: str = "WARNING"
    log_format: str = "console"
    max_prompt_length: int = 50000

    @field_validator("log_level")
    @classmethod
    def _validate_level(cls, v: str) -> str:
        valid = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {valid}")
        return v.upper()

    class Config:
        env_file = ".env"
        env_prefix = "ENHANCER_"
        case_sensitive = False
        extra = "ignore"
