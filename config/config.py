# -*- coding: utf-8 -*-
"""Provider and cache configuration sections."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings


def _default_cache_dir() -> Path:
    return Path.home() / ".cache" / "prompt-enhancer"


class CacheSettings(BaseSettings):
    """Response cache configuration."""

    cache_dir: Path = Field(default_factory=_default_cache_dir, validation_alias="cache_dir")
    cache_file: str = "cache-data.json"
    max_size: int = 1000
    ttl: int = 60 * 60 * 24

    @field_validator("max_size", "ttl")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Cache size and TTL must be positive")
        return v

    class Config:
        env_file = ".env"
        env_prefix = "CACHE_"
        case_sensitive = False
        extra = "ignore"


class OllamaSettings(BaseSettings):
    """Local Ollama daemon settings."""

    base_url: str = "http://localhost:11434"
    default_model: str = "llama3.2:1b"
    connect_timeout: float = 15.0
    timeout: float = 120.0
    auto_pull: bool = True

    class Config:
        env_file = ".env"
        env_prefix = "OLLAMA_"
        case_sensitive = False
        extra = "ignore"


class HuggingFaceSettings(BaseSettings):
    """Hugging Face Inference API settings."""

    token: SecretStr | None = None
    base_url: str = "https://api-inference.huggingface.co/models"
    whoami_url: str = "https://huggingface.co/api/whoami-v2"
    connect_timeout: float = 15.0
    timeout: float = 60.0
    max_retries: int = 3

    class Config:
        env_file = ".env"
        env_prefix = "HF_"
        case_sensitive = False
        extra = "ignore"
