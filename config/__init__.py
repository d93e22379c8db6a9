"""Environment-aware settings for the prompt enhancer."""

from __future__ import annotations

from .settings import Settings
from .config import CacheSettings, HuggingFaceSettings, OllamaSettings


def get_settings() -> Settings:
    """Return application settings read from the environment and ``.env``."""

    return Settings()


__all__ = [
    "Settings",
    "CacheSettings",
    "HuggingFaceSettings",
    "OllamaSettings",
    "get_settings",
]
