"""Provider interfaces and implementations."""

from .base import (
    ENHANCEMENT_MODES,
    BaseProvider,
    ModelInfo,
    RateLimits,
    Usage,
)
from .cache import CacheEntry, PersistentLRUCache
from .huggingface import HuggingFaceProvider, ModelTier
from .ollama import OllamaProvider
from .registry import (
    ComparisonResult,
    HealthStatus,
    ProviderRegistry,
    create_default_registry,
)

__all__ = [
    "ENHANCEMENT_MODES",
    "BaseProvider",
    "ModelInfo",
    "RateLimits",
    "Usage",
    "CacheEntry",
    "PersistentLRUCache",
    "HuggingFaceProvider",
    "ModelTier",
    "OllamaProvider",
    "ComparisonResult",
    "HealthStatus",
    "ProviderRegistry",
    "create_default_registry",
]
