"""Provider registry with health probing and automatic failover."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    TypeVar,
)

import structlog

from config import Settings, get_settings
from exceptions import AllProvidersFailedError, ProviderFailure, ProviderNotFoundError

from .base import BaseProvider

logger = structlog.get_logger(__name__)

T = TypeVar("T")

ProviderFactory = Callable[[Dict[str, Any]], BaseProvider]
Operation = Callable[[BaseProvider], Awaitable[T]]


@dataclass
class HealthStatus:
    """Result of a live provider probe."""
    status: str
    detail: str
    models: Optional[int] = None
    default: bool = False

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"


@dataclass
class ComparisonResult:
    success: bool
    elapsed: float
    response: Optional[str] = None
    error: Optional[str] = None
    estimated_tokens: int = 0


class ProviderRegistry:
    """
    Owns the configured providers and mediates access to them.

    Providers keep their registration order, which is also the fallback
    order. One registry is built per process and passed to whatever needs it.
    """

    def __init__(self) -> None:
        self._providers: Dict[str, BaseProvider] = {}
        self.default_provider: Optional[str] = None
        self.last_failures: List[ProviderFailure] = []
        self.last_provider: Optional[str] = None

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def __len__(self) -> int:
        return len(self._providers)

    @property
    def names(self) -> List[str]:
        return list(self._providers)

    def register_provider(
        self,
        name: str,
        factory: ProviderFactory,
        config: Optional[Mapping[str, Any]] = None,
    ) -> Optional[BaseProvider]:
        """Build and store a provider; construction errors are logged, not raised."""
        try:
            provider = factory(dict(config or {}))
        except Exception as e:
            logger.warning(
                "provider_registration_failed",
                provider=name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        self._providers[name] = provider
        if self.default_provider is None:
            self.default_provider = name
        logger.info("provider_registered", provider=name, default=self.default_provider == name)
        return provider

    def get_provider(self, name: Optional[str] = None) -> BaseProvider:
        if name is None:
            name = self.default_provider
        provider = self._providers.get(name) if name is not None else None
        if provider is None:
            raise ProviderNotFoundError(name, self.names)
        return provider

    def set_default_provider(self, name: str) -> None:
        if name not in self._providers:
            raise ProviderNotFoundError(name, self.names)
        self.default_provider = name

    def list_providers(self) -> List[Dict[str, Any]]:
        return [
            {
                "name": name,
                "type": type(provider).__name__,
                "available": True,
                "default": name == self.default_provider,
            }
            for name, provider in self._providers.items()
        ]

    async def check_health(self) -> Dict[str, HealthStatus]:
        """Probe every provider in turn. Results are never cached."""
        health: Dict[str, HealthStatus] = {}
        for name, provider in self._providers.items():
            is_default = name == self.default_provider
            try:
                await provider.initialize()
                models = await provider.list_models()
                health[name] = HealthStatus(
                    status="healthy",
                    detail=f"{len(models)} models available",
                    models=len(models),
                    default=is_default,
                )
            except Exception as e:
                logger.info("provider_unhealthy", provider=name, error=str(e))
                health[name] = HealthStatus(
                    status="unhealthy", detail=str(e), default=is_default
                )
        return health

    async def execute_with_fallback(
        self,
        operation: Operation[T],
        preferred: Optional[str] = None,
    ) -> T:
        """
        Run ``operation`` against providers until one succeeds.

        The preferred provider (or the default) goes first, then every other
        provider in registration order. When all of them fail,
        ``AllProvidersFailedError`` carries each provider's failure.
        """
        failures: List[ProviderFailure] = []
        self.last_failures = failures
        self.last_provider = None
        first = preferred or self.default_provider

        if first is not None:
            try:
                result = await operation(self.get_provider(first))
                self.last_provider = first
                return result
            except Exception as e:
                failures.append(ProviderFailure(first, str(e), e))
                logger.warning("provider_failed", provider=first, error=str(e))

        for name, provider in self._providers.items():
            if name == first:
                continue
            logger.info("provider_fallback", provider=name, attempt=len(failures) + 1)
            try:
                result = await operation(provider)
                self.last_provider = name
                return result
            except Exception as e:
                failures.append(ProviderFailure(name, str(e), e))
                logger.warning("provider_failed", provider=name, error=str(e))

        logger.error(
            "all_providers_failed",
            providers=[f.provider for f in failures],
        )
        raise AllProvidersFailedError(failures)

    async def compare_providers(self, prompt: str, **options: Any) -> Dict[str, ComparisonResult]:
        """Run ``prompt`` through each provider sequentially and time it."""
        results: Dict[str, ComparisonResult] = {}
        for name, provider in self._providers.items():
            logger.info("provider_compare", provider=name)
            start = time.perf_counter()
            try:
                response = await provider.complete(prompt, **options)
            except Exception as e:
                results[name] = ComparisonResult(
                    success=False,
                    elapsed=time.perf_counter() - start,
                    error=str(e),
                )
                continue
            results[name] = ComparisonResult(
                success=True,
                elapsed=time.perf_counter() - start,
                response=response,
                estimated_tokens=provider.estimate_tokens(response),
            )
        return results

    def get_usage_stats(self) -> Dict[str, Dict[str, Any]]:
        return {name: p.get_usage_stats() for name, p in self._providers.items()}

    async def shutdown(self) -> None:
        """Close every provider, persisting their caches."""
        for name, provider in self._providers.items():
            try:
                await provider.close()
            except Exception as e:
                logger.warning("provider_close_failed", provider=name, error=str(e))


def create_default_registry(
    settings: Optional[Settings] = None,
    config: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> ProviderRegistry:
    """Register the built-in providers: local Ollama first, then Hugging Face.

    ``config`` maps provider names to their constructor config. A provider
    that cannot be constructed (e.g. no Hugging Face token) is left out.
    """
    from .huggingface import HuggingFaceProvider
    from .ollama import OllamaProvider

    settings = settings or get_settings()
    config = config or {}
    registry = ProviderRegistry()
    registry.register_provider("ollama", OllamaProvider, config.get("ollama"))
    registry.register_provider("huggingface", HuggingFaceProvider, config.get("huggingface"))

    if settings.default_provider:
        try:
            registry.set_default_provider(settings.default_provider)
        except ProviderNotFoundError as e:
            logger.warning(
                "default_provider_unavailable",
                provider=settings.default_provider,
                error=str(e),
            )
    return registry
