"""Base contract shared by every LLM provider."""

from __future__ import annotations

import asyncio
import math
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

import aiohttp
import structlog

from exceptions import (
    BackendConnectionError,
    BackendTimeoutError,
    ProviderError,
    RateLimitError,
    UnknownProviderError,
)

logger = structlog.get_logger(__name__)

ENHANCEMENT_MODES = ("balanced", "ultrathink", "coding", "analysis", "creative")

SYSTEM_PROMPTS: Dict[str, str] = {
    "balanced": "Enhance this prompt to be clear, structured, and comprehensive.",
    "ultrathink": "Transform this into a deep reasoning prompt with metacognitive elements.",
    "coding": "Optimize this prompt for programming tasks with clear specifications.",
    "analysis": "Structure this prompt for systematic analysis with evidence-based reasoning.",
    "creative": "Enhance this prompt for maximum creativity and originality.",
}


@dataclass
class RateLimits:
    """Advisory client-side limits."""
    requests_per_hour: int = 1000
    requests_per_minute: int = 60
    tokens_per_minute: int = 10000


@dataclass
class Usage:
    requests: int = 0
    tokens: int = 0
    last_reset: float = field(default_factory=time.time)


@dataclass
class ModelInfo:
    """A model exposed by a provider backend."""
    id: str
    name: str
    metadata: Dict[str, Any] = field(default_factory=dict)


class BaseProvider(ABC):
    """
    Abstract LLM provider.

    Subclasses implement ``initialize``, ``list_models`` and ``complete``.
    Usage counters and the hourly rate-limit guard live here; they are purely
    local bookkeeping and do not replace the backend's own limits.
    """

    reset_window: float = 3600.0

    def __init__(
        self,
        name: str,
        config: Optional[Mapping[str, Any]] = None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.name = name
        self.config: Dict[str, Any] = dict(config or {})
        self.rate_limits = RateLimits()
        self._clock = clock
        self.usage = Usage(last_reset=clock())
        self._session = session
        self._owned_session = session is None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owned_session = True
        return self._session

    @abstractmethod
    async def initialize(self) -> bool:
        """Verify the backend is reachable; raise ``BackendConnectionError`` if not."""

    @abstractmethod
    async def list_models(self) -> List[ModelInfo]:
        """Return the models the backend currently exposes."""

    @abstractmethod
    async def complete(self, prompt: str, **options: Any) -> str:
        """Generate a completion for ``prompt``."""

    async def close(self) -> None:
        """Release the HTTP session if this provider created it."""
        if self._owned_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def is_model_available(self, model_id: str) -> bool:
        models = await self.list_models()
        return any(m.id == model_id for m in models)

    def system_prompt_for_mode(self, mode: str) -> str:
        return SYSTEM_PROMPTS.get(mode, SYSTEM_PROMPTS["balanced"])

    async def enhance(self, prompt: str, mode: str = "balanced", **options: Any) -> str:
        """Wrap ``prompt`` in a mode instruction and delegate to ``complete``."""
        instruction = self.system_prompt_for_mode(mode)
        full_prompt = f"{instruction}\n\nUser prompt: {prompt}\n\nEnhanced prompt:"
        return await self.complete(full_prompt, **options)

    def _maybe_reset(self) -> None:
        now = self._clock()
        if now - self.usage.last_reset > self.reset_window:
            self.usage = Usage(last_reset=now)

    def check_rate_limits(self) -> None:
        """Raise ``RateLimitError`` once the hourly request budget is spent."""
        self._maybe_reset()
        if self.usage.requests >= self.rate_limits.requests_per_hour:
            logger.warning(
                "provider_rate_limited",
                provider=self.name,
                requests=self.usage.requests,
                limit=self.rate_limits.requests_per_hour,
            )
            raise RateLimitError(
                f"Rate limit exceeded: {self.rate_limits.requests_per_hour} requests per hour"
            )

    def track_usage(self, tokens: int) -> None:
        self._maybe_reset()
        self.usage.requests += 1
        self.usage.tokens += tokens

    def get_usage_stats(self) -> Dict[str, Any]:
        return {
            "provider": self.name,
            "requests": self.usage.requests,
            "tokens": self.usage.tokens,
            "rate_limits": asdict(self.rate_limits),
            "last_reset": self.usage.last_reset,
        }

    @staticmethod
    def estimate_tokens(text: str) -> int:
        """Rough estimate: 1 token per 4 characters."""
        return math.ceil(len(text) / 4)

    def translate_error(self, error: BaseException) -> ProviderError:
        """Map a transport exception to the provider error taxonomy."""
        if isinstance(error, ProviderError):
            return error
        if isinstance(error, (asyncio.TimeoutError, aiohttp.ServerTimeoutError)):
            return BackendTimeoutError()
        if isinstance(error, (aiohttp.ClientConnectionError, ConnectionError)):
            return BackendConnectionError()
        logger.debug(
            "provider_unclassified_error",
            provider=self.name,
            error_type=type(error).__name__,
        )
        return UnknownProviderError(f"{self.name} request failed")
