from __future__ import annotations

from typing import Any, List, Optional

from core.providers.base import BaseProvider, ModelInfo
from exceptions import BackendConnectionError


class FakeClock:
    """Manually advanced replacement for ``time.time``."""

    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSession:
    """Stands in for ``aiohttp.ClientSession`` when the API helpers are patched."""

    closed = False


class MockProvider(BaseProvider):
    """Provider returning canned responses, optionally failing."""

    def __init__(
        self,
        name: str = "mock",
        responses: Optional[List[str]] = None,
        *,
        error: Optional[Exception] = None,
        healthy: bool = True,
        models: Optional[List[ModelInfo]] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(name, **kwargs)
        self.responses = responses or ["ok"]
        self.error = error
        self.healthy = healthy
        self.models = models if models is not None else [ModelInfo(id="m1", name="m1")]
        self.prompts: List[str] = []
        self.options: List[dict] = []
        self.closed = False

    async def initialize(self) -> bool:
        if not self.healthy:
            raise BackendConnectionError(f"{self.name} is down")
        return True

    async def list_models(self) -> List[ModelInfo]:
        return list(self.models)

    async def complete(self, prompt: str, **options: Any) -> str:
        self.check_rate_limits()
        self.prompts.append(prompt)
        self.options.append(options)
        if self.error is not None:
            raise self.error
        response = self.responses[min(len(self.prompts), len(self.responses)) - 1]
        self.track_usage(self.estimate_tokens(prompt) + self.estimate_tokens(response))
        return response

    async def close(self) -> None:
        self.closed = True
        await super().close()
