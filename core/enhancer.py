"""Prompt enhancement entry point with provider failover and template fallback."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

import structlog

from core.providers import ENHANCEMENT_MODES, ProviderRegistry
from core.templates import enhance_with_template
from exceptions import AllProvidersFailedError
from monitoring.telemetry import request_context

logger = structlog.get_logger(__name__)

DEFAULT_MAX_PROMPT_LENGTH = 50000


@dataclass
class EnhancementResult:
    """Enhanced text plus where it came from."""
    text: str
    source: str
    mode: str
    provider: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    request_id: Optional[str] = None

    @property
    def used_fallback(self) -> bool:
        return self.source == "template"


class PromptEnhancer:
    """
    Turn a raw prompt into an enhanced one.

    An explicitly requested provider is used on its own. Otherwise the
    healthy default (or the first healthy provider) goes first and the
    registry fails over to the rest. When no provider produces text, the
    static template for the mode is used so the caller always gets a result.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        template_fallback: Callable[[str, str], str] = enhance_with_template,
        max_prompt_length: int = DEFAULT_MAX_PROMPT_LENGTH,
    ) -> None:
        self.registry = registry
        self.template_fallback = template_fallback
        self.max_prompt_length = max_prompt_length

    def validate(self, prompt: str, mode: str) -> None:
        if not prompt or not prompt.strip():
            raise ValueError("Prompt must not be empty")
        if len(prompt) > self.max_prompt_length:
            raise ValueError(
                f"Prompt too long: {len(prompt)} characters (max {self.max_prompt_length})"
            )
        if mode not in ENHANCEMENT_MODES:
            raise ValueError(
                f"Unknown mode: {mode}. Use one of: {', '.join(ENHANCEMENT_MODES)}"
            )

    async def select_provider(self) -> Optional[str]:
        """Return the default provider if healthy, else the first healthy one."""
        health = await self.registry.check_health()
        default = self.registry.default_provider
        if default is not None and default in health and health[default].healthy:
            return default
        for name, status in health.items():
            if status.healthy:
                logger.info("provider_substituted", provider=name, default=default)
                return name
        logger.warning("no_healthy_providers", providers=list(health))
        return None

    async def enhance(
        self,
        prompt: str,
        mode: str = "balanced",
        *,
        provider: Optional[str] = None,
        use_ai: bool = True,
        prefer_healthy: bool = True,
        **options: Any,
    ) -> EnhancementResult:
        self.validate(prompt, mode)

        with request_context(mode=mode) as request_id:
            if not use_ai or len(self.registry) == 0:
                return self._template(prompt, mode, request_id, [])

            errors: List[str] = []
            if provider is not None:
                try:
                    text = await self.registry.get_provider(provider).enhance(
                        prompt, mode, **options
                    )
                except Exception as e:
                    logger.warning("enhance_failed", provider=provider, error=str(e))
                    errors.append(f"{provider}: {e}")
                    return self._template(prompt, mode, request_id, errors)
                return self._ai(text, mode, provider, request_id, errors)

            preferred = await self.select_provider() if prefer_healthy else None
            try:
                text = await self.registry.execute_with_fallback(
                    lambda p: p.enhance(prompt, mode, **options), preferred
                )
            except AllProvidersFailedError as e:
                errors.extend(f"{f.provider}: {f.error}" for f in e.failures)
                return self._template(prompt, mode, request_id, errors)

            errors.extend(f"{f.provider}: {f.error}" for f in self.registry.last_failures)
            return self._ai(text, mode, self.registry.last_provider, request_id, errors)

    def _ai(
        self,
        text: str,
        mode: str,
        provider: Optional[str],
        request_id: str,
        errors: List[str],
    ) -> EnhancementResult:
        logger.info("enhance_complete", source="ai", provider=provider)
        return EnhancementResult(
            text=text,
            source="ai",
            mode=mode,
            provider=provider,
            errors=errors,
            request_id=request_id,
        )

    def _template(
        self, prompt: str, mode: str, request_id: str, errors: List[str]
    ) -> EnhancementResult:
        logger.info("enhance_complete", source="template", errors=len(errors))
        return EnhancementResult(
            text=self.template_fallback(prompt, mode),
            source="template",
            mode=mode,
            errors=errors,
            request_id=request_id,
        )
