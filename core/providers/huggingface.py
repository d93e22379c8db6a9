"""Hosted inference through the Hugging Face Inference API, with a disk-backed cache."""

from __future__ import annotations

import hashlib
import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import aiohttp
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from api import huggingface as hf_api
from config import CacheSettings, HuggingFaceSettings
from exceptions import (
    AuthenticationError,
    BackendConnectionError,
    BackendTimeoutError,
    ModelNotFoundError,
    ProviderError,
    RateLimitError,
    ServerError,
)

from .base import BaseProvider, ModelInfo
from .cache import PersistentLRUCache

logger = structlog.get_logger(__name__)

TOKEN_PREFIX = "hf_"
MIN_TOKEN_LENGTH = 20


@dataclass(frozen=True)
class ModelTier:
    id: str
    max_tokens: int
    rate_limit: int


MODEL_TIERS: Dict[str, ModelTier] = {
    "fast": ModelTier("google/flan-t5-xl", max_tokens=512, rate_limit=5000),
    "balanced": ModelTier("mistralai/Mixtral-8x7B-Instruct-v0.1", max_tokens=1024, rate_limit=2000),
    "deep": ModelTier("meta-llama/Llama-2-70b-chat-hf", max_tokens=1500, rate_limit=500),
}

MODE_TIERS = {"ultrathink": "deep", "coding": "balanced", "analysis": "balanced"}

ENHANCEMENT_PROMPTS: Dict[str, str] = {
    "balanced": (
        "Transform this basic prompt into a well-structured, detailed prompt that will help "
        "an AI assistant provide a comprehensive response.\n\n"
        'Original prompt: "{prompt}"\n\n'
        "Create an enhanced version that includes:\n- Clear context and background\n"
        "- Specific requirements and constraints\n- Expected output format\n"
        "- Relevant examples if applicable\n\nEnhanced prompt:"
    ),
    "ultrathink": (
        "Transform this prompt into a deep, thoughtful prompt that encourages systematic "
        "reasoning and metacognitive reflection.\n\n"
        'Original prompt: "{prompt}"\n\n'
        "Create an enhanced version that:\n- Breaks down the problem into components\n"
        "- Encourages step-by-step analysis\n- Includes reflection points\n"
        "- Requests confidence assessments\n- Considers multiple perspectives\n\nEnhanced prompt:"
    ),
    "coding": (
        "Transform this programming-related prompt into a detailed technical specification.\n\n"
        'Original prompt: "{prompt}"\n\n'
        "Create an enhanced version that includes:\n- Clear problem statement\n"
        "- Technical requirements\n- Input/output examples\n- Performance considerations\n"
        "- Testing approach\n- Expected code structure\n\nEnhanced prompt:"
    ),
    "analysis": (
        "Transform this prompt into a comprehensive analytical framework.\n\n"
        'Original prompt: "{prompt}"\n\n'
        "Create an enhanced version that includes:\n- Scope definition\n- Data requirements\n"
        "- Analysis methodology\n- Evidence criteria\n- Expected insights format\n\nEnhanced prompt:"
    ),
    "creative": (
        "Transform this creative prompt into an inspiring, detailed creative brief.\n\n"
        'Original prompt: "{prompt}"\n\n'
        "Create an enhanced version that:\n- Sets creative boundaries\n- Encourages originality\n"
        "- Includes sensory details\n- Defines success criteria\n"
        "- Suggests exploration directions\n\nEnhanced prompt:"
    ),
}

MODEL_SUGGESTIONS = {
    AuthenticationError: "Check your HF_TOKEN; the model may also require a Pro subscription",
    ModelNotFoundError: "Model not available on Inference API",
    RateLimitError: "Rate limit exceeded, try again later",
}


def validate_token(token: Optional[str]) -> str:
    """Return ``token`` if it has the shape of a Hugging Face access token."""
    if not token:
        raise AuthenticationError(
            "Hugging Face token not found. Set the HF_TOKEN environment variable."
        )
    if not token.startswith(TOKEN_PREFIX) or len(token) < MIN_TOKEN_LENGTH:
        raise AuthenticationError(
            f'Invalid Hugging Face token format. Token must start with "{TOKEN_PREFIX}" '
            f"and be at least {MIN_TOKEN_LENGTH} characters long"
        )
    return token


def clean_response(text: str) -> str:
    """Strip whitespace and any echoed ``Enhanced prompt:`` header."""
    text = text.strip()
    if "Enhanced prompt:" in text:
        text = text.split("Enhanced prompt:")[-1].strip()
    return text


class HuggingFaceProvider(BaseProvider):
    """Provider for the Hugging Face Inference API with response caching."""

    def __init__(
        self,
        config: Optional[Mapping[str, Any]] = None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        cache: Optional[PersistentLRUCache] = None,
        settings: Optional[HuggingFaceSettings] = None,
        cache_settings: Optional[CacheSettings] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__("huggingface", config, session=session, **kwargs)
        settings = settings or HuggingFaceSettings()
        configured = settings.token.get_secret_value() if settings.token else None
        self._token = validate_token(self.config.get("api_key") or configured)

        self.base_url = str(self.config.get("base_url") or settings.base_url).rstrip("/")
        self.whoami_url = self.config.get("whoami_url") or settings.whoami_url
        self.connect_timeout = float(self.config.get("connect_timeout", settings.connect_timeout))
        self.timeout = float(self.config.get("timeout", settings.timeout))
        self.max_retries = int(self.config.get("max_retries", settings.max_retries))
        self.retry_backoff = float(self.config.get("retry_backoff", 1.0))
        self.models: Dict[str, ModelTier] = dict(MODEL_TIERS)

        cache_settings = cache_settings or CacheSettings()
        self.cache_dir = Path(self.config.get("cache_dir") or cache_settings.cache_dir)
        self.cache = cache or PersistentLRUCache(
            self.cache_dir / cache_settings.cache_file,
            max_size=cache_settings.max_size,
            ttl=cache_settings.ttl,
            clock=self._clock,
        )
        self._cache_loaded = False

    async def _ensure_cache_loaded(self) -> None:
        if not self._cache_loaded:
            self._cache_loaded = True
            await self.cache.load_from_disk()

    async def initialize(self) -> bool:
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("cache_dir_unavailable", path=str(self.cache_dir), error=str(e))
        await self._ensure_cache_loaded()

        try:
            account = await hf_api.whoami(
                self._get_session(),
                self.whoami_url,
                self._token,
                timeout=self.connect_timeout,
            )
        except AuthenticationError:
            raise
        except Exception as e:
            error = self.translate_error(e)
            if isinstance(error, (BackendConnectionError, BackendTimeoutError)):
                raise BackendConnectionError(
                    "Hugging Face API is unreachable. Check your internet connection."
                ) from e
            raise error from e

        logger.info("huggingface_connected", account=account.get("name"))
        return True

    async def list_models(self) -> List[ModelInfo]:
        return [
            ModelInfo(
                id=tier.id,
                name=f"{name} ({tier.id})",
                metadata={
                    "tier": name,
                    "max_tokens": tier.max_tokens,
                    "rate_limit": tier.rate_limit,
                },
            )
            for name, tier in self.models.items()
        ]

    def cache_key(
        self,
        prompt: str,
        model_id: str,
        *,
        temperature: float,
        max_tokens: Optional[int],
        mode: Optional[str] = None,
    ) -> str:
        content = json.dumps(
            {
                "mode": mode,
                "prompt": prompt,
                "model": model_id,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
            sort_keys=True,
        )
        return hashlib.sha256(content.encode()).hexdigest()

    def _log_retry(self, state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        logger.warning(
            "huggingface_retry",
            attempt=state.attempt_number,
            error=str(error),
            error_type=type(error).__name__,
        )

    async def _request(self, tier: ModelTier, payload: Dict[str, Any]) -> str:
        try:
            return await hf_api.text_generation(
                self._get_session(),
                self.base_url,
                tier.id,
                self._token,
                payload,
                timeout=self.timeout,
            )
        except Exception as e:
            raise self.translate_error(e) from e

    async def _generate(self, tier: ModelTier, payload: Dict[str, Any], attempts: int) -> str:
        text = ""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(attempts, 1)),
            wait=wait_exponential(multiplier=self.retry_backoff, max=10),
            retry=retry_if_exception_type((ServerError, BackendTimeoutError)),
            before_sleep=self._log_retry,
            reraise=True,
        ):
            with attempt:
                text = await self._request(tier, payload)
        return text

    async def complete(
        self,
        prompt: str,
        *,
        model_tier: str = "balanced",
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        top_p: Optional[float] = None,
        use_cache: bool = True,
        mode: Optional[str] = None,
        retries: Optional[int] = None,
        **_: Any,
    ) -> str:
        tier = self.models.get(model_tier)
        if tier is None:
            raise ModelNotFoundError(
                f"Unknown model tier: {model_tier}. Use one of: {', '.join(self.models)}"
            )
        temperature = 0.7 if temperature is None else temperature

        await self._ensure_cache_loaded()
        key = self.cache_key(
            prompt, tier.id, temperature=temperature, max_tokens=max_tokens, mode=mode
        )
        if use_cache:
            cached = await self.cache.get(key)
            if cached is not None:
                logger.info("cache_hit", provider=self.name, key=key[:8])
                return cached

        self.check_rate_limits()
        payload = {
            "inputs": prompt,
            "parameters": {
                "max_new_tokens": max_tokens or tier.max_tokens,
                "temperature": temperature,
                "top_p": 0.9 if top_p is None else top_p,
                "return_full_text": False,
            },
        }

        start = time.time()
        try:
            text = await self._generate(
                tier, payload, self.max_retries if retries is None else retries
            )
        except ProviderError as e:
            logger.error(
                "huggingface_request_failed",
                model=tier.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        logger.info(
            "huggingface_request_success",
            model=tier.id,
            latency=round(time.time() - start, 3),
        )
        await self.cache.set(key, text)
        self.track_usage(self.estimate_tokens(prompt) + self.estimate_tokens(text))
        return text

    async def enhance(self, prompt: str, mode: str = "balanced", **options: Any) -> str:
        tier = options.pop("model_tier", None) or MODE_TIERS.get(mode, "fast")
        template = ENHANCEMENT_PROMPTS.get(mode, ENHANCEMENT_PROMPTS["balanced"])
        options.pop("mode", None)
        raw = await self.complete(
            template.format(prompt=prompt), model_tier=tier, mode=mode, **options
        )
        return clean_response(raw)

    def get_usage_stats(self) -> Dict[str, Any]:
        stats = super().get_usage_stats()
        stats["cache"] = self.cache.stats()
        stats["cache_location"] = str(self.cache_dir)
        return stats

    async def clear_cache(self) -> int:
        """Drop every cached response from memory and disk."""
        return await self.cache.clear()

    async def check_models(self) -> Dict[str, Dict[str, Any]]:
        """Probe each tier with a tiny uncached completion."""
        results: Dict[str, Dict[str, Any]] = {}
        for name, tier in self.models.items():
            start = time.time()
            try:
                await self.complete(
                    "Test", model_tier=name, max_tokens=10, use_cache=False, retries=1
                )
                results[name] = {
                    "available": True,
                    "model": tier.id,
                    "response_time": time.time() - start,
                }
            except ProviderError as e:
                results[name] = {
                    "available": False,
                    "model": tier.id,
                    "error": str(e),
                    "suggestion": MODEL_SUGGESTIONS.get(
                        type(e), "Model temporarily unavailable"
                    ),
                }
        return results

    async def close(self) -> None:
        await self.cache.shutdown()
        await super().close()
