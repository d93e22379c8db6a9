"""Local inference through an Ollama daemon."""

from __future__ import annotations

from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional

import aiohttp
import structlog

from api import ollama as ollama_api
from config import OllamaSettings
from exceptions import (
    BackendConnectionError,
    BackendTimeoutError,
    ModelNotFoundError,
    ProviderError,
)

from .base import BaseProvider, ModelInfo, RateLimits

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[Dict[str, Any]], None]

MODE_PREFERENCES: Dict[str, List[str]] = {
    "coding": ["codellama", "deepseek-coder", "codegemma", "starcoder", "llama3.2", "llama3", "llama2", "mistral"],
    "ultrathink": ["llama3.2:3b", "llama3:8b", "llama2:13b", "llama2:7b", "mistral", "neural-chat"],
    "creative": ["neural-chat", "llama3.2", "llama3", "mistral", "llama2"],
    "analysis": ["mistral", "llama3.2", "llama3", "llama2", "mixtral"],
    "balanced": ["llama3.2", "llama3", "llama2", "mistral", "neural-chat"],
}

ENHANCEMENT_PROMPTS: Dict[str, str] = {
    "balanced": (
        "You are a helpful AI assistant. Please enhance the following prompt to be more "
        "clear, structured, and comprehensive. Provide specific details and context where "
        "appropriate.\n\nOriginal prompt: {prompt}\n\nEnhanced prompt:"
    ),
    "ultrathink": (
        "You are an AI that excels at deep, systematic thinking. Transform the following "
        "prompt into a comprehensive reasoning framework that includes:\n"
        "1. Problem decomposition\n2. Step-by-step analysis\n"
        "3. Critical assumptions to examine\n4. Alternative perspectives to consider\n"
        "5. Validation methods\n\nOriginal prompt: {prompt}\n\n"
        "Enhanced prompt with deep reasoning framework:"
    ),
    "coding": (
        "You are an expert programming assistant. Enhance the following coding request with:\n"
        "1. Clear technical specifications\n2. Input/output examples\n"
        "3. Edge cases to consider\n4. Performance requirements\n5. Best practices to follow\n\n"
        "Original prompt: {prompt}\n\nEnhanced technical prompt:"
    ),
    "analysis": (
        "You are an analytical AI. Structure the following request for systematic analysis "
        "including:\n1. Scope and boundaries\n2. Data requirements\n3. Analytical framework\n"
        "4. Evidence criteria\n5. Expected deliverables\n\n"
        "Original prompt: {prompt}\n\nEnhanced analytical prompt:"
    ),
    "creative": (
        "You are a creative AI assistant. Enhance the following creative request to maximize "
        "originality and impact:\n1. Expand the creative vision\n"
        "2. Add sensory details and atmosphere\n3. Suggest unconventional approaches\n"
        "4. Include emotional resonance\n5. Push boundaries while maintaining coherence\n\n"
        "Original prompt: {prompt}\n\nEnhanced creative prompt:"
    ),
}

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant specialized in prompt enhancement."


def format_size(num_bytes: Optional[int]) -> str:
    """Format a byte count as a human readable size."""
    if not num_bytes:
        return "0 B"
    size = float(num_bytes)
    for unit in ("B", "KB", "MB"):
        if size < 1024:
            return f"{size:.2f} {unit}"
        size /= 1024
    return f"{size:.2f} GB"


class OllamaProvider(BaseProvider):
    """Provider backed by a local Ollama daemon."""

    def __init__(
        self,
        config: Optional[Mapping[str, Any]] = None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        settings: Optional[OllamaSettings] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__("ollama", config, session=session, **kwargs)
        settings = settings or OllamaSettings()
        self.base_url = str(self.config.get("base_url") or settings.base_url).rstrip("/")
        self.default_model = self.config.get("default_model") or settings.default_model
        self.connect_timeout = float(self.config.get("connect_timeout", settings.connect_timeout))
        self.timeout = float(self.config.get("timeout", settings.timeout))
        self.auto_pull = bool(self.config.get("auto_pull", settings.auto_pull))
        self._available_models: Optional[List[ModelInfo]] = None

        # Local inference has no hard quota
        self.rate_limits = RateLimits(
            requests_per_hour=10000,
            requests_per_minute=1000,
            tokens_per_minute=100000,
        )

    async def initialize(self) -> bool:
        try:
            version = await ollama_api.get_version(
                self._get_session(), self.base_url, timeout=self.connect_timeout
            )
        except BackendConnectionError:
            raise
        except Exception as e:
            error = self.translate_error(e)
            if isinstance(error, BackendTimeoutError):
                raise BackendConnectionError(
                    "Ollama connection timeout - server may be starting up"
                ) from e
            if isinstance(error, BackendConnectionError):
                raise BackendConnectionError(
                    "Ollama is not running. Please start Ollama with: ollama serve"
                ) from e
            raise BackendConnectionError(f"Failed to connect to Ollama: {error}") from e

        logger.info("ollama_connected", version=version)
        return True

    async def list_models(self) -> List[ModelInfo]:
        try:
            records = await ollama_api.list_tags(
                self._get_session(), self.base_url, timeout=self.connect_timeout
            )
        except Exception as e:
            raise self.translate_error(e) from e

        models = []
        for record in records:
            details = record.get("details") or {}
            models.append(
                ModelInfo(
                    id=record["name"],
                    name=record["name"],
                    metadata={
                        "size": format_size(record.get("size")),
                        "modified": record.get("modified_at"),
                        "family": details.get("family", "unknown"),
                        "parameters": details.get("parameter_size", "unknown"),
                        "quantization": details.get("quantization_level", "unknown"),
                    },
                )
            )
        self._available_models = models
        return models

    async def best_model_for_mode(self, mode: str) -> str:
        """Pick the first installed model matching the mode's preferences."""
        try:
            if self._available_models is None:
                await self.list_models()
        except ProviderError as e:
            logger.warning("ollama_model_detection_failed", error=str(e))
            return self.default_model

        names = [m.id for m in self._available_models or []]
        if not names:
            logger.warning(
                "ollama_no_models",
                hint='Use "ollama pull <model>" to install models.',
            )
            return self.default_model

        for preference in MODE_PREFERENCES.get(mode, MODE_PREFERENCES["balanced"]):
            for name in names:
                if name.startswith(preference):
                    return name
        return names[0]

    async def pull_model(
        self, name: str, *, on_progress: Optional[ProgressCallback] = None
    ) -> None:
        """Download ``name`` into the local registry, reporting progress."""
        logger.info("ollama_pull_start", model=name)
        try:
            async for record in ollama_api.pull(
                self._get_session(),
                self.base_url,
                name,
                connect_timeout=self.connect_timeout,
                read_timeout=self.timeout,
            ):
                if record.get("error"):
                    raise ProviderError(f"Failed to pull model: {record['error']}")
                if on_progress is not None:
                    on_progress(record)
                elif record.get("status"):
                    logger.debug(
                        "ollama_pull_progress",
                        model=name,
                        status=record["status"],
                        completed=record.get("completed"),
                        total=record.get("total"),
                    )
        except ProviderError:
            raise
        except Exception as e:
            raise self.translate_error(e) from e

        self._available_models = None
        logger.info("ollama_pull_complete", model=name)

    async def is_model_available(self, model_id: str) -> bool:
        # Ollama stores an untagged name as "<name>:latest"
        wanted = model_id if ":" in model_id else f"{model_id}:latest"
        models = await self.list_models()
        return any(m.id in (model_id, wanted) for m in models)

    async def _ensure_model(self, model: str, auto_pull: bool, on_progress) -> None:
        if await self.is_model_available(model):
            return
        if not auto_pull:
            raise ModelNotFoundError(
                f"Model {model} not found. Pull it first or enable auto pull."
            )
        logger.info("ollama_model_missing", model=model)
        await self.pull_model(model, on_progress=on_progress)

    def _build_payload(
        self,
        prompt: str,
        model: str,
        *,
        temperature: Optional[float],
        max_tokens: Optional[int],
        top_p: Optional[float],
        top_k: Optional[int],
        stop: Optional[List[str]],
        seed: Optional[int],
        system: Optional[str],
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model,
            "prompt": prompt,
            "options": {
                "temperature": temperature if temperature is not None else 0.7,
                "top_p": top_p if top_p is not None else 0.9,
                "top_k": top_k if top_k is not None else 40,
                "num_predict": max_tokens or 2048,
                "stop": stop,
                "seed": seed,
            },
        }
        if system:
            payload["system"] = system
        return payload

    async def complete(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        top_p: Optional[float] = None,
        top_k: Optional[int] = None,
        stop: Optional[List[str]] = None,
        seed: Optional[int] = None,
        system: Optional[str] = None,
        auto_pull: Optional[bool] = None,
        on_progress: Optional[ProgressCallback] = None,
        **_: Any,
    ) -> str:
        model = model or self.default_model
        self.check_rate_limits()
        await self._ensure_model(
            model, self.auto_pull if auto_pull is None else auto_pull, on_progress
        )

        payload = self._build_payload(
            prompt,
            model,
            temperature=temperature,
            max_tokens=max_tokens,
            top_p=top_p,
            top_k=top_k,
            stop=stop,
            seed=seed,
            system=system,
        )
        try:
            result = await ollama_api.generate(
                self._get_session(), self.base_url, payload, timeout=self.timeout
            )
        except Exception as e:
            error = self.translate_error(e)
            logger.error(
                "ollama_completion_failed",
                model=model,
                error=str(error),
                error_type=type(error).__name__,
            )
            raise error from e

        text = str(result.get("response", ""))
        self.track_usage(self.estimate_tokens(prompt) + self.estimate_tokens(text))
        return text

    async def enhance(self, prompt: str, mode: str = "balanced", **options: Any) -> str:
        template = ENHANCEMENT_PROMPTS.get(mode, ENHANCEMENT_PROMPTS["balanced"])
        model = options.pop("model", None) or await self.best_model_for_mode(mode)
        system = options.pop("system", None) or DEFAULT_SYSTEM_PROMPT
        if options.get("temperature") is None:
            options["temperature"] = 0.9 if mode == "creative" else 0.7
        options["max_tokens"] = options.get("max_tokens") or 2048
        return await self.complete(
            template.format(prompt=prompt), model=model, system=system, **options
        )

    async def stream_completion(
        self, prompt: str, *, model: Optional[str] = None, **options: Any
    ) -> AsyncIterator[str]:
        """Yield the completion for ``prompt`` as it is generated."""
        model = model or self.default_model
        self.check_rate_limits()
        auto_pull = options.pop("auto_pull", None)
        await self._ensure_model(
            model,
            self.auto_pull if auto_pull is None else auto_pull,
            options.pop("on_progress", None),
        )
        payload = self._build_payload(
            prompt,
            model,
            temperature=options.get("temperature"),
            max_tokens=options.get("max_tokens"),
            top_p=options.get("top_p"),
            top_k=options.get("top_k"),
            stop=options.get("stop"),
            seed=options.get("seed"),
            system=options.get("system"),
        )
        produced = []
        try:
            async for chunk in ollama_api.stream_generate(
                self._get_session(), self.base_url, payload, timeout=self.timeout
            ):
                produced.append(chunk)
                yield chunk
        except ProviderError:
            raise
        except Exception as e:
            raise self.translate_error(e) from e
        self.track_usage(self.estimate_tokens(prompt) + self.estimate_tokens("".join(produced)))

    async def model_info(self, name: str) -> Dict[str, Any]:
        """Return Ollama's details for an installed model."""
        try:
            return await ollama_api.show(
                self._get_session(), self.base_url, name, timeout=self.connect_timeout
            )
        except Exception as e:
            raise self.translate_error(e) from e
