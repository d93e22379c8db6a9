import asyncio
import json
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))  # noqa: E402

import aiohttp  # noqa: E402
import pytest  # noqa: E402

from config import CacheSettings, HuggingFaceSettings  # noqa: E402
from core.providers.huggingface import (  # noqa: E402
    MODEL_TIERS,
    HuggingFaceProvider,
    clean_response,
)
from exceptions import (  # noqa: E402
    AuthenticationError,
    BackendConnectionError,
    BackendTimeoutError,
    ModelNotFoundError,
    RateLimitError,
    ServerError,
)
from tests.mocks import FakeClock, FakeSession  # noqa: E402

TOKEN = "hf_" + "a" * 30


@pytest.fixture
def make_provider(tmp_path):
    def factory(**config):
        config.setdefault("api_key", TOKEN)
        config.setdefault("retry_backoff", 0)
        return HuggingFaceProvider(
            config,
            session=FakeSession(),
            settings=HuggingFaceSettings(token=None),
            cache_settings=CacheSettings(cache_dir=tmp_path),
            clock=FakeClock(),
        )

    return factory


@pytest.fixture
def calls(monkeypatch):
    """Record text-generation requests and answer with a fixed text."""

    recorded = []

    async def fake_generation(session, base_url, model_id, token, payload, *, timeout=60.0):
        recorded.append((model_id, payload))
        return "generated"

    monkeypatch.setattr("api.huggingface.text_generation", fake_generation)
    return recorded


@pytest.fixture
def no_network(monkeypatch):
    async def fail(*args, **kwargs):
        raise AssertionError("network call made")

    monkeypatch.setattr("api.huggingface.whoami", fail)
    monkeypatch.setattr("api.huggingface.text_generation", fail)


@pytest.mark.parametrize("token", ["bad", "hf_short", "xx_" + "a" * 30])
def test_malformed_token_rejected(make_provider, no_network, token):
    with pytest.raises(AuthenticationError, match="Invalid Hugging Face token format"):
        make_provider(api_key=token)


def test_missing_token_rejected(tmp_path, no_network):
    with pytest.raises(AuthenticationError, match="HF_TOKEN"):
        HuggingFaceProvider(
            settings=HuggingFaceSettings(token=None),
            cache_settings=CacheSettings(cache_dir=tmp_path),
        )


def test_token_from_settings(tmp_path):
    provider = HuggingFaceProvider(
        settings=HuggingFaceSettings(token=TOKEN),
        cache_settings=CacheSettings(cache_dir=tmp_path),
    )
    assert provider.name == "huggingface"


@pytest.mark.asyncio
async def test_unknown_tier_lists_valid_tiers(make_provider, calls):
    provider = make_provider()
    with pytest.raises(ModelNotFoundError, match="fast, balanced, deep"):
        await provider.complete("hi", model_tier="huge")
    assert calls == []


@pytest.mark.asyncio
async def test_complete_sends_tier_model(make_provider, calls):
    provider = make_provider()
    assert await provider.complete("hi", model_tier="fast") == "generated"

    model_id, payload = calls[0]
    assert model_id == MODEL_TIERS["fast"].id
    assert payload["inputs"] == "hi"
    assert payload["parameters"]["max_new_tokens"] == MODEL_TIERS["fast"].max_tokens
    assert provider.usage.requests == 1


@pytest.mark.asyncio
async def test_repeated_prompt_served_from_cache(make_provider, calls):
    provider = make_provider()
    first = await provider.complete("hi")
    second = await provider.complete("hi")

    assert first == second == "generated"
    assert len(calls) == 1
    assert provider.get_usage_stats()["cache"]["hits"] == 1


@pytest.mark.asyncio
async def test_cache_bypass(make_provider, calls):
    provider = make_provider()
    await provider.complete("hi")
    await provider.complete("hi", use_cache=False)
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_cache_key_depends_on_parameters(make_provider, calls):
    provider = make_provider()
    await provider.complete("hi", temperature=0.2)
    await provider.complete("hi", temperature=0.9)
    await provider.complete("hi", model_tier="deep")
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_rate_limit_makes_no_request(make_provider, calls):
    provider = make_provider()
    provider.usage.requests = provider.rate_limits.requests_per_hour
    with pytest.raises(RateLimitError):
        await provider.complete("hi")
    assert calls == []


@pytest.mark.asyncio
async def test_server_errors_are_retried(make_provider, monkeypatch):
    attempts = []

    async def flaky(session, base_url, model_id, token, payload, *, timeout=60.0):
        attempts.append(model_id)
        if len(attempts) < 3:
            raise ServerError()
        return "recovered"

    monkeypatch.setattr("api.huggingface.text_generation", flaky)
    provider = make_provider(max_retries=3)

    assert await provider.complete("hi") == "recovered"
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_retries_exhausted(make_provider, monkeypatch):
    attempts = []

    async def broken(session, base_url, model_id, token, payload, *, timeout=60.0):
        attempts.append(model_id)
        raise ServerError()

    monkeypatch.setattr("api.huggingface.text_generation", broken)
    provider = make_provider(max_retries=2)

    with pytest.raises(ServerError):
        await provider.complete("hi")
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_timeouts_are_retried(make_provider, monkeypatch):
    attempts = []

    async def slow(session, base_url, model_id, token, payload, *, timeout=60.0):
        attempts.append(model_id)
        if len(attempts) < 2:
            raise asyncio.TimeoutError()
        return "recovered"

    monkeypatch.setattr("api.huggingface.text_generation", slow)
    provider = make_provider(max_retries=3)

    assert await provider.complete("hi") == "recovered"
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_timeout_after_retries(make_provider, monkeypatch):
    attempts = []

    async def stalled(session, base_url, model_id, token, payload, *, timeout=60.0):
        attempts.append(model_id)
        raise asyncio.TimeoutError()

    monkeypatch.setattr("api.huggingface.text_generation", stalled)
    provider = make_provider(max_retries=2)

    with pytest.raises(BackendTimeoutError):
        await provider.complete("hi")
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_authentication_errors_are_not_retried(make_provider, monkeypatch):
    attempts = []

    async def rejected(session, base_url, model_id, token, payload, *, timeout=60.0):
        attempts.append(model_id)
        raise AuthenticationError()

    monkeypatch.setattr("api.huggingface.text_generation", rejected)
    provider = make_provider()

    with pytest.raises(AuthenticationError):
        await provider.complete("hi")
    assert len(attempts) == 1


@pytest.mark.asyncio
async def test_enhance_picks_tier_for_mode(make_provider, monkeypatch):
    sent = []

    async def fake_generation(session, base_url, model_id, token, payload, *, timeout=60.0):
        sent.append(model_id)
        return "Enhanced prompt:\n  Think step by step.  "

    monkeypatch.setattr("api.huggingface.text_generation", fake_generation)
    provider = make_provider()

    assert await provider.enhance("why is the sky blue", "ultrathink") == "Think step by step."
    await provider.enhance("story", "creative")
    assert sent == [MODEL_TIERS["deep"].id, MODEL_TIERS["fast"].id]


@pytest.mark.asyncio
async def test_initialize_loads_disk_cache(make_provider, tmp_path, calls, monkeypatch):
    async def fake_whoami(session, url, token, *, timeout=15.0):
        return {"name": "tester"}

    monkeypatch.setattr("api.huggingface.whoami", fake_whoami)
    provider = make_provider()
    key = provider.cache_key(
        "hi", MODEL_TIERS["balanced"].id, temperature=0.7, max_tokens=None
    )
    expires = int((provider._clock() + 3600) * 1000)
    (tmp_path / "cache-data.json").write_text(
        json.dumps({key: {"value": "from disk", "expires": expires}}), encoding="utf-8"
    )

    assert await provider.initialize() is True
    assert await provider.complete("hi") == "from disk"
    assert calls == []


@pytest.mark.asyncio
async def test_initialize_unreachable(make_provider, monkeypatch):
    async def fake_whoami(session, url, token, *, timeout=15.0):
        raise aiohttp.ClientConnectionError("dns failure")

    monkeypatch.setattr("api.huggingface.whoami", fake_whoami)
    provider = make_provider()
    with pytest.raises(BackendConnectionError, match="unreachable"):
        await provider.initialize()


@pytest.mark.asyncio
async def test_close_persists_cache(make_provider, tmp_path, calls):
    provider = make_provider()
    await provider.complete("hi")
    await provider.close()

    data = json.loads((tmp_path / "cache-data.json").read_text(encoding="utf-8"))
    assert [record["value"] for record in data.values()] == ["generated"]


@pytest.mark.asyncio
async def test_clear_cache(make_provider, tmp_path, calls):
    provider = make_provider()
    await provider.complete("hi")
    await provider.cache.flush()

    assert await provider.clear_cache() == 1
    assert not (tmp_path / "cache-data.json").exists()
    await provider.complete("hi")
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_check_models_reports_failures(make_provider, monkeypatch):
    async def fake_generation(session, base_url, model_id, token, payload, *, timeout=60.0):
        if model_id == MODEL_TIERS["deep"].id:
            raise AuthenticationError("Access forbidden. This model may require a Pro subscription.")
        return "ok"

    monkeypatch.setattr("api.huggingface.text_generation", fake_generation)
    provider = make_provider()
    results = await provider.check_models()

    assert results["fast"]["available"] is True
    assert results["balanced"]["available"] is True
    assert results["deep"]["available"] is False
    assert "Pro subscription" in results["deep"]["suggestion"]


@pytest.mark.asyncio
async def test_list_models_describes_tiers(make_provider):
    provider = make_provider()
    models = await provider.list_models()
    assert [m.metadata["tier"] for m in models] == ["fast", "balanced", "deep"]


def test_clean_response():
    assert clean_response("  text  ") == "text"
    assert clean_response("Enhanced prompt: better") == "better"
