import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))  # noqa: E402

import pytest  # noqa: E402

from core.enhancer import PromptEnhancer  # noqa: E402
from core.providers import ProviderRegistry  # noqa: E402
from core.templates import TEMPLATES, enhance_with_template  # noqa: E402
from exceptions import BackendConnectionError, ServerError  # noqa: E402
from tests.mocks import MockProvider  # noqa: E402


def build(*providers):
    registry = ProviderRegistry()
    for provider in providers:
        registry.register_provider(provider.name, lambda config, p=provider: p)
    return registry


@pytest.mark.asyncio
async def test_empty_registry_uses_template():
    result = await PromptEnhancer(ProviderRegistry()).enhance("sort a list", "coding")

    assert result.source == "template"
    assert result.used_fallback
    assert result.text == enhance_with_template("sort a list", "coding")
    assert result.request_id


@pytest.mark.asyncio
async def test_ai_disabled_skips_providers():
    alpha = MockProvider("alpha")
    result = await PromptEnhancer(build(alpha)).enhance("hello", use_ai=False)

    assert result.source == "template"
    assert alpha.prompts == []


@pytest.mark.asyncio
async def test_healthy_default_is_used():
    alpha = MockProvider("alpha", responses=["better prompt"])
    result = await PromptEnhancer(build(alpha, MockProvider("beta"))).enhance("hello")

    assert result.source == "ai"
    assert result.provider == "alpha"
    assert result.text == "better prompt"
    assert result.errors == []


@pytest.mark.asyncio
async def test_unhealthy_default_is_skipped():
    alpha = MockProvider("alpha", healthy=False)
    beta = MockProvider("beta", responses=["from beta"])
    result = await PromptEnhancer(build(alpha, beta)).enhance("hello")

    assert result.provider == "beta"
    assert result.text == "from beta"
    assert alpha.prompts == []


@pytest.mark.asyncio
async def test_failing_provider_falls_over():
    alpha = MockProvider("alpha", error=ServerError("alpha broke"))
    beta = MockProvider("beta", responses=["from beta"])
    result = await PromptEnhancer(build(alpha, beta)).enhance("hello")

    assert result.source == "ai"
    assert result.provider == "beta"
    assert result.errors == ["alpha: alpha broke"]


@pytest.mark.asyncio
async def test_all_providers_failing_uses_template():
    registry = build(
        MockProvider("alpha", error=BackendConnectionError("alpha down")),
        MockProvider("beta", error=ServerError("beta broke")),
    )
    result = await PromptEnhancer(registry).enhance("hello", "analysis")

    assert result.source == "template"
    assert result.text == TEMPLATES["analysis"].format(prompt="hello")
    assert result.errors == ["alpha: alpha down", "beta: beta broke"]


@pytest.mark.asyncio
async def test_explicit_provider_is_used_alone():
    alpha = MockProvider("alpha")
    beta = MockProvider("beta", responses=["from beta"])
    result = await PromptEnhancer(build(alpha, beta)).enhance("hello", provider="beta")

    assert result.provider == "beta"
    assert alpha.prompts == []


@pytest.mark.asyncio
async def test_failing_explicit_provider_uses_template():
    alpha = MockProvider("alpha")
    beta = MockProvider("beta", error=ServerError("beta broke"))
    result = await PromptEnhancer(build(alpha, beta)).enhance("hello", provider="beta")

    assert result.source == "template"
    assert alpha.prompts == []
    assert result.errors == ["beta: beta broke"]


@pytest.mark.asyncio
async def test_unknown_explicit_provider_uses_template():
    result = await PromptEnhancer(build(MockProvider("alpha"))).enhance("hello", provider="gamma")
    assert result.source == "template"
    assert "not found" in result.errors[0]


@pytest.mark.asyncio
async def test_options_reach_provider():
    alpha = MockProvider("alpha")
    await PromptEnhancer(build(alpha)).enhance("hello", model="tiny", use_cache=False)
    assert alpha.options[0] == {"model": "tiny", "use_cache": False}


@pytest.mark.asyncio
async def test_prompt_too_long():
    enhancer = PromptEnhancer(ProviderRegistry(), max_prompt_length=10)
    with pytest.raises(ValueError, match="too long"):
        await enhancer.enhance("x" * 11)


@pytest.mark.asyncio
async def test_empty_prompt():
    with pytest.raises(ValueError):
        await PromptEnhancer(ProviderRegistry()).enhance("   ")


@pytest.mark.asyncio
async def test_unknown_mode():
    with pytest.raises(ValueError, match="Unknown mode"):
        await PromptEnhancer(ProviderRegistry()).enhance("hello", "poetry")


def test_unknown_template_mode_uses_balanced():
    assert enhance_with_template("hi", "nope") == enhance_with_template("hi", "balanced")
