"""Thin async helpers for the Hugging Face Inference API."""

from __future__ import annotations

from typing import Any, Dict

import aiohttp

from .http import handle_response

USER_AGENT = "prompt-enhancer/3.0.0"


def _headers(token: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
        "Accept": "application/json",
        "User-Agent": USER_AGENT,
    }


async def whoami(
    session: aiohttp.ClientSession,
    url: str,
    token: str,
    *,
    timeout: float = 15.0,
) -> Dict[str, Any]:
    """Validate ``token`` against the hub and return the account record."""
    async with session.get(
        url,
        headers=_headers(token),
        timeout=aiohttp.ClientTimeout(total=timeout),
    ) as resp:
        await handle_response(resp)
        return await resp.json()


async def text_generation(
    session: aiohttp.ClientSession,
    base_url: str,
    model_id: str,
    token: str,
    payload: Dict[str, Any],
    *,
    timeout: float = 60.0,
) -> str:
    """Run a text-generation request and return the generated text."""
    async with session.post(
        f"{base_url}/{model_id}",
        headers=_headers(token),
        json=payload,
        timeout=aiohttp.ClientTimeout(total=timeout),
    ) as resp:
        await handle_response(resp)
        data = await resp.json()

    if isinstance(data, list):
        first = data[0] if data else {}
        return str(first.get("generated_text", "")) if isinstance(first, dict) else ""
    if isinstance(data, dict):
        return str(data.get("generated_text", ""))
    return ""
