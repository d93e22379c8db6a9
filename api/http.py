"""Shared HTTP response handling for backend helpers."""

from __future__ import annotations

from typing import Any

import aiohttp

from exceptions import (
    AuthenticationError,
    ModelNotFoundError,
    ProviderError,
    RateLimitError,
    ServerError,
)

MAX_DETAIL_LENGTH = 200


async def _error_detail(resp: aiohttp.ClientResponse) -> str:
    try:
        data: Any = await resp.json(content_type=None)
    except Exception:
        return ""
    if isinstance(data, dict) and isinstance(data.get("error"), str):
        return data["error"][:MAX_DETAIL_LENGTH]
    return ""


async def handle_response(resp: aiohttp.ClientResponse) -> None:
    """Raise the matching provider error for a non-success response.

    Only short, backend-supplied ``error`` strings are surfaced; bodies,
    URLs and headers are never copied into the message.
    """
    if resp.status < 400:
        return
    if resp.status == 429:
        raise RateLimitError()
    if resp.status in (401, 403):
        if resp.status == 403:
            raise AuthenticationError(
                "Access forbidden. This model may require a Pro subscription."
            )
        raise AuthenticationError()
    detail = await _error_detail(resp)
    if resp.status == 404:
        raise ModelNotFoundError(detail or None)
    if resp.status >= 500:
        raise ServerError()
    raise ProviderError(detail or f"API request failed with status {resp.status}")
