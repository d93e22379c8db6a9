"""Thin async helpers for the Ollama HTTP API."""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Dict, List

import aiohttp

from .http import handle_response


def _timeout(seconds: float) -> aiohttp.ClientTimeout:
    return aiohttp.ClientTimeout(total=seconds)


async def get_version(
    session: aiohttp.ClientSession, base_url: str, *, timeout: float = 15.0
) -> str:
    """Return the daemon version string."""
    async with session.get(f"{base_url}/api/version", timeout=_timeout(timeout)) as resp:
        await handle_response(resp)
        data = await resp.json()
    return str(data.get("version", "unknown"))


async def list_tags(
    session: aiohttp.ClientSession, base_url: str, *, timeout: float = 15.0
) -> List[Dict[str, Any]]:
    """Return the raw model records installed in the local registry."""
    async with session.get(f"{base_url}/api/tags", timeout=_timeout(timeout)) as resp:
        await handle_response(resp)
        data = await resp.json()
    return list(data.get("models") or [])


async def _iter_ndjson(resp: aiohttp.ClientResponse) -> AsyncIterator[Dict[str, Any]]:
    async for raw in resp.content:
        line = raw.decode("utf-8").strip()
        if not line:
            continue
        try:
            yield json.loads(line)
        except json.JSONDecodeError:
            continue


async def pull(
    session: aiohttp.ClientSession,
    base_url: str,
    name: str,
    *,
    connect_timeout: float = 15.0,
    read_timeout: float = 120.0,
) -> AsyncIterator[Dict[str, Any]]:
    """Start a model download and yield its progress records.

    A download has no overall deadline, but connecting and each wait for the
    next progress line are bounded.
    """
    timeout = aiohttp.ClientTimeout(
        total=None, sock_connect=connect_timeout, sock_read=read_timeout
    )
    async with session.post(
        f"{base_url}/api/pull", json={"name": name}, timeout=timeout
    ) as resp:
        await handle_response(resp)
        async for record in _iter_ndjson(resp):
            yield record


async def generate(
    session: aiohttp.ClientSession,
    base_url: str,
    payload: Dict[str, Any],
    *,
    timeout: float = 120.0,
) -> Dict[str, Any]:
    """Run a non-streaming generation request."""
    body = dict(payload, stream=False)
    async with session.post(
        f"{base_url}/api/generate", json=body, timeout=_timeout(timeout)
    ) as resp:
        await handle_response(resp)
        return await resp.json()


async def stream_generate(
    session: aiohttp.ClientSession,
    base_url: str,
    payload: Dict[str, Any],
    *,
    timeout: float = 120.0,
) -> AsyncIterator[str]:
    """Yield response fragments of a streaming generation request."""
    body = dict(payload, stream=True)
    async with session.post(
        f"{base_url}/api/generate", json=body, timeout=_timeout(timeout)
    ) as resp:
        await handle_response(resp)
        async for record in _iter_ndjson(resp):
            if record.get("response"):
                yield record["response"]


async def show(
    session: aiohttp.ClientSession,
    base_url: str,
    name: str,
    *,
    timeout: float = 15.0,
) -> Dict[str, Any]:
    """Return details for an installed model."""
    async with session.post(
        f"{base_url}/api/show", json={"name": name}, timeout=_timeout(timeout)
    ) as resp:
        await handle_response(resp)
        return await resp.json()
