"""Google Gemini generation callback: POST /v1beta/models/{model}:generateContent.

The key travels as a ``key`` query parameter. Every failure is raised as a
GenerationError whose message carries the HTTP status, the Google status
name and the service's message, so the failover classifier sees the same
text a human would.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from credential_failover.models import GenerationOutcome
from credential_failover.orchestrator import FailoverOrchestrator

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

_DATA_URI = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.+)$", re.DOTALL)

# Loggers that print request URLs, and with them the key= parameter, at DEBUG
_TRANSPORT_LOGGERS = ("httpx", "httpcore")


class GenerationError(Exception):
    """A generation call failed. The message is what the classifier sees."""


def quiet_transport_loggers() -> None:
    for name in _TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def text_part(text: str) -> dict:
    return {"text": text}


def media_part(data_uri: str) -> dict:
    """Inline media part from a ``data:<mime>;base64,<data>`` URI."""
    m = _DATA_URI.match(data_uri.strip())
    if not m:
        raise ValueError("Expected a data URI of the form 'data:<mimetype>;base64,<data>'")
    try:
        base64.b64decode(m.group("data"), validate=True)
    except binascii.Error as exc:
        raise ValueError(f"Data URI payload is not valid base64: {exc}") from None
    return {"inline_data": {"mime_type": m.group("mime"), "data": m.group("data")}}


@dataclass(frozen=True)
class GenerationRequest:
    parts: list[dict]
    model: str = "gemini-2.0-flash"
    config: dict = field(default_factory=dict)

    def body(self) -> dict:
        payload: dict[str, Any] = {"contents": [{"role": "user", "parts": self.parts}]}
        if self.config:
            payload["generationConfig"] = self.config
        return payload


@dataclass(frozen=True)
class GenerationResponse:
    text: str
    raw: dict = field(repr=False)

    def to_dict(self) -> dict:
        return {"text": self.text}


def _safe_json(resp: httpx.Response) -> dict:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _extract_text(data: dict) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts if isinstance(p, dict))


class GeminiClient:
    """One-key Gemini client bound to a shared httpx.AsyncClient."""

    def __init__(self, api_key: str, client: httpx.AsyncClient, base_url: str = GEMINI_BASE_URL):
        self._api_key = api_key
        self._client = client
        self._base_url = base_url.rstrip("/")
        quiet_transport_loggers()

    def __repr__(self) -> str:
        return f"GeminiClient(base_url={self._base_url!r})"

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        url = f"{self._base_url}/models/{request.model}:generateContent"
        try:
            resp = await self._client.post(url, params={"key": self._api_key}, json=request.body())
        except httpx.TimeoutException as exc:
            raise GenerationError(f"Network timeout: {type(exc).__name__}") from None
        except httpx.TransportError as exc:
            raise GenerationError(f"Network error: {type(exc).__name__}: {exc}") from None

        data = _safe_json(resp)
        if resp.status_code != 200:
            err = data.get("error") or {}
            status = err.get("status") or resp.reason_phrase
            message = err.get("message") or "no error message"
            raise GenerationError(f"HTTP {resp.status_code} {status}: {message}")
        return GenerationResponse(text=_extract_text(data), raw=data)


async def _all_or_nothing(coros: list) -> list:
    """Run coroutines concurrently, all or nothing.

    The first failure cancels the others and is re-raised once they have
    stopped, so no request outlives the attempt of the key it was sent with.
    """
    if not coros:
        return []
    tasks = [asyncio.ensure_future(c) for c in coros]
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    finally:
        for t in tasks:
            if not t.done():
                t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
    for t in tasks:
        if not t.cancelled() and t.exception() is not None:
            raise t.exception()
    return [t.result() for t in tasks]


async def generate_single_with_failover(
    orchestrator: FailoverOrchestrator,
    request: GenerationRequest,
    client: httpx.AsyncClient,
    user_credential: Optional[str] = None,
    cancel: Optional[asyncio.Event] = None,
) -> GenerationOutcome:
    async def _call(key: str) -> GenerationResponse:
        return await GeminiClient(key, client).generate(request)

    return await orchestrator.run(_call, user_credential, cancel)


async def generate_multiple_with_failover(
    orchestrator: FailoverOrchestrator,
    requests: list[GenerationRequest],
    client: httpx.AsyncClient,
    user_credential: Optional[str] = None,
    cancel: Optional[asyncio.Event] = None,
) -> GenerationOutcome:
    """All requests in parallel under one key; any failure fails the key."""
    async def _call(key: str) -> list[GenerationResponse]:
        gemini = GeminiClient(key, client)
        return await _all_or_nothing([gemini.generate(r) for r in requests])

    return await orchestrator.run(_call, user_credential, cancel)


async def generate_sequential_with_failover(
    orchestrator: FailoverOrchestrator,
    requests: list[GenerationRequest],
    client: httpx.AsyncClient,
    user_credential: Optional[str] = None,
    cancel: Optional[asyncio.Event] = None,
) -> GenerationOutcome:
    """Requests one after another under one key, e.g. image batches."""
    async def _call(key: str) -> list[GenerationResponse]:
        gemini = GeminiClient(key, client)
        results = []
        for r in requests:
            results.append(await gemini.generate(r))
        return results

    return await orchestrator.run(_call, user_credential, cancel)
