"""Stream sources: where the narrator's text increments come from.

The engine depends on the protocol only:

    source.open(stage, context) -> TextStream
    async for chunk in text_stream: ...   # normal exhaustion = end-of-stream
    await text_stream.cancel()            # idempotent

Two implementations are provided:

    HttpStreamSource    : streams a completion over HTTP (server-sent events).
                           OpenAI-compatible ``/v1/completions`` with
                           ``stream: true``, or KoboldCpp
                           ``/api/extra/generate/stream``.
    ScriptedStreamSource: replays canned buffers in fixed-size chunks, with
                           optional failure injection. Used by tests and by
                           ``main.py --replay``.

Transport failures surface as ``TransportError`` from the iterator.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol

import httpx

from baker_street.llm import ProviderFormat, TransportError, auth_headers
from baker_street.models import Stage
from baker_street.prompts import SYSTEM_PROMPT, build_prompt

logger = logging.getLogger(__name__)


class TextStream(Protocol):
    def __aiter__(self) -> AsyncIterator[str]: ...

    async def cancel(self) -> None: ...


class StreamSource(Protocol):
    def open(self, stage: Stage, context: dict[str, Any]) -> TextStream: ...


# ---------------------------------------------------------------------------
# HttpStreamSource
# ---------------------------------------------------------------------------

_DONE = object()


def extract_event_text(line: str, provider_format: ProviderFormat) -> Any:
    """Pull the text increment out of one SSE line.

    Returns "" for lines carrying nothing (comments, event names, keep-alives)
    and ``_DONE`` for the OpenAI terminator.
    """
    line = line.strip()
    if not line.startswith("data:"):
        return ""
    payload = line[len("data:"):].strip()
    if payload == "[DONE]":
        return _DONE
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise TransportError(f"Malformed stream event: {payload[:80]!r}") from e

    if not isinstance(data, dict):
        raise TransportError(f"Malformed stream event: {payload[:80]!r}")
    if provider_format == "koboldcpp":
        return data.get("token", "")
    choices = data.get("choices") or [{}]
    if not isinstance(choices, list) or not isinstance(choices[0], dict):
        raise TransportError(f"Malformed stream event: {payload[:80]!r}")
    choice = choices[0]
    if "text" in choice:
        return choice["text"] or ""
    return (choice.get("delta") or {}).get("content") or ""


class HttpTextStream:
    def __init__(
        self,
        url: str,
        body: dict,
        headers: dict[str, str],
        provider_format: ProviderFormat,
        timeout: float,
    ) -> None:
        self._url = url
        self._body = body
        self._headers = headers
        self._format = provider_format
        self._timeout = timeout
        self._cancelled = False

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        if self._cancelled:
            return
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                async with client.stream("POST", self._url, json=self._body, headers=self._headers) as resp:
                    resp.raise_for_status()
                    async for line in resp.aiter_lines():
                        if self._cancelled:
                            logger.debug("stream cancelled url=%s", self._url)
                            return
                        text = extract_event_text(line, self._format)
                        if text is _DONE:
                            return
                        if text:
                            yield text
        except httpx.ConnectError as e:
            raise TransportError(f"Cannot connect to LLM backend at {self._url}") from e
        except httpx.HTTPStatusError as e:
            raise TransportError(f"LLM backend returned HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise TransportError(f"LLM backend timed out after {self._timeout}s") from e
        except httpx.TransportError as e:
            raise TransportError(f"Stream aborted: {e}") from e

    async def cancel(self) -> None:
        self._cancelled = True


class HttpStreamSource:
    """Opens one streaming completion per stage request."""

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "openai",
        model: str = "",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> HttpStreamSource:
        return cls(
            provider_url=config["provider_url"],
            api_key=config["api_key"],
            provider_format=config["provider_format"],
            model=config["model"],
            timeout=config["timeout"],
        )

    def _build_request(self, prompt: str) -> tuple[str, dict]:
        if self._format == "openai":
            body: dict = {
                "prompt": f"{SYSTEM_PROMPT}\n\n{prompt}",
                "stream": True,
                "temperature": 0.7,
                "max_tokens": 2000,
            }
            if self._model:
                body["model"] = self._model
            return f"{self._base_url}/v1/completions", body
        return f"{self._base_url}/api/extra/generate/stream", {
            "prompt": f"{SYSTEM_PROMPT}\n\n{prompt}",
            "max_length": 2000,
        }

    def open(self, stage: Stage, context: dict[str, Any]) -> HttpTextStream:
        url, body = self._build_request(build_prompt(stage, context))
        logger.debug("opening stream stage=%s url=%s", stage.value, url)
        return HttpTextStream(url, body, auth_headers(self._api_key), self._format, self._timeout)


# ---------------------------------------------------------------------------
# ScriptedStreamSource
# ---------------------------------------------------------------------------

def split_chunks(text: str, size: int) -> list[str]:
    if size <= 0:
        return [text]
    return [text[i:i + size] for i in range(0, len(text), size)]


class ScriptedTextStream:
    def __init__(self, chunks: list[str], fail_after: int | None, delay: float) -> None:
        self._chunks = chunks
        self._fail_after = fail_after
        self._delay = delay
        self._cancelled = False

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        for i, chunk in enumerate(self._chunks):
            if self._fail_after is not None and i >= self._fail_after:
                raise TransportError("Scripted stream aborted")
            if self._cancelled:
                return
            await asyncio.sleep(self._delay)
            yield chunk

    async def cancel(self) -> None:
        self._cancelled = True


class ScriptedStreamSource:
    """Replays canned buffers; each ``open`` of a stage takes its next buffer.

    ``chunk_size=0`` delivers each buffer in one piece. A stage with no
    buffer left yields an empty stream.
    """

    def __init__(
        self,
        scripts: dict[Stage, list[str]],
        chunk_size: int = 0,
        fail_after: int | None = None,
        delay: float = 0.0,
    ) -> None:
        self._scripts = {stage: list(buffers) for stage, buffers in scripts.items()}
        self._chunk_size = chunk_size
        self._fail_after = fail_after
        self._delay = delay
        self.opened: list[tuple[Stage, dict[str, Any]]] = []

    def open(self, stage: Stage, context: dict[str, Any]) -> ScriptedTextStream:
        self.opened.append((stage, context))
        buffers = self._scripts.get(stage, [])
        text = buffers.pop(0) if buffers else ""
        chunks = split_chunks(text, self._chunk_size) if text else []
        return ScriptedTextStream(chunks, self._fail_after, self._delay)
