"""
OpenAI-compatible chat-completion provider.

Speaks the ``/chat/completions`` wire protocol used by OpenAI and by most
self-hosted gateways (vLLM, LM Studio, LocalAI, LiteLLM).  Streaming
responses arrive as Server-Sent Events; each ``data:`` line is turned into
a ``StreamChunk``.

Only ``httpx`` is needed, there is no dependency on the ``openai`` SDK.
"""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator

import httpx

from conduit.llm.providers.base import Provider
from conduit.llm.types import Message, RawToolDelta, StreamChunk, ToolCall
from conduit.types import ProviderError, Usage

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


class OpenAICompatProvider(Provider):
    """
    Parameters
    ----------
    url:
        API base URL, e.g. ``"https://api.openai.com/v1"``.
    model:
        Value of the request's ``model`` field.
    api_key:
        Bearer token.  Empty for unauthenticated local servers.
    timeout:
        Per-request timeout in seconds.
    max_retries:
        Extra attempts after a 429, a 5xx or a connection failure.  Once a
        stream has produced a chunk it is never retried.
    max_tokens, temperature:
        Sampling settings sent with every request; ``None`` omits them.
    transport:
        ``httpx`` transport override, used by tests.
    """

    def __init__(
        self,
        url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o",
        api_key: str = "",
        timeout: float = 120.0,
        max_retries: int = 2,
        max_tokens: int | None = 4000,
        temperature: float | None = 0.7,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoint = f"{url.rstrip('/')}/chat/completions"
        self._model = model
        self._api_key = api_key
        self._timeout = timeout
        self._max_retries = max_retries
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._transport = transport

    @property
    def name(self) -> str:
        return "openai-compat"

    @property
    def model(self) -> str:
        return self._model

    async def chat(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
        stream: bool = True,
    ) -> AsyncIterator[StreamChunk]:
        body = self._request_body(messages, tools, stream)
        if stream:
            async for chunk in self._stream(body):
                yield chunk
        else:
            yield await self._complete(body)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _http(self) -> httpx.AsyncClient:
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return httpx.AsyncClient(
            timeout=self._timeout, headers=headers, transport=self._transport
        )

    def _request_body(
        self, messages: list[Message], tools: list[dict] | None, stream: bool
    ) -> dict:
        body: dict = {
            "model": self._model,
            "messages": [wire_message(m) for m in messages],
            "stream": stream,
        }
        if stream:
            body["stream_options"] = {"include_usage": True}
        if self._max_tokens:
            body["max_tokens"] = self._max_tokens
        if self._temperature is not None:
            body["temperature"] = self._temperature
        if tools:
            body["tools"] = tools
            body["tool_choice"] = "auto"
        logger.debug(
            "Chat request: model=%s messages=%d tools=%d stream=%s",
            self._model,
            len(messages),
            len(tools or []),
            stream,
        )
        return body

    def _retry_later(self, attempt: int, error: Exception) -> bool:
        if attempt >= self._max_retries:
            return False
        logger.warning("Provider attempt %d failed, retrying: %s", attempt + 1, error)
        return True

    async def _stream(self, body: dict) -> AsyncIterator[StreamChunk]:
        last_error: Exception | None = None
        for attempt in range(1 + self._max_retries):
            started = False
            try:
                async with self._http() as client:
                    async with client.stream("POST", self._endpoint, json=body) as resp:
                        if resp.is_error:
                            await resp.aread()
                            last_error = _status_error(resp)
                            if _retryable(resp.status_code) and self._retry_later(
                                attempt, last_error
                            ):
                                continue
                            raise last_error
                        async for chunk in iter_sse_chunks(resp.aiter_lines()):
                            started = True
                            yield chunk
                        return
            except httpx.TransportError as exc:
                last_error = exc
                if started or not self._retry_later(attempt, exc):
                    break
        raise _as_provider_error(last_error)

    async def _complete(self, body: dict) -> StreamChunk:
        last_error: Exception | None = None
        for attempt in range(1 + self._max_retries):
            try:
                async with self._http() as client:
                    resp = await client.post(self._endpoint, json=body)
            except httpx.TransportError as exc:
                last_error = exc
                if self._retry_later(attempt, exc):
                    continue
                break

            if resp.is_error:
                last_error = _status_error(resp)
                if _retryable(resp.status_code) and self._retry_later(attempt, last_error):
                    continue
                raise last_error

            try:
                data = resp.json()
            except ValueError as exc:
                raise ProviderError(f"Provider returned invalid JSON: {exc}") from exc
            return chunk_from_completion(data)
        raise _as_provider_error(last_error)


# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------


def wire_message(msg: Message) -> dict:
    """Serialize one ``Message`` for the request's ``messages`` array."""
    out: dict = {"role": msg.role, "content": msg.content}
    if msg.tool_calls:
        # assistant turns that only call tools carry null content
        out["content"] = msg.content or None
        out["tool_calls"] = [
            {
                "id": tc.id,
                "type": "function",
                "function": {"name": tc.name, "arguments": _wire_arguments(tc)},
            }
            for tc in msg.tool_calls
        ]
    if msg.tool_call_id:
        out["tool_call_id"] = msg.tool_call_id
    return out


def _wire_arguments(tc: ToolCall) -> str:
    # echo what the model sent, even when it did not parse
    return tc.raw_arguments or json.dumps(tc.arguments)


async def iter_sse_chunks(lines: AsyncIterator[str]) -> AsyncIterator[StreamChunk]:
    """
    Turn an SSE line stream into ``StreamChunk`` objects.

    Only ``data:`` lines matter.  ``data: [DONE]`` ends the stream; a stream
    that closes without it still ends with a ``done`` chunk.
    """
    async for line in lines:
        line = line.rstrip("\r")
        if not line.startswith("data:"):
            continue

        payload = line[len("data:"):].strip()
        if payload == DONE_SENTINEL:
            yield StreamChunk(done=True)
            return

        try:
            event = json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("Skipping malformed SSE event: %s", payload[:200])
            continue

        if event.get("error") and not event.get("choices"):
            error = event["error"]
            detail = error.get("message") if isinstance(error, dict) else error
            raise ProviderError(f"Provider stream error: {detail}")

        chunk = chunk_from_event(event)
        if chunk is not None:
            yield chunk

    yield StreamChunk(done=True)


def chunk_from_event(event: dict) -> StreamChunk | None:
    """One streamed ``chat.completion.chunk`` as a ``StreamChunk``."""
    usage = _usage(event.get("usage"))
    choices = event.get("choices")
    if not choices:
        # include_usage sends a trailing event with an empty choices list
        return StreamChunk(usage=usage) if usage else None

    delta = choices[0].get("delta") or {}
    return StreamChunk(
        delta=delta.get("content") or "",
        tool_deltas=_tool_deltas(delta.get("tool_calls")),
        usage=usage,
    )


def chunk_from_completion(data: dict) -> StreamChunk:
    """A whole non-streamed completion as a single final ``StreamChunk``."""
    choices = data.get("choices") or []
    if not choices:
        raise ProviderError("No response from provider")

    message = choices[0].get("message") or {}
    return StreamChunk(
        delta=message.get("content") or "",
        tool_deltas=_tool_deltas(message.get("tool_calls"), positional=True),
        usage=_usage(data.get("usage")),
        done=True,
    )


def _tool_deltas(raw_calls: list[dict] | None, positional: bool = False) -> list[RawToolDelta] | None:
    # Complete messages carry no per-call index; their list position is the index.
    if not raw_calls:
        return None
    deltas = []
    for pos, raw in enumerate(raw_calls):
        fn = raw.get("function") or {}
        deltas.append(
            RawToolDelta(
                call_index=pos if positional else raw.get("index", 0),
                id=raw.get("id"),
                name_delta=fn.get("name") or "",
                args_delta=fn.get("arguments") or "",
            )
        )
    return deltas


def _usage(raw: dict | None) -> Usage | None:
    if not raw:
        return None
    prompt = int(raw.get("prompt_tokens") or 0)
    completion = int(raw.get("completion_tokens") or 0)
    total = int(raw.get("total_tokens") or prompt + completion)
    return Usage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)


def _retryable(status: int) -> bool:
    return status == 429 or status >= 500


def _status_error(resp: httpx.Response) -> ProviderError:
    detail = ""
    try:
        payload = resp.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        error = payload.get("error")
        detail = error.get("message", "") if isinstance(error, dict) else str(error or "")
    message = f"HTTP {resp.status_code}: {detail}" if detail else f"HTTP {resp.status_code}"
    return ProviderError(message, status_code=resp.status_code)


def _as_provider_error(exc: Exception | None) -> ProviderError:
    if isinstance(exc, ProviderError):
        return exc
    if exc is None:
        return ProviderError("Provider request failed")
    return ProviderError(f"Provider connection failed: {exc}")
