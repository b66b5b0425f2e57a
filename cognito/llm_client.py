"""Provider-agnostic chat client with streaming and native tool calls."""
from __future__ import annotations

import asyncio
import json
import time
import uuid
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

import httpx

from cognito.config import settings
from cognito.models.chat import ToolCall
from cognito.models.schemas import ChatConfig
from cognito.services.logger import log_llm_call, logger

OPENAI_COMPATIBLE_URLS = {
    "groq": "https://api.groq.com/openai/v1",
    "gemini": "https://generativelanguage.googleapis.com/v1beta/openai",
    "openai": "https://api.openai.com/v1",
}


class LLMRequestError(Exception):
    """Non-2xx response or an error payload from the provider."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"LLM request failed with status {status_code}: {body[:500]}")


@dataclass(frozen=True)
class Provider:
    host: str
    base_url: str
    api_key: str

    @property
    def is_ollama(self) -> bool:
        return self.host == "ollama"


def resolve_provider(host: str) -> Provider:
    """Map a host name onto its chat-completions base URL and key."""
    host = (host or settings.default_host).lower()
    if host in OPENAI_COMPATIBLE_URLS:
        key = getattr(settings, f"{host}_api_key")
        return Provider(host, OPENAI_COMPATIBLE_URLS[host], key)
    if host == "openrouter":
        base_url = settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1"
        return Provider(host, base_url, settings.openrouter_api_key)
    if host == "lmstudio":
        return Provider(host, f"{settings.lmstudio_url.rstrip('/')}/v1", "lm-studio")
    if host == "ollama":
        return Provider(host, settings.ollama_url.rstrip("/"), "")
    if host == "custom":
        if not settings.custom_endpoint:
            raise ValueError("Custom host selected but CUSTOM_ENDPOINT is not configured")
        return Provider(host, settings.custom_endpoint.rstrip("/"), settings.custom_api_key)
    raise ValueError(f"Unsupported LLM host: {host}")


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class FinalMessage:
    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)


def _ollama_error(payload: dict[str, Any]) -> None:
    if payload.get("error"):
        raise LLMRequestError(200, str(payload["error"]))


def _decode_ndjson_line(line: str) -> dict[str, Any] | None:
    line = line.strip()
    if not line:
        return None
    try:
        payload = json.loads(line)
    except json.JSONDecodeError:
        logger.debug(f"Skipping undecodable stream line: {line[:200]}")
        return None
    if not isinstance(payload, dict):
        return None
    _ollama_error(payload)
    return payload


def _ndjson_delta(payload: dict[str, Any]) -> tuple[str, bool]:
    message = payload.get("message") or {}
    return message.get("content") or "", bool(payload.get("done"))


def _ollama_messages(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Adapt chat-completions history to Ollama's native /api/chat shape.

    Ollama wants tool-call arguments as a JSON object and a string `content`.
    """
    converted = []
    for message in messages:
        message = dict(message)
        if message.get("content") is None:
            message["content"] = ""
        if message.get("tool_calls"):
            message["tool_calls"] = [_ollama_tool_call(tc) for tc in message["tool_calls"]]
        converted.append(message)
    return converted


def _ollama_tool_call(tool_call: dict[str, Any]) -> dict[str, Any]:
    function = dict(tool_call.get("function") or {})
    arguments = function.get("arguments")
    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments) if arguments.strip() else {}
        except json.JSONDecodeError:
            logger.warning(f"Tool-call arguments are not JSON, sending empty object: {arguments[:200]}")
            arguments = {}
    function["arguments"] = arguments if isinstance(arguments, dict) else {}
    return {"function": function}


class ChatStream:
    """Async context manager over one streamed completion.

    Iterate `text_stream` for text deltas, then call `get_final_message()`
    for the accumulated text, native tool calls and usage.
    """

    def __init__(self, model: str, caller: str):
        self.model = model
        self.caller = caller
        self._usage = Usage()
        self._text_parts: list[str] = []
        self._tool_calls: list[ToolCall] = []
        self._finished = False
        self._started = 0.0
        self._stack = AsyncExitStack()

    async def __aenter__(self) -> "ChatStream":
        self._started = time.perf_counter()
        try:
            await self._open(self._stack)
        except BaseException as e:
            await self.__aexit__(type(e), e, e.__traceback__)
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self._stack.aclose()
        duration_ms = int((time.perf_counter() - self._started) * 1000)
        if exc is None:
            status, error = "success", None
        else:
            status, error = ("cancelled", None) if isinstance(exc, asyncio.CancelledError) else ("error", str(exc))
        log_llm_call(
            model=self.model,
            caller=self.caller,
            prompt_tokens=self._usage.input_tokens,
            completion_tokens=self._usage.output_tokens,
            duration_ms=duration_ms,
            status=status,
            error=error,
        )

    async def _open(self, stack: AsyncExitStack) -> None:
        raise NotImplementedError

    def _iter_deltas(self) -> AsyncIterator[str]:
        raise NotImplementedError

    async def _iter_text(self) -> AsyncIterator[str]:
        async for text in self._iter_deltas():
            self._text_parts.append(text)
            yield text
        self._finished = True

    @property
    def text_stream(self) -> AsyncIterator[str]:
        return self._iter_text()

    async def get_final_message(self) -> FinalMessage:
        if not self._finished:
            async for _ in self.text_stream:
                pass
        return FinalMessage(
            content="".join(self._text_parts),
            tool_calls=list(self._tool_calls),
            usage=self._usage,
        )


class OpenAIChatStream(ChatStream):
    """Stream from any OpenAI-compatible endpoint through the openai SDK."""

    def __init__(self, openai_client: Any, request: dict[str, Any], caller: str):
        super().__init__(request["model"], caller)
        self._client = openai_client
        self._request = request
        self._stream: Any | None = None
        self._partial_calls: dict[int, dict[str, str]] = {}

    async def _open(self, stack: AsyncExitStack) -> None:
        from openai import APIStatusError

        try:
            self._stream = await self._client.chat.completions.create(
                **self._request,
                stream=True,
                stream_options={"include_usage": True},
            )
        except APIStatusError as e:
            raise LLMRequestError(e.status_code, str(e.body or e.message)) from e
        stack.push_async_callback(self._stream.close)

    async def _iter_deltas(self) -> AsyncIterator[str]:
        if self._stream is None:
            return
        async for chunk in self._stream:
            usage = getattr(chunk, "usage", None)
            if usage:
                self._usage = Usage(
                    input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                    output_tokens=getattr(usage, "completion_tokens", 0) or 0,
                )
            choices = getattr(chunk, "choices", None) or []
            if not choices:
                continue
            delta = getattr(choices[0], "delta", None)
            if not delta:
                continue
            for tc in getattr(delta, "tool_calls", None) or []:
                self._accumulate_tool_call(tc)
            text = getattr(delta, "content", None)
            if text:
                yield text
        self._tool_calls = [
            ToolCall(id=part["id"] or f"call_{uuid.uuid4().hex[:12]}", name=part["name"], arguments=part["arguments"] or "{}")
            for _, part in sorted(self._partial_calls.items())
            if part["name"]
        ]

    def _accumulate_tool_call(self, tc: Any) -> None:
        # Tool calls arrive as fragments keyed by index.
        index = getattr(tc, "index", 0) or 0
        part = self._partial_calls.setdefault(index, {"id": "", "name": "", "arguments": ""})
        if getattr(tc, "id", None):
            part["id"] = tc.id
        function = getattr(tc, "function", None)
        if function is not None:
            if getattr(function, "name", None):
                part["name"] += function.name
            if getattr(function, "arguments", None):
                part["arguments"] += function.arguments


class OllamaChatStream(ChatStream):
    """Stream newline-delimited JSON from Ollama's native /api/chat."""

    def __init__(self, http_client: httpx.AsyncClient, url: str, body: dict[str, Any], caller: str):
        super().__init__(body["model"], caller)
        self._http = http_client
        self._url = url
        self._body = body
        self._response: httpx.Response | None = None

    async def _open(self, stack: AsyncExitStack) -> None:
        response = await stack.enter_async_context(
            self._http.stream("POST", self._url, json=self._body)
        )
        if response.status_code >= 400:
            body = (await response.aread()).decode("utf-8", errors="replace")
            raise LLMRequestError(response.status_code, body)
        self._response = response

    async def _iter_deltas(self) -> AsyncIterator[str]:
        if self._response is None:
            return
        async for line in self._response.aiter_lines():
            payload = _decode_ndjson_line(line)
            if payload is None:
                continue
            text, done = _ndjson_delta(payload)
            if text:
                yield text
            for tc in (payload.get("message") or {}).get("tool_calls") or []:
                function = tc.get("function") or {}
                arguments = function.get("arguments") or {}
                self._tool_calls.append(
                    ToolCall(
                        id=f"call_{uuid.uuid4().hex[:12]}",
                        name=function.get("name", ""),
                        arguments=arguments if isinstance(arguments, str) else json.dumps(arguments),
                    )
                )
            if done:
                self._usage = Usage(
                    input_tokens=payload.get("prompt_eval_count", 0) or 0,
                    output_tokens=payload.get("eval_count", 0) or 0,
                )
                break


class LLMClient:
    """Chat client shared by the controller, planner and search optimizer."""

    def __init__(self, http_client: httpx.AsyncClient | None = None):
        self._http = http_client
        self._openai_clients: dict[tuple[str, str], Any] = {}

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=settings.llm_request_timeout_s)
        return self._http

    def _openai_client(self, provider: Provider) -> Any:
        from openai import AsyncOpenAI

        cache_key = (provider.base_url, provider.api_key)
        if cache_key not in self._openai_clients:
            self._openai_clients[cache_key] = AsyncOpenAI(
                api_key=provider.api_key or "not-needed",
                base_url=provider.base_url,
                timeout=settings.llm_request_timeout_s,
            )
        return self._openai_clients[cache_key]

    def stream_chat(
        self,
        config: ChatConfig,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        caller: str = "turn_controller",
    ) -> ChatStream:
        provider = resolve_provider(config.host)
        if provider.is_ollama:
            body: dict[str, Any] = {
                "model": config.model_id,
                "messages": _ollama_messages(messages),
                "stream": True,
                "options": {
                    "temperature": config.temperature,
                    "top_p": config.top_p,
                    "num_predict": config.max_tokens,
                    "presence_penalty": config.presence_penalty,
                },
            }
            if tools:
                body["tools"] = tools
            return OllamaChatStream(self.http, f"{provider.base_url}/api/chat", body, caller)

        request: dict[str, Any] = {
            "model": config.model_id,
            "messages": messages,
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "top_p": config.top_p,
            "presence_penalty": config.presence_penalty,
        }
        if tools:
            request["tools"] = tools
        return OpenAIChatStream(self._openai_client(provider), request, caller)

    async def complete(
        self,
        prompt: str,
        config: ChatConfig | None = None,
        caller: str = "complete",
    ) -> str:
        """Single non-streaming completion of a user prompt."""
        config = config or ChatConfig()
        provider = resolve_provider(config.host)
        messages = [{"role": "user", "content": prompt}]
        start = time.perf_counter()
        prompt_tokens = completion_tokens = 0
        try:
            if provider.is_ollama:
                response = await self.http.post(
                    f"{provider.base_url}/api/chat",
                    json={"model": config.model_id, "messages": messages, "stream": False},
                )
                if response.status_code >= 400:
                    raise LLMRequestError(response.status_code, response.text)
                data = response.json()
                _ollama_error(data)
                prompt_tokens = data.get("prompt_eval_count", 0) or 0
                completion_tokens = data.get("eval_count", 0) or 0
                content = (data.get("message") or {}).get("content") or ""
            else:
                from openai import APIStatusError

                try:
                    response = await self._openai_client(provider).chat.completions.create(
                        model=config.model_id,
                        messages=messages,
                        temperature=config.temperature,
                    )
                except APIStatusError as e:
                    raise LLMRequestError(e.status_code, str(e.body or e.message)) from e
                usage = getattr(response, "usage", None)
                prompt_tokens = getattr(usage, "prompt_tokens", 0) or 0
                completion_tokens = getattr(usage, "completion_tokens", 0) or 0
                content = response.choices[0].message.content or ""
        except Exception as e:
            log_llm_call(
                model=config.model_id,
                caller=caller,
                duration_ms=int((time.perf_counter() - start) * 1000),
                status="error",
                error=str(e),
            )
            raise

        log_llm_call(
            model=config.model_id,
            caller=caller,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            duration_ms=int((time.perf_counter() - start) * 1000),
        )
        return content

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
        for client in self._openai_clients.values():
            await client.close()
