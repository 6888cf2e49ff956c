"""Remote backend adapter: OpenAI-style chat completions over SSE or JSON."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable

import httpx

from ..config import RemoteBackendConfig
from ..logging_utils import get_logger
from .context import RequestContext
from .envelope import (
    NO_CONTENT_PLACEHOLDER,
    BufferedResponse,
    GatewayResponse,
    StreamedResponse,
    error_envelope,
    make_envelope,
    terminal_envelope,
)
from .errors import (
    BackendUnavailable,
    GatewayError,
    UpstreamError,
    UpstreamProtocolViolation,
    model_not_found,
)
from .models import ChatRequest
from .router import DEFAULT_VERSION_TAG, strip_version_tag

_LOG = get_logger("gateway.remote")

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


@dataclass
class StreamState:
    """Per-request progress of one remote stream."""

    parts: list[str] = field(default_factory=list)
    completed: bool = False

    @property
    def content(self) -> str:
        return "".join(self.parts)


class RemoteAdapter:
    def __init__(
        self,
        config: RemoteBackendConfig,
        *,
        version_tag: str = DEFAULT_VERSION_TAG,
        http_client_factory: Callable[..., httpx.AsyncClient] | None = None,
    ) -> None:
        self._config = config
        self._version_tag = version_tag
        self._client_factory = http_client_factory

    @property
    def label(self) -> str:
        return self._config.label

    def _client(self) -> httpx.AsyncClient:
        if self._client_factory:
            return self._client_factory(timeout_s=self._config.timeout_s)
        return httpx.AsyncClient(timeout=httpx.Timeout(self._config.timeout_s))

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        api_key = self._config.resolve_api_key()
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        if self._config.headers:
            headers.update(self._config.headers)
        return headers

    def translate(self, request: ChatRequest, *, stream: bool) -> dict[str, Any]:
        body = request.upstream_body()
        body["model"] = strip_version_tag(request.model, self._version_tag)
        body["stream"] = stream
        return body

    async def handle(self, request: ChatRequest, ctx: RequestContext) -> GatewayResponse:
        _LOG.info(
            "Forwarding to {} for model {} (request_id={})",
            self.label,
            strip_version_tag(request.model, self._version_tag),
            ctx.request_id,
        )
        if request.stream:
            return StreamedResponse(self._stream(request, ctx), route="remote")
        return await self._buffered(request, ctx)

    async def _buffered(self, request: ChatRequest, ctx: RequestContext) -> BufferedResponse:
        body = self.translate(request, stream=False)
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self._config.base_url}/chat/completions",
                    json=body,
                    headers=self._headers(),
                )
        except httpx.HTTPError as exc:
            raise self._transport_error(exc) from exc
        if response.status_code >= 400:
            raise self._status_error(response.status_code, response.content, request.model)
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamProtocolViolation(f"Invalid JSON in {self.label} response") from exc
        content = self._first_choice_content(data)
        return BufferedResponse(terminal_envelope(request.model, content or NO_CONTENT_PLACEHOLDER))

    async def _stream(
        self,
        request: ChatRequest,
        ctx: RequestContext,
    ) -> AsyncIterator[dict[str, Any]]:
        model = request.model
        state = StreamState()
        body = self.translate(request, stream=True)
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    f"{self._config.base_url}/chat/completions",
                    json=body,
                    headers=self._headers(),
                ) as response:
                    if response.status_code >= 400:
                        await response.aread()
                        raise self._status_error(response.status_code, response.content, model)
                    async for line in response.aiter_lines():
                        if ctx.token.cancelled:
                            raise GatewayError(f"Request cancelled: {ctx.token.reason}")
                        envelope = self.translate_event(line, model, state)
                        if envelope is None:
                            continue
                        yield envelope
                        if state.completed:
                            break
        except GatewayError as exc:
            if not state.completed:
                state.completed = True
                yield error_envelope(model, exc)
        except httpx.HTTPError as exc:
            if not state.completed:
                state.completed = True
                yield error_envelope(model, self._transport_error(exc))
        except Exception as exc:
            _LOG.exception("Unexpected error in {} stream: {}", self.label, exc)
            if not state.completed:
                state.completed = True
                error = UpstreamError(f"Error processing {self.label} stream: {exc}")
                yield error_envelope(model, error)
        if not state.completed:
            _LOG.warning("{} stream ended without {}", self.label, SSE_DONE)
            state.completed = True
            yield terminal_envelope(model)

    def translate_event(
        self,
        line: str,
        model: str,
        state: StreamState,
    ) -> dict[str, Any] | None:
        """Translate one SSE line into an envelope, or None when it carries nothing."""

        if not line.startswith(SSE_DATA_PREFIX):
            return None
        data = line[len(SSE_DATA_PREFIX) :].strip()
        if not data:
            return None
        if data == SSE_DONE:
            state.completed = True
            return terminal_envelope(model)
        try:
            parsed = json.loads(data)
        except ValueError as exc:
            _LOG.warning("Error parsing {} stream chunk: {}", self.label, exc)
            return None
        if not isinstance(parsed, dict):
            return None
        if parsed.get("error"):
            state.completed = True
            detail = _describe(parsed["error"])
            _LOG.error("{} stream error: {}", self.label, detail)
            return error_envelope(model, UpstreamError(f"{self.label} error: {detail}"))
        choices = parsed.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return None
        delta = choices[0].get("delta")
        if not isinstance(delta, dict):
            return None
        content = delta.get("content") or ""
        state.parts.append(content)
        return make_envelope(model, content, done=False)

    def _first_choice_content(self, data: Any) -> str:
        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            _LOG.error("{} returned no choices", self.label)
            raise UpstreamProtocolViolation(f"No valid choices in {self.label} response")
        message = choices[0].get("message") or {}
        content = message.get("content") if isinstance(message, dict) else None
        return content if isinstance(content, str) else ""

    def _status_error(self, status: int, body: bytes, model: str) -> GatewayError:
        detail = _error_detail(body)
        _LOG.error("{} chat error [{}]: {}", self.label, status, detail)
        if status in (400, 404):
            return model_not_found(model, self.label)
        return UpstreamError(f"{self.label} error: {detail}", upstream_status=status)

    def _transport_error(self, exc: httpx.HTTPError) -> BackendUnavailable:
        if isinstance(exc, (httpx.NetworkError, httpx.RemoteProtocolError)):
            message = f"{self.label} server unavailable"
        else:
            message = f"Error forwarding to {self.label}: {exc}"
        _LOG.error("{} network error: {} ({})", self.label, message, exc)
        return BackendUnavailable(message)

    async def fetch_models(self) -> list[dict[str, Any]]:
        """Return the remote model catalog entries (``data`` array)."""

        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self._config.base_url}/models",
                    headers=self._headers(),
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            _LOG.error("Error fetching models from {}: {}", self.label, exc)
            raise UpstreamError(f"Failed to fetch models from {self.label}") from exc
        entries = data.get("data") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise UpstreamError(f"Failed to fetch models from {self.label}")
        return [entry for entry in entries if isinstance(entry, dict)]


def _error_detail(body: bytes) -> str:
    text = body.decode("utf-8", errors="replace").strip()
    try:
        parsed = json.loads(text) if text else None
    except ValueError:
        return text or "Unknown error"
    if isinstance(parsed, dict):
        detail = parsed.get("error") or parsed.get("message")
        if detail:
            return _describe(detail)
    return text or "Unknown error"


def _describe(detail: Any) -> str:
    if isinstance(detail, str):
        return detail
    return json.dumps(detail, ensure_ascii=False)


__all__ = ["RemoteAdapter", "SSE_DONE", "StreamState"]
