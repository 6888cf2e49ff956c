"""Local backend adapter: forwards requests and re-frames NDJSON responses."""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Callable

import httpx

from ..config import LocalBackendConfig
from ..logging_utils import get_logger
from .context import RequestContext
from .envelope import (
    NO_CONTENT_PLACEHOLDER,
    BufferedResponse,
    DecodedUnit,
    GatewayResponse,
    NdjsonDecoder,
    RawTextUnit,
    StreamedResponse,
    StructuredUnit,
    error_envelope,
    is_terminal,
    terminal_envelope,
)
from .errors import (
    BackendUnavailable,
    GatewayError,
    UpstreamError,
    model_not_found,
)
from .models import Capability, ChatRequest, EmbeddingRequest

_LOG = get_logger("gateway.local")

LOCAL_PATHS = {
    Capability.CHAT: "/api/chat",
    Capability.EMBEDDINGS: "/api/embeddings",
}


class _TerminalGuard:
    """Tracks one caller stream so exactly one terminal envelope is emitted."""

    def __init__(self) -> None:
        self.emitted = 0
        self.dropped = 0
        self.finished = False

    def admit(self, payload: dict[str, Any]) -> bool:
        if self.finished:
            self.dropped += 1
            return False
        self.emitted += 1
        self.finished = is_terminal(payload)
        return True


class LocalAdapter:
    def __init__(
        self,
        config: LocalBackendConfig,
        *,
        http_client_factory: Callable[..., httpx.AsyncClient] | None = None,
    ) -> None:
        self._config = config
        self._client_factory = http_client_factory

    @property
    def label(self) -> str:
        return self._config.label

    def _client(self) -> httpx.AsyncClient:
        if self._client_factory:
            return self._client_factory(timeout_s=self._config.timeout_s)
        return httpx.AsyncClient(timeout=httpx.Timeout(self._config.timeout_s))

    async def handle(
        self,
        request: ChatRequest | EmbeddingRequest,
        ctx: RequestContext,
    ) -> GatewayResponse:
        path = LOCAL_PATHS[request.capability]
        model = request.model
        _LOG.info(
            "Forwarding to local {} {} for model {} (request_id={})",
            self.label,
            path,
            model,
            ctx.request_id,
        )
        client = self._client()
        try:
            upstream = await self._open(client, path, request.upstream_body(), model)
        except BaseException:
            await client.aclose()
            raise
        if request.stream:
            return StreamedResponse(
                self._stream(client, upstream, model, ctx),
                route="local",
            )
        try:
            return await self._collect(upstream, model, ctx)
        finally:
            await upstream.aclose()
            await client.aclose()

    async def _open(
        self,
        client: httpx.AsyncClient,
        path: str,
        body: dict[str, Any],
        model: str,
    ) -> httpx.Response:
        request = client.build_request("POST", f"{self._config.base_url}{path}", json=body)
        try:
            upstream = await client.send(request, stream=True)
        except httpx.ConnectError as exc:
            _LOG.error("Local {} {} error [503]: server unavailable", self.label, path)
            raise BackendUnavailable(f"{self.label} server unavailable") from exc
        except (httpx.RemoteProtocolError, httpx.ReadError, httpx.WriteError) as exc:
            # The local server drops the connection when it cannot load the model.
            _LOG.error("Local {} {} error [404]: connection reset ({})", self.label, path, exc)
            raise model_not_found(model, f"{self.label} server or server error") from exc
        except httpx.HTTPError as exc:
            _LOG.error("Local {} {} error [500]: {}", self.label, path, exc)
            raise UpstreamError(f"Error forwarding to local {self.label} {path}: {exc}") from exc
        if upstream.status_code < 400:
            return upstream
        try:
            body_bytes = await upstream.aread()
        finally:
            await upstream.aclose()
        status = upstream.status_code
        message = _error_message(body_bytes) or f"{self.label} server error"
        if status == 404 or "model" in message:
            _LOG.error("Local {} {} error [404]: model not found", self.label, path)
            raise model_not_found(model, f"{self.label} server")
        _LOG.error("Local {} {} error [{}]: {}", self.label, path, status, message)
        raise UpstreamError(message, upstream_status=status)

    async def _stream(
        self,
        client: httpx.AsyncClient,
        upstream: httpx.Response,
        model: str,
        ctx: RequestContext,
    ) -> AsyncIterator[dict[str, Any]]:
        decoder = NdjsonDecoder()
        guard = _TerminalGuard()
        try:
            async for chunk in upstream.aiter_bytes():
                if ctx.token.cancelled:
                    break
                for unit in decoder.feed(chunk):
                    payload = unit.to_payload()
                    if guard.admit(payload):
                        yield payload
            if not ctx.token.cancelled:
                for unit in decoder.flush():
                    payload = unit.to_payload()
                    if guard.admit(payload):
                        yield payload
        except httpx.HTTPError as exc:
            _LOG.error("Local {} stream error [500]: {}", self.label, exc)
            if not guard.finished:
                guard.finished = True
                error = UpstreamError(f"Error processing {self.label} response: {exc}")
                yield error_envelope(model, error)
        finally:
            await upstream.aclose()
            await client.aclose()
        if guard.dropped:
            _LOG.debug("Dropped {} local units after the terminal envelope", guard.dropped)
        if ctx.token.cancelled and not guard.finished:
            guard.finished = True
            yield error_envelope(model, GatewayError(f"Request cancelled: {ctx.token.reason}"))
        if not guard.finished:
            yield terminal_envelope(model, NO_CONTENT_PLACEHOLDER if guard.emitted == 0 else None)

    async def _collect(
        self,
        upstream: httpx.Response,
        model: str,
        ctx: RequestContext,
    ) -> BufferedResponse:
        decoder = NdjsonDecoder()
        units: list[DecodedUnit] = []
        raw = bytearray()
        try:
            async for chunk in upstream.aiter_bytes():
                if ctx.token.cancelled:
                    raise GatewayError(f"Request cancelled: {ctx.token.reason}")
                raw.extend(chunk)
                units.extend(decoder.feed(chunk))
            units.extend(decoder.flush())
        except httpx.HTTPError as exc:
            _LOG.error("Local {} response error [500]: {}", self.label, exc)
            raise UpstreamError(f"Error processing {self.label} response: {exc}") from exc
        document = _whole_document(bytes(raw))
        if document is not None:
            return BufferedResponse(document)
        return BufferedResponse(merge_units(units, model, raw=bytes(raw)))


def _whole_document(raw: bytes) -> dict[str, Any] | None:
    """Return the body as one JSON object when it parses whole, else None."""

    try:
        parsed = json.loads(raw)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def merge_units(units: list[DecodedUnit], model: str, *, raw: bytes = b"") -> dict[str, Any]:
    """Fold buffered upstream units into exactly one JSON document."""

    if not units:
        return terminal_envelope(model, NO_CONTENT_PLACEHOLDER)
    if len(units) == 1:
        return units[0].to_payload()
    if any(isinstance(unit, RawTextUnit) for unit in units):
        return RawTextUnit(raw.decode("utf-8", errors="replace").strip()).to_payload()
    payloads = [unit.payload for unit in units if isinstance(unit, StructuredUnit)]
    merged = dict(payloads[-1])
    message_parts: list[str] = []
    response_parts: list[str] = []
    role = "assistant"
    for payload in payloads:
        message = payload.get("message")
        if isinstance(message, dict):
            role = str(message.get("role") or role)
            content = message.get("content")
            if isinstance(content, str):
                message_parts.append(content)
        response = payload.get("response")
        if isinstance(response, str):
            response_parts.append(response)
    if message_parts:
        last_message = merged.get("message")
        base = dict(last_message) if isinstance(last_message, dict) else {}
        merged["message"] = {**base, "role": role, "content": "".join(message_parts)}
    if response_parts:
        merged["response"] = "".join(response_parts)
    merged["done"] = True
    return merged


def _error_message(body: bytes) -> str:
    text = body.decode("utf-8", errors="replace").strip()
    if not text:
        return ""
    try:
        parsed = json.loads(text)
    except ValueError:
        return text
    if isinstance(parsed, dict):
        error = parsed.get("error")
        if isinstance(error, str):
            return error
        if isinstance(error, dict):
            return str(error.get("message") or json.dumps(error))
    return text


__all__ = ["LOCAL_PATHS", "LocalAdapter", "merge_units"]
