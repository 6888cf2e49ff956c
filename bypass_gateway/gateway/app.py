"""FastAPI app for the bypass gateway."""

from __future__ import annotations

from typing import Any, AsyncIterator, Awaitable, Callable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..config import GatewayConfig
from ..logging_utils import get_logger
from ..observability.metrics import (
    gateway_failures_total,
    gateway_latency_ms,
    gateway_requests_total,
    gateway_stream_envelopes_total,
)
from ..time_utils import elapsed_ms, monotonic_now
from .context import RequestContext
from .envelope import GatewayResponse, StreamedResponse, encode_ndjson
from .errors import GatewayError, InternalError, UpstreamError
from .models import ChatRequest, EmbeddingRequest
from .service import GatewayService

_LOG = get_logger("gateway.api")

NDJSON_MEDIA_TYPE = "application/x-ndjson"
HEALTH_TEXT = "Proxy is running"


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    loc = [str(part) for part in first.get("loc", ()) if part != "body"]
    field = ".".join(loc)
    if first.get("type") == "missing" and field:
        return f"Missing required field: {field}"
    if field:
        return f"Invalid field {field}: {first.get('msg')}"
    return f"Invalid request: {first.get('msg')}"


async def _ndjson_stream(
    response: StreamedResponse,
) -> AsyncIterator[bytes]:
    async for envelope in response.envelopes:
        gateway_stream_envelopes_total.labels(response.route or "unknown").inc()
        yield encode_ndjson(envelope)


def create_gateway_app(
    config: GatewayConfig,
    *,
    service: GatewayService | None = None,
) -> FastAPI:
    service = service or GatewayService(config)
    app = FastAPI(title="Bypass Gateway")
    app.state.service = service

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(_request: Request, exc: RequestValidationError) -> JSONResponse:
        error = InternalError(_validation_message(exc))
        _LOG.warning("Rejected malformed request: {}", error.message)
        gateway_failures_total.labels("request", "none", type(error).__name__).inc()
        return JSONResponse(status_code=error.status_code, content=error.to_payload())

    async def _respond(
        endpoint: str,
        route: str,
        call: Callable[[], Awaitable[GatewayResponse]],
    ) -> Response:
        start = monotonic_now()
        try:
            result = await call()
        except GatewayError as exc:
            gateway_requests_total.labels(endpoint, route, str(exc.status_code)).inc()
            gateway_failures_total.labels(endpoint, route, type(exc).__name__).inc()
            return JSONResponse(status_code=exc.status_code, content=exc.to_payload())
        except Exception as exc:
            _LOG.exception("General error in {}: {}", endpoint, exc)
            gateway_requests_total.labels(endpoint, route, "500").inc()
            gateway_failures_total.labels(endpoint, route, type(exc).__name__).inc()
            return JSONResponse(status_code=500, content={"error": "Internal server error"})
        finally:
            gateway_latency_ms.labels(endpoint, route).observe(elapsed_ms(start))
        gateway_requests_total.labels(endpoint, route, str(_status_of(result))).inc()
        if isinstance(result, StreamedResponse):
            return StreamingResponse(_ndjson_stream(result), media_type=NDJSON_MEDIA_TYPE)
        return JSONResponse(status_code=result.status_code, content=result.payload)

    @app.post("/api/chat")
    async def chat(payload: ChatRequest) -> Any:
        ctx = RequestContext()
        route = service.route_for(payload).value
        return await _respond("chat", route, lambda: service.handle_chat(payload, ctx))

    @app.post("/v1/chat/completions")
    async def chat_completions(payload: ChatRequest) -> Any:
        ctx = RequestContext()
        route = service.route_for(payload).value
        return await _respond("chat", route, lambda: service.handle_chat(payload, ctx))

    @app.post("/api/embeddings")
    async def embeddings(payload: EmbeddingRequest) -> Any:
        ctx = RequestContext()
        route = service.route_for(payload).value
        return await _respond("embeddings", route, lambda: service.handle_embeddings(payload, ctx))

    @app.get("/api/tags")
    async def tags() -> Any:
        try:
            catalog = await service.handle_models()
        except UpstreamError as exc:
            gateway_requests_total.labels("tags", "remote", "500").inc()
            gateway_failures_total.labels("tags", "remote", type(exc).__name__).inc()
            return PlainTextResponse(exc.message, status_code=500)
        gateway_requests_total.labels("tags", "remote", "200").inc()
        return JSONResponse(content=catalog)

    @app.get("/")
    def root() -> PlainTextResponse:
        return PlainTextResponse(HEALTH_TEXT)

    @app.get("/metrics")
    def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


def _status_of(result: GatewayResponse) -> int:
    if isinstance(result, StreamedResponse):
        return 200
    return result.status_code


__all__ = ["create_gateway_app"]
