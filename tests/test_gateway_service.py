from __future__ import annotations

import json

import httpx
import pytest

from bypass_gateway.config import BypassTable, GatewayConfig
from bypass_gateway.gateway.envelope import BufferedResponse, StreamedResponse
from bypass_gateway.gateway.errors import UpstreamError
from bypass_gateway.gateway.models import ChatRequest, EmbeddingRequest
from bypass_gateway.gateway.router import Route
from bypass_gateway.gateway.service import GatewayService


def _service(upstream_factory, handler, **config) -> GatewayService:
    return GatewayService(GatewayConfig(**config), http_client_factory=upstream_factory(handler))


def _chat(model: str, stream: bool = False) -> ChatRequest:
    return ChatRequest.model_validate(
        {"model": model, "messages": [{"role": "user", "content": "hi"}], "stream": stream}
    )


def test_route_for_uses_configured_table(upstream_factory) -> None:
    service = _service(
        upstream_factory,
        lambda _request: httpx.Response(500),
        bypass=BypassTable(chat=("llama3.2:1b",), embeddings=()),
    )
    assert service.route_for(_chat("llama3.2:1b:latest")) is Route.LOCAL
    assert service.route_for(_chat("SmolLM2:135m")) is Route.REMOTE
    embed = EmbeddingRequest.model_validate({"model": "anything", "prompt": "x"})
    assert service.route_for(embed) is Route.LOCAL


@pytest.mark.anyio
async def test_handle_chat_dispatches_by_route(upstream_factory) -> None:
    hosts: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        hosts.append(request.url.host)
        if request.url.host == "openrouter.ai":
            return httpx.Response(200, json={"choices": [{"message": {"content": "remote"}}]})
        return httpx.Response(
            200, json={"message": {"role": "assistant", "content": "local"}, "done": True}
        )

    service = _service(upstream_factory, handler)
    local = await service.handle_chat(_chat("gemma3:1b"))
    remote = await service.handle_chat(_chat("gpt-4"))
    assert isinstance(local, BufferedResponse) and isinstance(remote, BufferedResponse)
    assert local.payload["message"]["content"] == "local"
    assert remote.payload["message"]["content"] == "remote"
    assert hosts == ["localhost", "openrouter.ai"]


@pytest.mark.anyio
async def test_handle_chat_stream_tags_route(upstream_factory) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"data: [DONE]\n\n")

    response = await _service(upstream_factory, handler).handle_chat(_chat("gpt-4", stream=True))
    assert isinstance(response, StreamedResponse)
    assert response.route == "remote"
    envelopes = [envelope async for envelope in response.envelopes]
    assert [env["done"] for env in envelopes] == [True]


@pytest.mark.anyio
async def test_handle_embeddings_goes_local(upstream_factory) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.host == "gpu-box"
        assert json.loads(request.content) == {"model": "gpt-4", "prompt": "king"}
        return httpx.Response(200, json={"embedding": [0.5]})

    service = _service(upstream_factory, handler, local={"base_url": "http://gpu-box:11435"})
    request = EmbeddingRequest.model_validate({"model": "gpt-4", "prompt": "king"})
    response = await service.handle_embeddings(request)
    assert isinstance(response, BufferedResponse)
    assert response.payload == {"embedding": [0.5]}


@pytest.mark.anyio
async def test_handle_models_skips_entries_without_id(upstream_factory) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": [{"id": "a/b"}, {"name": "no id"}, "junk"]})

    catalog = await _service(upstream_factory, handler, version_tag=":stable").handle_models()
    assert [entry["model"] for entry in catalog["models"]] == ["a/b:stable"]
    assert catalog["models"][0]["name"] == "a/b"


@pytest.mark.anyio
async def test_handle_models_without_data_fails(upstream_factory) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"models": []})

    with pytest.raises(UpstreamError, match="Failed to fetch models from OpenRouter"):
        await _service(upstream_factory, handler).handle_models()
