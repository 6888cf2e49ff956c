"""Gateway routing and upstream proxy logic."""

from __future__ import annotations

from typing import Any, Callable

import httpx

from ..config import GatewayConfig
from ..logging_utils import get_logger
from .context import RequestContext
from .envelope import GatewayResponse
from .local import LocalAdapter
from .models import CatalogEntry, ChatRequest, EmbeddingRequest, ModelCatalog
from .remote import RemoteAdapter
from .router import BypassRouter, Route

_LOG = get_logger("gateway")


class GatewayService:
    """Routes each request to the local or remote backend adapter."""

    def __init__(
        self,
        config: GatewayConfig,
        *,
        http_client_factory: Callable[..., httpx.AsyncClient] | None = None,
    ) -> None:
        self._config = config
        self._router = BypassRouter(config.bypass, version_tag=config.version_tag)
        self._local = LocalAdapter(config.local, http_client_factory=http_client_factory)
        self._remote = RemoteAdapter(
            config.remote,
            version_tag=config.version_tag,
            http_client_factory=http_client_factory,
        )

    @property
    def router(self) -> BypassRouter:
        return self._router

    def route_for(self, request: ChatRequest | EmbeddingRequest) -> Route:
        return self._router.decide(request.capability, request.model)

    async def handle_chat(
        self, request: ChatRequest, ctx: RequestContext | None = None
    ) -> GatewayResponse:
        ctx = ctx or RequestContext()
        route = self.route_for(request)
        _LOG.info(
            "Routing chat model={} stream={} -> {} (request_id={})",
            request.model,
            request.stream,
            route.value,
            ctx.request_id,
        )
        if route is Route.LOCAL:
            return await self._local.handle(request, ctx)
        return await self._remote.handle(request, ctx)

    async def handle_embeddings(
        self, request: EmbeddingRequest, ctx: RequestContext | None = None
    ) -> GatewayResponse:
        ctx = ctx or RequestContext()
        _LOG.info(
            "Routing embeddings model={} -> local (request_id={})",
            request.model,
            ctx.request_id,
        )
        return await self._local.handle(request, ctx)

    async def handle_models(self) -> dict[str, Any]:
        entries = await self._remote.fetch_models()
        catalog = ModelCatalog(
            models=[
                CatalogEntry(
                    model=f"{entry.get('id')}{self._config.version_tag}",
                    name=str(entry.get("name") or entry.get("id")),
                )
                for entry in entries
                if entry.get("id")
            ]
        )
        return catalog.model_dump()


__all__ = ["GatewayService"]
