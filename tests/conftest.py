from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Callable

import fastapi.concurrency
import fastapi.routing
import httpx
import pytest
import starlette.concurrency

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def async_client_factory():
    def _factory(app):
        transport = httpx.ASGITransport(app=app)
        return httpx.AsyncClient(transport=transport, base_url="http://testserver")

    return _factory


@pytest.fixture
def upstream_factory():
    """Build an ``http_client_factory`` whose clients talk to a mock handler."""

    def _factory(handler: Callable[[httpx.Request], httpx.Response]):
        def client_factory(timeout_s: float | None = None) -> httpx.AsyncClient:
            return httpx.AsyncClient(
                transport=httpx.MockTransport(handler),
                timeout=httpx.Timeout(timeout_s),
            )

        return client_factory

    return _factory


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "BYPASS_GATEWAY_CONFIG",
        "BYPASS_GATEWAY_LOCAL_URL",
        "BYPASS_GATEWAY_REMOTE_URL",
        "BYPASS_GATEWAY_LOG_DIR",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("OPENROUTER_API_KEY", "test-key")


@pytest.fixture(autouse=True)
def _disable_threadpool(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _run_in_threadpool(func, *args, **kwargs):
        return func(*args, **kwargs)

    monkeypatch.setattr(fastapi.concurrency, "run_in_threadpool", _run_in_threadpool)
    monkeypatch.setattr(fastapi.routing, "run_in_threadpool", _run_in_threadpool)
    monkeypatch.setattr(starlette.concurrency, "run_in_threadpool", _run_in_threadpool)

    async def _to_thread(func, *args, **kwargs):
        return func(*args, **kwargs)

    monkeypatch.setattr(asyncio, "to_thread", _to_thread)
