from __future__ import annotations

import pytest

from bypass_gateway.config import BypassTable
from bypass_gateway.gateway.models import Capability
from bypass_gateway.gateway.router import (
    BypassRouter,
    Route,
    model_matches,
    strip_version_tag,
)

MODEL_IDS = [
    "SmolLM2:135m",
    "gemma3:1b",
    "gemma3:1b:latest",
    "nomic-embed-text",
    "nomic-embed-text:latest",
    "gpt-4",
    "gpt-4:latest",
    "openai/gpt-4o-mini",
    ":latest",
    "latest",
]


def test_strip_version_tag_only_removes_trailing_suffix() -> None:
    assert strip_version_tag("gemma3:1b:latest") == "gemma3:1b"
    assert strip_version_tag("gemma3:1b") == "gemma3:1b"
    assert strip_version_tag("my:latest-build") == "my:latest-build"
    assert strip_version_tag("model:stable", ":stable") == "model"


@pytest.mark.parametrize("model", MODEL_IDS)
@pytest.mark.parametrize("entry", MODEL_IDS)
def test_model_matches_is_suffix_insensitive_and_symmetric(model: str, entry: str) -> None:
    expected = strip_version_tag(model) == strip_version_tag(entry)
    assert model_matches(model, entry) is expected
    assert model_matches(entry, model) is expected
    assert model_matches(f"{strip_version_tag(model)}:latest", entry) is expected


@pytest.mark.parametrize("model", MODEL_IDS + ["", "unknown-model"])
def test_embeddings_always_route_local(model: str) -> None:
    router = BypassRouter(BypassTable(chat=(), embeddings=()))
    assert router.decide(Capability.EMBEDDINGS, model) is Route.LOCAL


def test_chat_routes_local_for_bypass_entries() -> None:
    router = BypassRouter(BypassTable())
    assert router.decide(Capability.CHAT, "SmolLM2:135m") is Route.LOCAL
    assert router.decide(Capability.CHAT, "nomic-embed-text") is Route.LOCAL
    assert router.decide(Capability.CHAT, "gemma3:1b:latest") is Route.LOCAL


def test_chat_routes_remote_without_match() -> None:
    router = BypassRouter(BypassTable())
    assert router.decide(Capability.CHAT, "gpt-4") is Route.REMOTE
    assert router.decide(Capability.CHAT, "SmolLM2") is Route.REMOTE
    assert router.decide(Capability.CHAT, "") is Route.REMOTE


def test_router_decision_is_pure() -> None:
    table = BypassTable(chat=("gemma3:1b",))
    router = BypassRouter(table)
    decisions = {router.decide(Capability.CHAT, "gemma3:1b:latest") for _ in range(5)}
    assert decisions == {Route.LOCAL}
    assert router.table == BypassTable(chat=("gemma3:1b",))


def test_bypass_table_is_immutable() -> None:
    table = BypassTable()
    with pytest.raises(Exception):
        table.chat = ("other",)  # type: ignore[misc]
