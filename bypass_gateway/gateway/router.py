"""Bypass routing: decide whether the local or the remote backend serves a request."""

from __future__ import annotations

from enum import Enum

from ..config import BypassTable
from .models import Capability

DEFAULT_VERSION_TAG = ":latest"


class Route(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


def strip_version_tag(model: str, version_tag: str = DEFAULT_VERSION_TAG) -> str:
    """Drop a trailing cosmetic version tag such as ``:latest``."""

    if version_tag and model.endswith(version_tag):
        return model[: -len(version_tag)]
    return model


def model_matches(model: str, entry: str, version_tag: str = DEFAULT_VERSION_TAG) -> bool:
    if model == entry:
        return True
    return strip_version_tag(model, version_tag) == strip_version_tag(entry, version_tag)


class BypassRouter:
    """Pure routing decision over an immutable bypass table."""

    def __init__(self, table: BypassTable, *, version_tag: str = DEFAULT_VERSION_TAG) -> None:
        self._table = table
        self._version_tag = version_tag

    @property
    def table(self) -> BypassTable:
        return self._table

    def decide(self, capability: Capability, model: str) -> Route:
        # The remote backend has no embeddings endpoint.
        if capability is Capability.EMBEDDINGS:
            return Route.LOCAL
        entries = self._table.entries(Capability.CHAT.value)
        if model and any(model_matches(model, entry, self._version_tag) for entry in entries):
            return Route.LOCAL
        return Route.REMOTE


__all__ = ["BypassRouter", "Route", "model_matches", "strip_version_tag"]
