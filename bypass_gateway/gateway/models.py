"""Gateway request/response models."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Capability(str, Enum):
    CHAT = "chat"
    EMBEDDINGS = "embeddings"


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: str
    content: Any = None


class ChatRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    model: str = Field(min_length=1)
    messages: list[ChatMessage] = Field(min_length=1)
    stream: bool = False

    @property
    def capability(self) -> Capability:
        return Capability.CHAT

    def upstream_body(self) -> dict[str, Any]:
        """Return the request as received, including passthrough fields."""

        return self.model_dump(exclude_unset=True)


class EmbeddingRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    model: str = Field(min_length=1)
    prompt: str

    @property
    def capability(self) -> Capability:
        return Capability.EMBEDDINGS

    @property
    def stream(self) -> bool:
        return False

    def upstream_body(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class EnvelopeMessage(BaseModel):
    role: str = "assistant"
    content: str


class OutputEnvelope(BaseModel):
    model: str
    created_at: str
    message: EnvelopeMessage | None = None
    done: bool

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class CatalogEntry(BaseModel):
    model: str
    name: str
    modified_at: str = "2025-02-27T00:00:00Z"
    size: int = 0
    digest: str = "n/a"


class ModelCatalog(BaseModel):
    models: list[CatalogEntry] = Field(default_factory=list)
