"""Configuration loading and validation using Pydantic models."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .logging_utils import get_logger

CONFIG_PATH_ENV = "BYPASS_GATEWAY_CONFIG"
LOCAL_URL_ENV = "BYPASS_GATEWAY_LOCAL_URL"
REMOTE_URL_ENV = "BYPASS_GATEWAY_REMOTE_URL"

_LOG = get_logger("config")


class ConfigError(RuntimeError):
    """Raised when the gateway configuration cannot be loaded."""


class BypassTable(BaseModel):
    """Models eligible for local handling, per capability."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    chat: tuple[str, ...] = Field(
        (
            "nomic-embed-text:latest",
            "gemma3:1b",
            "SmolLM2:135m",
            "deepseek-r1:1.5b",
        ),
        description="Chat models served by the local backend instead of the remote one.",
    )
    embeddings: tuple[str, ...] = Field(("nomic-embed-text:latest",))

    def entries(self, capability: str) -> tuple[str, ...]:
        return tuple(getattr(self, capability, ()))


class LocalBackendConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    base_url: str = Field("http://localhost:11435", description="Local Ollama-compatible server.")
    label: str = Field("Ollama", description="Name used in caller-visible error messages.")
    timeout_s: Optional[float] = Field(
        None,
        gt=0.0,
        description="Upstream timeout; None waits indefinitely.",
    )

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class RemoteBackendConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    base_url: str = Field("https://openrouter.ai/api/v1", description="OpenAI-style API root.")
    label: str = Field("OpenRouter")
    api_key: Optional[str] = Field(None, description="Bearer token; overrides api_key_env.")
    api_key_env: Optional[str] = Field("OPENROUTER_API_KEY")
    headers: dict[str, str] = Field(default_factory=dict)
    timeout_s: Optional[float] = Field(None, gt=0.0)

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    def resolve_api_key(self) -> str | None:
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env) or None
        return None


class GatewayConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    host: str = Field("127.0.0.1")
    port: int = Field(11434, ge=1, le=65535)
    log_level: str = Field("INFO")
    log_dir: Optional[Path] = None
    version_tag: str = Field(
        ":latest",
        description="Cosmetic model suffix ignored for matching and stripped for the remote backend.",
    )
    local: LocalBackendConfig = LocalBackendConfig()
    remote: RemoteBackendConfig = RemoteBackendConfig()
    bypass: BypassTable = BypassTable()


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    local_url = os.environ.get(LOCAL_URL_ENV)
    if local_url:
        data["local"] = {**(data.get("local") or {}), "base_url": local_url}
    remote_url = os.environ.get(REMOTE_URL_ENV)
    if remote_url:
        data["remote"] = {**(data.get("remote") or {}), "base_url": remote_url}
    return data


def load_config(path: Path | str | None = None) -> GatewayConfig:
    """Load YAML configuration from disk, falling back to defaults."""

    if path is None:
        env_path = os.environ.get(CONFIG_PATH_ENV)
        path = Path(env_path) if env_path else None
    data: dict[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigError(f"config file not found: {config_path}")
        with config_path.open("r", encoding="utf-8") as fh:
            loaded = yaml.safe_load(fh)
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"config root must be a mapping: {config_path}")
        data = loaded
        _LOG.info("Loaded config from {}", config_path)
    data = _apply_env_overrides(data)
    try:
        return GatewayConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"invalid gateway config: {exc}") from exc


__all__ = [
    "BypassTable",
    "ConfigError",
    "GatewayConfig",
    "LocalBackendConfig",
    "RemoteBackendConfig",
    "load_config",
]
