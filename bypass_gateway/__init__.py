"""Request-routing gateway that bypasses a remote LLM service for local models."""

from __future__ import annotations

from .config import GatewayConfig, load_config
from .logging_utils import configure_logging

__version__ = "0.1.0"

__all__ = [
    "GatewayConfig",
    "load_config",
    "configure_logging",
]
