"""Request-routing gateway package."""

from .app import create_gateway_app
from .service import GatewayService

__all__ = ["create_gateway_app", "GatewayService"]
