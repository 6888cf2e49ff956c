"""Caller-visible error taxonomy for the gateway."""

from __future__ import annotations

from typing import Any


class GatewayError(RuntimeError):
    status_code = 500

    def __init__(self, message: str, *, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message}


class ModelNotFound(GatewayError):
    status_code = 404


class BackendUnavailable(GatewayError):
    status_code = 503


class UpstreamProtocolViolation(GatewayError):
    status_code = 500


class UpstreamError(GatewayError):
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        upstream_status: int | None = None,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.upstream_status = upstream_status


class InternalError(GatewayError):
    """Malformed inbound request."""

    status_code = 400


def model_not_found(model: str, label: str) -> ModelNotFound:
    return ModelNotFound(f'Model "{model}" not found on {label}', detail={"model": model})


__all__ = [
    "BackendUnavailable",
    "GatewayError",
    "InternalError",
    "ModelNotFound",
    "UpstreamError",
    "UpstreamProtocolViolation",
    "model_not_found",
]
