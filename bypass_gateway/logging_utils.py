"""Structured logging configuration built on top of loguru."""

from __future__ import annotations

import os
import re
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

_LOG_DIR_ENV = "BYPASS_GATEWAY_LOG_DIR"
_REDACTED = "[REDACTED]"
_SECRET_PATTERNS = (
    re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]+", re.IGNORECASE),
    re.compile(r"((?:api[_-]?key|authorization)\s*[=:]\s*)[^\s,;]+", re.IGNORECASE),
    re.compile(r"sk-[A-Za-z0-9_\-]{6,}"),
)


def _default_log_dir() -> Path | None:
    base = os.environ.get(_LOG_DIR_ENV)
    if base:
        return Path(base)
    return None


def redact(text: str) -> str:
    """Mask API keys and bearer tokens in a log message."""

    for pattern in _SECRET_PATTERNS:
        if pattern.groups:
            text = pattern.sub(lambda match: match.group(1) + _REDACTED, text)
        else:
            text = pattern.sub(_REDACTED, text)
    return text


def _redact_record(record) -> None:
    record["message"] = redact(record["message"])


def configure_logging(log_dir: Path | str | None = None, level: str = "INFO") -> None:
    """Configure Loguru sinks for console and optional file output.

    The remote backend is called with a bearer key, so every record passes
    through :func:`redact` before reaching a sink.
    """

    logger.remove()
    logger.configure(extra={"component": "app"}, patcher=_redact_record)

    log_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{extra[component]}</cyan> | "
        "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
        "<level>{message}</level>"
    )

    logger.add(sys.stdout, format=log_format, colorize=True, level=level)

    if log_dir is None:
        log_dir = _default_log_dir()
    if log_dir is None:
        return

    path = Path(log_dir)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.bind(component="logging").warning(
            "File logging disabled; cannot create {}: {}", path, exc
        )
        return
    logger.add(
        path / "bypass_gateway.log",
        rotation="1 day",
        retention="14 days",
        compression="gz",
        level=level,
        backtrace=False,
        diagnose=False,
        format=log_format,
    )


def get_logger(name: Optional[str] = None):
    """Return a child logger bound to a gateway component name."""

    if name:
        return logger.bind(component=name)
    return logger
