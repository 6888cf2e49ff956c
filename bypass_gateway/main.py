"""Bypass gateway CLI entrypoint for serve/smoke modes."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Sequence

from dotenv import load_dotenv

from .config import ConfigError, GatewayConfig, load_config
from .logging_utils import configure_logging, get_logger
from .smoke import DEFAULT_CHAT_MODEL, DEFAULT_EMBEDDING_MODEL, DEFAULT_GATEWAY_URL, run_smoke

logger = get_logger("cli")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Local/remote bypass gateway")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to a YAML config file.",
    )
    parser.add_argument("--log-level", default=None)
    parser.add_argument("--log-dir", type=Path, default=None)
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the gateway HTTP server")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    smoke = subparsers.add_parser("smoke", help="Check a running gateway end to end")
    smoke.add_argument("--url", default=DEFAULT_GATEWAY_URL)
    smoke.add_argument("--embedding-model", default=DEFAULT_EMBEDDING_MODEL)
    smoke.add_argument("--chat-model", default=DEFAULT_CHAT_MODEL)
    return parser.parse_args(argv)


def _apply_overrides(config: GatewayConfig, args: argparse.Namespace) -> GatewayConfig:
    update: dict[str, Any] = {}
    if getattr(args, "host", None):
        update["host"] = args.host
    if getattr(args, "port", None):
        update["port"] = args.port
    if args.log_level:
        update["log_level"] = args.log_level
    if args.log_dir:
        update["log_dir"] = args.log_dir
    if not update:
        return config
    return config.model_copy(update=update)


def _serve(config: GatewayConfig) -> int:
    import uvicorn

    from .gateway import create_gateway_app

    app = create_gateway_app(config)
    logger.info(
        "Gateway listening on {}:{} (local={}, remote={})",
        config.host,
        config.port,
        config.local.base_url,
        config.remote.base_url,
    )
    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    try:
        config = _apply_overrides(load_config(args.config), args)
    except ConfigError as exc:
        configure_logging(args.log_dir, args.log_level or "INFO")
        logger.error("{}", exc)
        return 2
    configure_logging(config.log_dir, config.log_level)
    if args.command == "serve":
        return _serve(config)
    return run_smoke(
        args.url,
        embedding_model=args.embedding_model,
        chat_model=args.chat_model,
    )


if __name__ == "__main__":
    raise SystemExit(main())
