"""Command line entry point: ``python -m ghostllm serve``."""

import argparse
import dataclasses
import sys
from typing import List, Optional

from ghostllm.config import load_config
from ghostllm.server import run
from ghostllm.telemetry import logger, setup_logging

_UVICORN_LEVELS = {"debug": "debug", "info": "info", "warn": "warning", "error": "error"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ghostllm", description="GhostLLM - OpenAI-compatible AI gateway"
    )
    sub = parser.add_subparsers(dest="mode", required=True)

    serve = sub.add_parser("serve", help="Start the gateway HTTP server")
    serve.add_argument("--config", help="Path to a JSON or YAML config file")
    serve.add_argument("--host", help="Host to bind (overrides config)")
    serve.add_argument("--port", type=int, help="Port to bind (overrides config)")
    serve.add_argument(
        "--asgi",
        action="store_true",
        help="Serve the FastAPI app under uvicorn instead of the raw connection loop",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config = load_config(args.config)
    overrides = {}
    if args.host:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if overrides:
        config = dataclasses.replace(config, **overrides)

    setup_logging(config.log_file, config.log_level, config.log_json)
    logger.info("Starting %s (serve mode)", config.service_name)

    try:
        if args.asgi:
            import uvicorn

            from ghostllm.app import create_app

            uvicorn.run(
                create_app(config),
                host=config.host,
                port=config.port,
                log_level=_UVICORN_LEVELS.get(config.log_level.lower(), "info"),
            )
        else:
            run(config)
    except OSError as exc:
        logger.error("Failed to bind to %s:%s: %s", config.host, config.port, exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Shutting down")
    return 0


if __name__ == "__main__":
    sys.exit(main())
