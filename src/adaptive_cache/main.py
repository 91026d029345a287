"""
Adaptive cache service entry point.

Runs the prediction and invalidation cycles until interrupted and, when the
API is enabled, serves the introspection endpoints with uvicorn.
"""

import argparse
import asyncio
import logging
import signal
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import uvicorn

from .api import create_app
from .config import AdaptiveCacheConfig, LoggingConfig
from .exceptions import ConfigurationError
from .system import AdaptiveCacheSystem


def setup_logging(log_config: LoggingConfig) -> None:
    """Configure root logging from ``log_config``."""
    formatter = logging.Formatter(log_config.format)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_config.level.upper()))
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_config.file_path:
        log_file = Path(log_config.file_path)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_config.file_path,
            maxBytes=log_config.max_file_size,
            backupCount=log_config.backup_count
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def parse_arguments(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Adaptive cache - predictive preloading and smart invalidation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  ADAPTIVE_CACHE_STORE_BACKEND     Cache store backend: memory or redis
  ADAPTIVE_CACHE_REDIS_HOST        Redis host (default: localhost)
  ADAPTIVE_CACHE_LOG_LEVEL         Log level (default: INFO)
  ADAPTIVE_CACHE_API_ENABLED       Serve the HTTP endpoints (default: false)
"""
    )
    parser.add_argument("--config", type=str, help="Path to a YAML or JSON configuration file")
    parser.add_argument("--backend", choices=["memory", "redis"], help="Cache store backend")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Log level")
    parser.add_argument("--log-file", type=str, help="Log file path")
    parser.add_argument("--api", action="store_true", help="Serve the HTTP endpoints")
    parser.add_argument("--host", type=str, help="API host")
    parser.add_argument("--port", type=int, help="API port")
    return parser.parse_args(argv)


def apply_cli_overrides(config: AdaptiveCacheConfig, args: argparse.Namespace) -> AdaptiveCacheConfig:
    if args.backend:
        config.store.backend = args.backend
    if args.log_level:
        config.logging.level = args.log_level
    if args.log_file:
        config.logging.file_path = args.log_file
    if args.api:
        config.api.enabled = True
    if args.host:
        config.api.host = args.host
    if args.port:
        config.api.port = args.port
    config.validate()
    return config


async def serve_api(system: AdaptiveCacheSystem, config: AdaptiveCacheConfig) -> None:
    app = create_app(system, prefix=config.api.prefix)
    server = uvicorn.Server(uvicorn.Config(
        app,
        host=config.api.host,
        port=config.api.port,
        log_config=None
    ))
    await server.serve()


async def run_until_signalled(system: AdaptiveCacheSystem) -> None:
    logger = logging.getLogger(__name__)
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, initiating shutdown...")
        loop.call_soon_threadsafe(shutdown_event.set)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    await system.start()
    try:
        await shutdown_event.wait()
    finally:
        await system.stop()


async def main_async(argv=None) -> None:
    args = parse_arguments(argv)

    try:
        config = AdaptiveCacheConfig.load(args.config)
        config = apply_cli_overrides(config, args)
    except ConfigurationError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.logging)
    logger = logging.getLogger(__name__)
    logger.info("Starting adaptive cache...")
    logger.info(f"Store backend: {config.store.backend}")

    system = AdaptiveCacheSystem.from_config(config)

    if config.api.enabled:
        logger.info(f"Serving API on {config.api.host}:{config.api.port}{config.api.prefix}")
        await serve_api(system, config)
    else:
        await run_until_signalled(system)

    logger.info("Adaptive cache stopped")


def main() -> None:
    try:
        asyncio.run(main_async())
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        sys.exit(0)
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
