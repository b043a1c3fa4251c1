"""Command line entry point.

Usage:
    python -m play_reconciler [--host H] [--port P]     run the HTTP service
    python -m play_reconciler check-config              validate reconciler.yaml
    python -m play_reconciler fetch PACKAGE TOKEN        print a canonical snapshot
"""

import argparse
import os
import sys
from typing import List, Optional

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="play-reconciler",
        description="Google Play subscription reconciler - RTDN ingestion, verification and user projection",
    )
    parser.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"), help="Host to bind to (default: 0.0.0.0)")
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "8080")),
        help="Port to bind to (default: 8080)",
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "console"],
        default=os.getenv("LOG_FORMAT", "json"),
        help="Log output format (default: json)",
    )
    parser.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH", "config/reconciler.yaml"),
        help="Path to reconciler.yaml (default: config/reconciler.yaml)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        default=os.getenv("RELOAD", "false").lower() == "true",
        help="Enable auto-reload for development",
    )

    commands = parser.add_subparsers(dest="command")
    commands.add_parser("serve", help="Run the HTTP service (default)")
    commands.add_parser("check-config", help="Load and validate the configuration file")
    fetch = commands.add_parser("fetch", help="Query Google Play for one purchase token")
    fetch.add_argument("package_name", help="Android package name")
    fetch.add_argument("purchase_token", help="Purchase token")
    return parser


def check_config(path: str) -> int:
    from play_reconciler.config import Config, ConfigurationError

    try:
        config = Config(path)
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    print(f"Config: {config.config_path}")
    print(f"Package: {config.default_package_name}")
    print(f"Pub/Sub: {config.pubsub.subscription} (listener {'on' if config.pubsub.listener_enabled else 'off'})")
    print(f"Sweep: every {config.sweep.interval_seconds}s, batch {config.sweep.batch_size}")
    print(f"Strict identity check: {config.security.strict_identity_check}")
    return 0


def fetch_snapshot(package_name: str, purchase_token: str) -> int:
    from play_reconciler.services.provider_adapter import ProviderError, get_provider_client

    try:
        snapshot = get_provider_client().fetch_subscription(package_name, purchase_token)
    except ProviderError as e:
        print(f"Provider error ({e.status}): {e}", file=sys.stderr)
        return 1

    print(snapshot.model_dump_json(indent=2))
    return 0


def serve(args: argparse.Namespace) -> int:
    import uvicorn

    if args.log_format == "console":
        print("=" * 60)
        print("play-reconciler v0.1.0")
        print("=" * 60)
        print(f"Host: {args.host}")
        print(f"Port: {args.port}")
        print(f"Log Level: {args.log_level}")
        print(f"Config: {args.config}")
        print("=" * 60)

    try:
        uvicorn.run(
            "play_reconciler.main:app",
            host=args.host,
            port=args.port,
            log_level=args.log_level.lower(),
            reload=args.reload,
            access_log=False,  # RequestLoggingMiddleware logs requests
        )
    except KeyboardInterrupt:
        print("\nShutting down gracefully...")
    except Exception as e:
        print(f"Failed to start reconciler: {e}", file=sys.stderr)
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the reconciler CLI."""
    args = build_parser().parse_args(argv)

    # The app and config singletons read these
    os.environ["LOG_LEVEL"] = args.log_level
    os.environ["LOG_FORMAT"] = args.log_format
    os.environ["CONFIG_PATH"] = args.config

    if args.command == "check-config":
        sys.exit(check_config(args.config))
    if args.command == "fetch":
        from play_reconciler.logging_config import configure_logging

        configure_logging(log_level=args.log_level, json_format=args.log_format == "json")
        sys.exit(fetch_snapshot(args.package_name, args.purchase_token))
    sys.exit(serve(args))


if __name__ == "__main__":
    main()
