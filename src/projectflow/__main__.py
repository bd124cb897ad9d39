"""ProjectFlow entry point.

Changes:
  - 2026-10-14: Added cleanup-tokens command for external schedulers.
  - 2026-10-12: Initial serve command.
"""

import argparse
import json
import logging
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version

from projectflow.config import get_settings
from projectflow.errors import ConfigurationError
from projectflow.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _version() -> str:
    try:
        return get_version("projectflow")
    except PackageNotFoundError:
        from projectflow import __version__

        return __version__


def run_cleanup(settings) -> int:
    """Run the token janitor once against the configured token store."""
    from projectflow.api.oauth2.janitor import TokenJanitor
    from projectflow.api.oauth2.models import utcnow
    from projectflow.api.oauth2.storage import OAuthStorage

    if settings.token_store_path is None:
        raise ConfigurationError(
            "PROJECTFLOW_TOKEN_STORE_PATH is not set; in-memory tokens can only be "
            "cleaned through the /api/cron/cleanup-tokens endpoint"
        )
    deleted = TokenJanitor(OAuthStorage(settings.token_store_path)).cleanup()
    print(
        json.dumps(
            {
                "success": True,
                "message": f"Cleaned up {deleted} expired tokens",
                "deletedCount": deleted,
                "timestamp": utcnow().isoformat(),
            }
        )
    )
    return deleted


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="ProjectFlow - OAuth 2.1 authorization server for MCP clients",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  projectflow serve                  Start the API server
  projectflow serve --dev            Start with auto-reload (dev mode)
  projectflow cleanup-tokens         Delete expired and revoked tokens
""",
    )
    parser.add_argument(
        "command",
        choices=["serve", "cleanup-tokens"],
        help="'serve' starts the API server; 'cleanup-tokens' runs the token janitor once",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind (default: 8000)")
    parser.add_argument("--dev", action="store_true", help="Auto-reload on code changes")
    parser.add_argument("--version", action="version", version=f"%(prog)s {_version()}")

    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(level=settings.log_level)

    try:
        if args.command == "serve":
            from projectflow.api.serve import run_api_server

            run_api_server(host=args.host, port=args.port, dev=args.dev)
        else:
            run_cleanup(settings)
    except ConfigurationError as exc:
        logger.error("%s", exc.message)
        raise SystemExit(2) from exc
    except KeyboardInterrupt:
        logger.info("ProjectFlow stopped.")


if __name__ == "__main__":
    main()
