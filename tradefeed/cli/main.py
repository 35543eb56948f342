"""tradefeed CLI entrypoint.

Usage: tradefeed --config tradefeed.toml --set stream.live=false

Options:
  --config FILE         TOML settings file (optional; defaults apply otherwise)
  --set KEY=VALUE       Override a settings entry, dotted path (may be repeated)
  --log-level LEVEL     Overrides settings.log_level
  --env-file PATH       dotenv file with TRADEFEED_* credentials (default: .env)

Credentials are read from the environment:
  SSO:      TRADEFEED_SSO_CLIENT_ID, TRADEFEED_SSO_CLIENT_SECRET
  BUILD_IN: TRADEFEED_TBWA_USERNAME, TRADEFEED_TBWA_PASSWORD
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from tradefeed.adapters.env_provider import EnvSecretsProvider
from tradefeed.adapters.jsonl import JsonlTelemetry
from tradefeed.app import TradeFeedApp
from tradefeed.auth.token import TokenProvider
from tradefeed.config.settings import AppSettings, load_settings
from tradefeed.errors import AuthenticationError, ConfigurationError

logger = logging.getLogger("tradefeed")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    """
    Return the top-level CLI argument parser.
    """
    p = argparse.ArgumentParser(
        prog="tradefeed",
        description="Subscribe to a trades query and report closed order lifecycles",
    )
    p.add_argument("--config", type=Path, required=False, help="Path to TOML settings")
    p.add_argument(
        "--set",
        dest="config_overrides",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a settings entry (may be repeated)",
    )
    p.add_argument("--log-level", default=None, help="Logging level, e.g. DEBUG")
    p.add_argument("--env-file", type=Path, default=Path(".env"), help="dotenv file")
    return p


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_app(settings: AppSettings) -> TradeFeedApp:
    """Composition root: wire settings, secrets, token source and telemetry."""
    provider = TokenProvider(settings.auth, EnvSecretsProvider())
    telemetry = (
        JsonlTelemetry(settings.closed_trades_path, component="tradefeed")
        if settings.closed_trades_path is not None
        else None
    )
    return TradeFeedApp(settings, provider.fetch_token, telemetry=telemetry)


async def _run(app: TradeFeedApp) -> int:
    try:
        await app.run()
    except AuthenticationError as e:
        logger.error(f"Error: {e}")
        return EXIT_FAILURE
    except asyncio.CancelledError:
        await app.stop()
        raise
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.env_file.exists():
        load_dotenv(dotenv_path=args.env_file)

    try:
        settings = load_settings(args.config, args.config_overrides)
    except ConfigurationError as e:
        configure_logging(args.log_level or "INFO")
        logger.error(f"Invalid configuration: {e}")
        return EXIT_FAILURE

    configure_logging(args.log_level or settings.log_level)
    app = build_app(settings)

    try:
        return asyncio.run(_run(app))
    except KeyboardInterrupt:
        logger.warning("Interrupted, subscription disconnected")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
