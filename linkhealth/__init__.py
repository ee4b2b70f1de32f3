"""LinkHealth - URL health monitoring for externally sourced records."""

import argparse
import asyncio
import logging
import sys

__version__ = "0.1.0"

logger = logging.getLogger(__name__)

# Exit code for a run interrupted with Ctrl+C (128 + SIGINT).
EXIT_INTERRUPTED = 130


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


def _cmd_run(args: argparse.Namespace) -> None:
    """Execute the run command - check all records once and report."""
    _setup_logging(args.verbose)

    logger.info("LinkHealth %s starting...", __version__)

    # Import here to allow logging setup first
    from .config import ConfigError, load_config
    from .monitor import Monitor
    from .reporter import format_console_report, write_csv_report, write_json_report
    from .sources import FileRecordSource, SourceError

    # 1. Load configuration
    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(1)

    if args.config:
        logger.info("Configuration loaded from %s", args.config)
    if config.auth.use_auto_auth:
        logger.info("Auto-authentication enabled, tokens come from %s", config.auth.credential_tool)
    elif not config.auth.cookies:
        logger.warning("No authentication configured for managed-store URLs")

    # 2. Run monitoring
    source = FileRecordSource(args.records or config.source.path)
    monitor = Monitor(config, source)

    try:
        report = asyncio.run(monitor.run())
    except SourceError as e:
        logger.error("Failed to fetch records: %s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.warning("Monitoring interrupted by user")
        sys.exit(EXIT_INTERRUPTED)

    # 3. Reports
    print(format_console_report(report))

    try:
        if config.output.json and not args.no_json:
            write_json_report(report, config.output.directory)
        if config.output.csv and not args.no_csv:
            write_csv_report(report, config.output.directory)
    except OSError as e:
        logger.error("Failed to write report: %s", e)
        sys.exit(1)

    if report.has_issues:
        logger.warning("Monitoring completed with issues found")
        sys.exit(1)

    logger.info("Monitoring completed successfully - all URLs are healthy")


def _cmd_check_auth(args: argparse.Namespace) -> None:
    """Execute the check-auth command - verify the credential tool login."""
    _setup_logging(args.verbose)

    from .auth import AuthTokenCache
    from .config import ConfigError, load_config
    from .preflight import run_preflight

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)

    result = asyncio.run(run_preflight(AuthTokenCache(config.auth.credential_tool)))

    status = "✓ OK" if result.ok else "✗ FAILED"
    print(f"{status}: {result.message}")

    if not result.ok:
        print(f"\nRun '{config.auth.credential_tool} auth:login' or configure static data store cookies.")
        sys.exit(1)


def main() -> None:
    """Main entry point for the linkhealth package."""
    parser = argparse.ArgumentParser(
        description="LinkHealth - URL health monitoring for externally sourced records"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"linkhealth {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # Run subcommand (default behavior)
    run_parser = subparsers.add_parser(
        "run",
        help="Check all records once and write reports (default)",
    )
    run_parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to configuration file (default: built-in defaults)",
    )
    run_parser.add_argument(
        "-r", "--records",
        default=None,
        help="Path to the records file (overrides source.path)",
    )
    run_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    run_parser.add_argument(
        "--no-json",
        action="store_true",
        help="Do not write the JSON report",
    )
    run_parser.add_argument(
        "--no-csv",
        action="store_true",
        help="Do not write the CSV report",
    )
    run_parser.set_defaults(func=_cmd_run)

    # Check-auth subcommand
    auth_parser = subparsers.add_parser(
        "check-auth",
        help="Verify that the credential tool is installed and logged in",
    )
    auth_parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to configuration file (default: built-in defaults)",
    )
    auth_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    auth_parser.set_defaults(func=_cmd_check_auth)

    args = parser.parse_args()

    # Default to 'run' if no command specified
    if args.command is None:
        args = run_parser.parse_args([])

    args.func(args)
