"""Command line entry point (``mmm``).

Subcommands:

- ``mmm init GAME_VERSION`` -- write a default manifest.
- ``mmm install`` -- install every declared mod and record the lock.
- ``mmm update`` -- move non-pinned mods to their newest release.
- ``mmm scan [--add] [--prefer PLATFORM]`` -- identify jars the lock does
  not name, optionally recording them.
- ``mmm list`` -- declared mods and whether they are installed.

Exit codes:
    0 success or nothing to do, 1 partial failure or an aborted run,
    2 stopped before any change because of local files,
    3 configuration error, 130 interrupted.
"""

import argparse
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any

import requests
import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from . import __version__
from .config import Config
from .config_loader import discover_config_files, load_hierarchical_config
from .config_schema import Settings, build_settings, to_config
from .core.async_utils import CancelToken
from .core.http import Downloader
from .errors import (
    ConfigFileInvalidError,
    ConfigFileNotFoundError,
    LockFileInvalidError,
    ModManagerError,
    OperationCancelledError,
    UnmanagedFilesError,
    UnresolvedFilesError,
)
from .logger import setup_logging
from .manifest import DEFAULT_CONFIG_NAME, Metadata, init_config
from .models import Platform
from .platforms import build_catalog, build_session
from .sync import (
    InstallReconciler,
    RunOutcome,
    ScanReconciler,
    UpdateReconciler,
    format_install_report,
    format_list_report,
    format_scan_report,
    format_update_report,
    list_mods,
    list_to_json,
    report_to_json,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_ABORTED = 2
EXIT_CONFIG = 3
EXIT_INTERRUPTED = 130

CONFIG_ERRORS = (
    ConfigFileNotFoundError,
    ConfigFileInvalidError,
    LockFileInvalidError,
    ValidationError,
    ValueError,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mmm",
        description="Minecraft Mod Manager - keep a mods folder in sync with modlist.json",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create a manifest for Minecraft 1.20.1
  mmm init 1.20.1

  # Install everything declared in modlist.json
  mmm install

  # Update using another manifest, JSON report on stdout
  mmm -c servers/survival.json update --json

  # Start managing jars that were copied in by hand
  mmm scan --add

Settings (API keys, rate limits) are read from CLI args, environment
variables (a .env file is loaded), then .mmm/settings.yml or
~/.config/mmm/settings.yml.
        """,
    )
    parser.add_argument(
        "-c",
        "--config",
        default=DEFAULT_CONFIG_NAME,
        help=f"Path to the mods manifest (default: {DEFAULT_CONFIG_NAME})",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only log warnings and errors",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging (overrides LOG_LEVEL)",
    )
    parser.add_argument(
        "--log-file",
        help="Also append log records to this file",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Log record format on stderr (default: text)",
    )
    parser.add_argument(
        "--curseforge-api-key",
        help="CurseForge API key (prefer CURSEFORGE_API_KEY env var; "
        "visible in process list)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"minecraft-mod-manager version {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser(
        "init", help="Write a default manifest"
    )
    init_parser.add_argument(
        "game_version", help="Target Minecraft version, e.g. 1.20.1"
    )

    reporting = {}
    for name, help_text in (
        ("install", "Install every declared mod"),
        ("update", "Update non-pinned mods to their newest release"),
        ("scan", "Identify mod files the lock does not name"),
        ("list", "List declared mods and whether they are installed"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument(
            "--json",
            action="store_true",
            help="Print the report as JSON on stdout",
        )
        reporting[name] = sub

    reporting["scan"].add_argument(
        "-a",
        "--add",
        action="store_true",
        help="Record identified files in the manifest and lock",
    )
    reporting["scan"].add_argument(
        "-p",
        "--prefer",
        choices=[platform.value for platform in Platform],
        default=Platform.MODRINTH.value,
        help="Catalog to attribute files to when both recognise them "
        "(default: modrinth)",
    )

    return parser


def load_settings(args: argparse.Namespace) -> tuple[Settings, Config]:
    """Resolve tool settings from every source.

    Raises:
        ValueError: A setting is invalid.
        pydantic.ValidationError: The settings file is invalid.
    """
    # .env first, so ${VAR} interpolation in YAML can use its values
    load_dotenv()

    settings = build_settings(load_hierarchical_config())
    overrides: dict[str, Any] = {"debug": args.debug}
    if args.curseforge_api_key:
        overrides["curseforge_api_key"] = args.curseforge_api_key
    config = to_config(settings, cli_overrides=overrides)
    return settings, config


def _install_interrupt_handler(cancel: CancelToken) -> None:
    """Cancel the run on Ctrl-C before the interrupt unwinds the loop.

    Worker threads observe the token, so they stop at their next check
    instead of holding up interpreter shutdown.
    """

    def _handler(signum, frame):
        cancel.cancel()
        raise KeyboardInterrupt

    signal.signal(signal.SIGINT, _handler)


def _exit_code(outcome: RunOutcome) -> int:
    if outcome in (RunOutcome.SUCCESS, RunOutcome.NOTHING_TO_DO):
        return EXIT_OK
    if outcome == RunOutcome.ABORTED:
        return EXIT_ABORTED
    return EXIT_FAILURE


def _run_command(
    args: argparse.Namespace,
    config: Config,
    cancel: CancelToken,
    catalog=None,
    downloader=None,
) -> int:
    config_path = Path(args.config)

    if args.command == "init":
        meta = Metadata(config_path)
        if config_path.exists():
            logger.error("%s already exists", config_path)
            return EXIT_CONFIG
        init_config(meta, args.game_version)
        logger.info("Created %s", config_path)
        return EXIT_OK

    if args.command == "list":
        mods = list_mods(config_path)
        if args.json:
            print(json.dumps(list_to_json(mods), indent=2))
        else:
            print(format_list_report(mods))
        return EXIT_OK

    if catalog is None or downloader is None:
        http = build_session(
            requests_per_second=config.requests_per_second,
            max_retries=config.max_retries,
            retry_interval=config.retry_interval,
            metadata_timeout=config.metadata_timeout,
            download_timeout=config.download_timeout,
        )
        catalog = catalog or build_catalog(
            http,
            modrinth_api_key=config.modrinth_api_key,
            curseforge_api_key=config.curseforge_api_key,
            modrinth_api_url=config.modrinth_api_url,
            curseforge_api_url=config.curseforge_api_url,
        )
        downloader = downloader or Downloader(http)

    if args.command == "scan":
        scanner = ScanReconciler(
            config_path,
            catalog,
            prefer=Platform(args.prefer),
            add=args.add,
            max_parallel=config.max_parallel_requests,
            cancel=cancel,
        )
        result = scanner.run()
        if args.json:
            print(json.dumps(report_to_json(result), indent=2))
        else:
            print(format_scan_report(result))
        return _exit_code(result.outcome)

    reconciler_cls = (
        InstallReconciler if args.command == "install" else UpdateReconciler
    )
    reconciler = reconciler_cls(
        config_path,
        catalog,
        downloader,
        max_parallel=config.max_parallel_requests,
        cancel=cancel,
    )
    result = reconciler.run()

    if args.json:
        print(json.dumps(report_to_json(result), indent=2))
    elif args.command == "install":
        print(format_install_report(result))
    else:
        print(format_update_report(result))
    return _exit_code(result.outcome)


def main(
    argv: list[str] | None = None,
    catalog=None,
    downloader=None,
    cancel: CancelToken | None = None,
) -> int:
    """Parse *argv*, run the command and return the process exit code.

    *catalog* and *downloader* replace the network-backed collaborators.
    """
    args = build_parser().parse_args(argv)
    cancel = cancel or CancelToken()

    try:
        settings, config = load_settings(args)
    except (ValidationError, ValueError, yaml.YAMLError, OSError) as e:
        setup_logging(debug=args.debug, quiet=args.quiet)
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG

    setup_logging(
        debug=config.debug,
        quiet=args.quiet,
        log_file=args.log_file or settings.logging.file,
        log_format=args.log_format,
        level=settings.logging.level,
    )
    settings_files = discover_config_files()
    if settings_files:
        logger.debug("Settings loaded from: %s", settings_files[0])

    try:
        return _run_command(args, config, cancel, catalog, downloader)
    except (UnresolvedFilesError, UnmanagedFilesError) as e:
        logger.error("%s", e)
        return EXIT_ABORTED
    except CONFIG_ERRORS as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG
    except (KeyboardInterrupt, OperationCancelledError):
        cancel.cancel()
        logger.warning("Interrupted.")
        return EXIT_INTERRUPTED
    except (ModManagerError, requests.RequestException, OSError) as e:
        logger.error("Run aborted: %s", e)
        return EXIT_FAILURE


def run() -> None:
    """Entry point for the ``mmm`` console script."""
    cancel = CancelToken()
    _install_interrupt_handler(cancel)
    sys.exit(main(cancel=cancel))


if __name__ == "__main__":
    run()
