"""Command line launcher.

Resolves a volume name to its JSON configuration and builds it, or
builds every configured volume with ``all``. Volumes run in separate
worker processes, at most ``--jobs`` at a time, so that building many
volumes does not open an unbounded number of simultaneous connections.

Usage::

    novelbind 21
    novelbind all --jobs 2
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from concurrent.futures import Executor, ProcessPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from dotenv import load_dotenv

from .assembler import assemble
from .config import (
    Settings,
    VolumeConfig,
    list_volumes,
    load_volume_config,
    volume_from_environment,
)
from .errors import ConfigurationError, NovelbindError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="novelbind",
        description="Scrape web-novel chapters and bind each volume into an EPUB",
    )
    parser.add_argument(
        "volume", nargs="?", default=None,
        help="Volume name (base name of a configuration file) or 'all'",
    )
    parser.add_argument(
        "--jobs", "-j", type=int, default=None, metavar="N",
        help="Maximum number of volumes built at the same time",
    )
    parser.add_argument(
        "--config-dir", type=Path, default=None, metavar="DIR",
        help="Directory holding the volume configuration files",
    )
    parser.add_argument(
        "--no-cache", action="store_true", default=False,
        help="Fetch chapters again for the HTML preview",
    )
    parser.add_argument("--verbose", "-v", action="store_true", default=False)
    return parser.parse_args(argv)


def print_available_volumes(config_dir: Path) -> None:
    if not config_dir.is_dir():
        print(f"Configuration directory not found: {config_dir}", file=sys.stderr)
        return
    names = list_volumes(config_dir)
    print(
        f"Pass a volume name or 'all'. Available volumes: {', '.join(names)} | all",
        file=sys.stderr,
    )


def build_volume(volume: str, config: VolumeConfig, settings: Settings) -> int:
    """Build one volume in the current process and return an exit code."""
    try:
        result = asyncio.run(assemble(config, settings))
    except NovelbindError as exc:
        logger.error("[%s] %s", volume, exc)
        return 1
    logger.info("[%s] %d chapters bound into %s", volume, result.chapter_count, result.epub_path)
    return 0


def load_and_build(volume: str, config_path: Path, settings: Settings, log_level: int) -> int:
    """Worker process entry point."""
    configure_logging(log_level)
    try:
        config = load_volume_config(config_path)
    except ConfigurationError as exc:
        logger.error("[%s] %s", volume, exc)
        return 1
    return build_volume(volume, config, settings)


def run_volumes(
    volumes: List[Tuple[str, Path]],
    settings: Settings,
    log_level: int = logging.INFO,
    executor_factory: Callable[[int], Executor] = ProcessPoolExecutor,
) -> int:
    """Build ``volumes`` with at most ``settings.jobs`` running at once.

    Returns 0 when every volume succeeded, 1 otherwise.
    """
    failures = 0
    workers = max(1, min(settings.jobs, len(volumes)))
    with executor_factory(workers) as pool:
        futures = {
            pool.submit(load_and_build, name, path, settings, log_level): name
            for name, path in volumes
        }
        for future in as_completed(futures):
            name = futures[future]
            try:
                code = future.result()
            except Exception:
                logger.exception("[%s] worker failed", name)
                code = 1
            logger.info("Process finished for '%s' with code %d", name, code)
            if code:
                failures += 1
    return 1 if failures else 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    log_level = logging.DEBUG if args.verbose else logging.INFO
    configure_logging(log_level)

    try:
        settings = Settings.from_env()
    except ConfigurationError as exc:
        print(f"Invalid settings: {exc}", file=sys.stderr)
        return 1
    if args.config_dir is not None:
        settings.config_dir = args.config_dir
    if args.jobs is not None:
        if args.jobs < 1:
            print("--jobs must be at least 1", file=sys.stderr)
            return 1
        settings.jobs = args.jobs
    if args.no_cache:
        settings.cache_fragments = False
    config_dir = settings.config_dir

    if args.volume is None:
        if os.environ.get("CHAPTER_FILE"):
            try:
                volume, config = volume_from_environment(os.environ)
            except ConfigurationError as exc:
                print(str(exc), file=sys.stderr)
                return 1
            return build_volume(volume, config, settings)
        print_available_volumes(config_dir)
        return 1

    if not config_dir.is_dir():
        print(f"Configuration directory not found: {config_dir}", file=sys.stderr)
        return 1

    if args.volume == "all":
        names = list_volumes(config_dir)
        if not names:
            print(f"No configuration file found in {config_dir}", file=sys.stderr)
            return 1
        logger.info("Building all volumes: %d configuration files found", len(names))
        volumes = [(name, config_dir / f"{name}.json") for name in names]
    else:
        config_path = config_dir / f"{args.volume}.json"
        if not config_path.is_file():
            print(f"Configuration file not found for '{args.volume}'", file=sys.stderr)
            print_available_volumes(config_dir)
            return 1
        volumes = [(args.volume, config_path)]

    return run_volumes(volumes, settings, log_level=log_level)
