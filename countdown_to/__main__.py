#!/usr/bin/env python3
"""
Preview a countdown block in the terminal.

Usage:
    python -m countdown_to block.txt [--settings settings.yaml] [--once] [--log-file run.log]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .config import Settings, load_settings, setup_logging
from .errors import SettingsError
from .scheduler import InstanceScheduler
from .sink import ConsoleSink


logger = logging.getLogger("countdown_to")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="countdown_to",
        description="Render a countdown block and keep it updated",
    )
    parser.add_argument("block", type=Path, help="File holding the block text")
    parser.add_argument("--settings", type=Path, help="JSON or YAML settings file")
    parser.add_argument("--once", action="store_true", help="Render one frame and exit")
    parser.add_argument("--log-level", default="warning", help="Logging level (default: warning)")
    parser.add_argument("--log-file", type=Path, help="Append log records to this file instead of stderr")
    return parser


async def run(source: str, settings: Settings, once: bool) -> None:
    """Mount the block and keep the loop alive until interrupted."""
    scheduler = InstanceScheduler(settings=settings)
    instance_id = scheduler.mount(source, ConsoleSink())

    if once:
        scheduler.teardown()
        return

    try:
        await asyncio.Event().wait()
    finally:
        scheduler.unmount(instance_id)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        setup_logging(args.log_level, args.log_file)
        settings = load_settings(args.settings) if args.settings else Settings()
        source = args.block.read_text(encoding="utf-8")
    except (SettingsError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        asyncio.run(run(source, settings, args.once))
    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
    return 0


if __name__ == "__main__":
    sys.exit(main())
