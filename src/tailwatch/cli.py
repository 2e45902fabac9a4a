#!/usr/bin/env python3
"""
CLI for tailing log files.

Usage:
    tailwatch /var/log/app.log
    tailwatch --poll --interval 500 /var/log/app.log /var/log/other.log
    tailwatch --spool data/lines.db /var/log/app.log
"""

import argparse
import logging
import signal
import sys
import time
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .agent import TailAgent
from .config import TailConfig
from .spool import PrintSink

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("tailwatch.cli")


class GracefulShutdown:
    """Handle graceful shutdown on SIGINT/SIGTERM."""

    def __init__(self):
        self.should_exit = False
        signal.signal(signal.SIGINT, self._handler)
        signal.signal(signal.SIGTERM, self._handler)

    def _handler(self, signum, frame):
        logger.info("Received shutdown signal, stopping...")
        self.should_exit = True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tailwatch",
        description="Tail log files across rotations and hand their lines to a spool or stdout.",
    )
    parser.add_argument("files", nargs="+", help="Log files to tail")
    parser.add_argument("--poll", action="store_true", help="Poll files instead of using change notifications")
    parser.add_argument("--interval", type=int, default=None, help="Poll interval in milliseconds")
    parser.add_argument("--spool", default=None, help="SQLite spool database for collected lines")
    parser.add_argument("--from-end", action="store_true",
                        help="Skip content already in the files (those lines are never delivered)")
    parser.add_argument("--polling-observer", action="store_true",
                        help="Use watchdog's polling observer as the notification backend")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def build_config(args: argparse.Namespace) -> TailConfig:
    """Merge command line options over environment configuration."""
    overrides = {}
    if args.poll:
        overrides["mode"] = "poll"
    if args.interval is not None:
        overrides["poll_interval_ms"] = args.interval
    if args.spool:
        overrides["spool_path"] = Path(args.spool).resolve()
    if args.from_end:
        overrides["tail_from_end"] = True
    if args.polling_observer:
        overrides["use_polling_observer"] = True
    return replace(TailConfig.from_env(), **overrides)


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    try:
        config = build_config(args)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    sink_factory = None if config.spool_path else PrintSink
    shutdown = GracefulShutdown()

    with TailAgent(config=config, sink_factory=sink_factory) as agent:
        failed = [path for path in args.files if not agent.add_file(path)]
        for path in failed:
            logger.error(f"Could not tail {path}")
        if len(failed) == len(args.files):
            return 1

        agent.start()
        logger.info(f"Tailing {len(agent.files())} file(s) in {config.mode} mode")
        if config.spool_path:
            logger.info(f"Spool: {config.spool_path}")
        logger.info("Press Ctrl+C to stop")

        ticks = 0
        while not shutdown.should_exit:
            time.sleep(0.5)
            ticks += 1
            # Log spool backlog periodically
            if agent.spool is not None and ticks % 10 == 0:
                logger.debug(f"{agent.spool.size()} line(s) pending in spool")

    logger.info("Stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
