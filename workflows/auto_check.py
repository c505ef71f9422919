#!/usr/bin/env python3
"""Run the smart-link auto-checker as a standalone worker.

Probes overdue endpoints of every campaign with auto-check enabled, on a
fixed poll period, without the web server.

Usage:
    # Run continuously (poll period from AUTO_CHECK_POLL_SEC, default 15s)
    uv run python -m workflows.auto_check

    # Single tick and exit
    uv run python -m workflows.auto_check --once

    # Custom poll period
    uv run python -m workflows.auto_check --poll-interval 30
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger

from db.client import init_db, close_db
from services.smartlink.auto_checker import AutoChecker
from services.smartlink.config import SmartLinkConfig
from services.smartlink.service import SmartLinkService


def configure_logging(verbose: bool = False) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else "INFO",
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


async def run(once: bool = False, poll_interval: float = 0) -> None:
    config = SmartLinkConfig.from_env()
    service = SmartLinkService(config=config)
    checker = AutoChecker(service, poll_interval=poll_interval or None)

    await init_db()
    try:
        if once:
            stats = await checker.run_once()
            logger.info(
                f"Tick complete: campaigns={stats.campaigns} probed={stats.checked} "
                f"failed={stats.failed} errors={stats.errors} all_down={stats.all_down}"
            )
            return

        # Handle shutdown signals
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, checker.request_shutdown)

        await checker.run_forever()
    finally:
        await service.aclose()
        await close_db()


def main():
    parser = argparse.ArgumentParser(description="Smart-link endpoint auto-checker")
    parser.add_argument("--once", action="store_true", help="Run a single tick and exit")
    parser.add_argument("--poll-interval", type=float, default=0, help="Seconds between ticks (default: AUTO_CHECK_POLL_SEC)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    configure_logging(args.verbose)
    asyncio.run(run(once=args.once, poll_interval=args.poll_interval))


if __name__ == "__main__":
    main()
