#!/usr/bin/env python3
"""Bookwatch booking dashboard daemon."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
from dataclasses import replace

from bookwatch.dashboard.config import DashboardConfig
from bookwatch.dashboard.service import BookingDashboard

LOGGER = logging.getLogger("bookwatch-dashboard")


async def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--user", help="Watch this user id instead of following the identity topic")
    args = parser.parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    config = DashboardConfig.from_env()
    if args.user:
        config = replace(config, identity=replace(config.identity, static_user_id=args.user.strip() or None))
    dashboard = BookingDashboard(config)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _handle_signal(signum: int) -> None:
        LOGGER.info("Received signal %s, shutting down", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)

    await dashboard.start()
    try:
        await stop_event.wait()
    finally:
        with contextlib.suppress(asyncio.CancelledError):
            await dashboard.stop()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
