# spotwatch
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""Systemd watchdog heartbeat for the watcher daemon.

Sends WATCHDOG=1 to the systemd notify socket at regular intervals.
Silently no-ops when NOTIFY_SOCKET is unset (macOS / dev mode).

Usage:
    from spotwatch.lib.watchdog import watchdog_loop
    asyncio.create_task(watchdog_loop())
"""

import asyncio
import logging
import os
import socket

logger = logging.getLogger(__name__)


def sd_notify(msg: str) -> bool:
    """Send a notification message to the systemd notify socket.

    Returns True if a message was sent.
    """
    addr = os.environ.get("NOTIFY_SOCKET")
    if not addr:
        return False
    if addr[0] == "@":
        addr = "\0" + addr[1:]
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)
    try:
        sock.sendto(msg.encode(), addr)
    finally:
        sock.close()
    return True


async def watchdog_loop(interval: float = 20):
    """Send WATCHDOG=1 every *interval* seconds.  Call as asyncio.create_task().

    Also sends READY=1 on first invocation so systemd knows the watcher
    has finished startup (requires Type=notify in the unit file).
    """
    if not sd_notify("READY=1"):
        logger.debug("NOTIFY_SOCKET unset — watchdog disabled")
        return
    logger.info("Watchdog started (interval=%ss)", interval)
    try:
        while True:
            sd_notify("WATCHDOG=1")
            await asyncio.sleep(interval)
    finally:
        sd_notify("STOPPING=1")
