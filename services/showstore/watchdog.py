# ShowStore Controller
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""Systemd notify/watchdog support for the controller service.

Sends READY=1 once, then WATCHDOG=1 (plus an optional STATUS= line) at a
fixed interval.  Silently no-ops when NOTIFY_SOCKET is unset (dev mode).

Usage:
    from showstore.watchdog import watchdog_loop
    asyncio.create_task(watchdog_loop(status=lambda: "mode 1, polling"))
"""

import asyncio
import logging
import os
import socket

logger = logging.getLogger(__name__)


def _socket_address() -> str | None:
    addr = os.environ.get("NOTIFY_SOCKET")
    if not addr:
        return None
    if addr[0] == "@":
        addr = "\0" + addr[1:]
    return addr


def sd_notify(msg: str) -> bool:
    """Send one notification to systemd.  Returns False when not under systemd."""
    addr = _socket_address()
    if addr is None:
        return False
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)
    try:
        sock.sendto(msg.encode(), addr)
        return True
    except OSError as e:
        logger.debug("sd_notify failed: %s", e)
        return False
    finally:
        sock.close()


def heartbeat_message(status: str | None = None) -> str:
    if status:
        return f"WATCHDOG=1\nSTATUS={status}"
    return "WATCHDOG=1"


async def watchdog_loop(interval: int = 20, status=None):
    """Heartbeat every *interval* seconds.  Run with asyncio.create_task().

    *status* is an optional zero-argument callable whose result is reported
    as the unit's STATUS line.
    """
    sd_notify("READY=1")
    logger.info("Watchdog started (interval=%ds)", interval)
    while True:
        sd_notify(heartbeat_message(status() if status else None))
        await asyncio.sleep(interval)
