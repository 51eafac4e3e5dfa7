# ShowStore Controller
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Periodic status.xml fetch.

One asyncio task per running period.  Each tick fetches, parses and hands
the snapshot to ``on_status`` before the next sleep starts, so two
reconciliation passes can never interleave.  A failed tick is logged and
skipped; the poller only ever ends through ``stop()``.

    poller = StatusPoller(device.fetch_status, session.apply_status)
    poller.start()        # no-op if already running
    poller.stop()         # no-op if already stopped, safe from on_status
"""

import asyncio
import logging

from .errors import NetworkError, ParseError, ProtocolAnomaly

logger = logging.getLogger(__name__)

POLL_INTERVAL = 1.0  # seconds


class StatusPoller:
    def __init__(self, fetch, on_status, interval: float = POLL_INTERVAL):
        self._fetch = fetch            # async () -> list[PlayerStatus]
        self._on_status = on_status    # (list[PlayerStatus]) -> None
        self.interval = interval
        self._task: asyncio.Task | None = None
        self.cycles = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None

    def start(self, interval: float | None = None):
        if interval is not None:
            self.interval = interval
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._run())
        logger.debug("Status polling started (every %.2fs)", self.interval)

    def stop(self):
        task, self._task = self._task, None
        if task is None:
            return
        # From inside a tick the loop notices on its own; cancelling
        # ourselves would abort the reconciliation pass halfway
        if task is not asyncio.current_task():
            task.cancel()
        logger.debug("Status polling stopped")

    async def poll_once(self):
        """Fetch one snapshot.  Raises NetworkError, ParseError or ProtocolAnomaly."""
        return await self._fetch()

    async def _run(self):
        me = asyncio.current_task()
        try:
            while self._task is me:
                await asyncio.sleep(self.interval)
                if self._task is not me:
                    break
                await self._tick(me)
        except asyncio.CancelledError:
            pass

    async def _tick(self, me):
        try:
            statuses = await self.poll_once()
        except (NetworkError, ParseError, ProtocolAnomaly) as e:
            self.failures += 1
            logger.warning("Status poll skipped: %s", e)
            return
        if self._task is not me:
            # Stopped while the fetch was out; this snapshot predates a command
            return
        self.cycles += 1
        try:
            self._on_status(statuses)
        except Exception:
            logger.exception("Error applying status")
