# ShowStore Controller
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
HTTP client for the ELC ShowStore.

ShowStore HTTP interface (all GET, no auth):
  GET /status.xml     — live state of every player
  GET /toc.xml        — table of contents (loadable shows)
  GET /?<command>     — execute a wire command, e.g. /?1ST03

Transport and parse failures are raised as NetworkError / ParseError /
ProtocolAnomaly; callers decide whether to log and carry on.
"""

import asyncio
import logging

import aiohttp

from .errors import NetworkError
from .status import parse_status, parse_toc

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 3.0  # seconds


class ShowStoreDevice:
    """Thin aiohttp wrapper around the three ShowStore resources."""

    def __init__(self, base_url: str, session: aiohttp.ClientSession | None = None,
                 timeout: float = DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def start(self):
        if self._session is None:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": "ShowStore-Controller/1.0"},
            )
            self._owns_session = True
        logger.info("ShowStore client ready -> %s", self.base_url)

    async def close(self):
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    async def _get(self, path: str) -> str:
        """GET *path* relative to the device root and return the body text."""
        if self._session is None:
            raise NetworkError("ShowStore client not started")
        url = f"{self.base_url}{path}"
        try:
            async with self._session.get(
                url, timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as resp:
                resp.raise_for_status()
                return await resp.text()
        except asyncio.TimeoutError as e:
            raise NetworkError(f"{path}: timed out after {self.timeout}s") from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"{path}: {e}") from e

    async def fetch_status(self):
        """Fetch and parse status.xml → list of PlayerStatus."""
        return parse_status(await self._get("/status.xml"))

    async def fetch_toc(self):
        """Fetch and parse toc.xml → list of Show."""
        return parse_toc(await self._get("/toc.xml"))

    async def send(self, command: str) -> None:
        """Send one wire command.  The response body carries no information."""
        await self._get(f"/?{command}")
        logger.debug("Command %s acknowledged", command)
