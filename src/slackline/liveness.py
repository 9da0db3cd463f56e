from __future__ import annotations

import asyncio
import logging
import time

import httpx

from .errors import LaunchTimeout

logger = logging.getLogger("slackline.liveness")

METADATA_PATH = "/json/version"


class LivenessProber:
    """Answers "is the CDP endpoint up" by asking it, never by trusting a pid."""

    def __init__(
        self,
        timeout_seconds: float = 2.0,
        interval_seconds: float = 0.3,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout_seconds = timeout_seconds
        self.interval_seconds = interval_seconds
        self._transport = transport

    async def reachable(self, cdp_url: str) -> bool:
        url = f"{cdp_url.rstrip('/')}{METADATA_PATH}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL, OSError, ValueError):
            return False
        return response.is_success

    async def wait_until_reachable(self, cdp_url: str, timeout_seconds: float) -> None:
        deadline = time.monotonic() + timeout_seconds
        while time.monotonic() < deadline:
            if await self.reachable(cdp_url):
                return
            await asyncio.sleep(self.interval_seconds)
        logger.warning("CDP endpoint %s not reachable after %.1fs", cdp_url, timeout_seconds)
        raise LaunchTimeout(cdp_url, timeout_seconds)

    async def wait_until_unreachable(self, cdp_url: str, timeout_seconds: float, interval_seconds: float) -> bool:
        """Poll until the endpoint goes away; returns False if it is still up at the deadline."""
        deadline = time.monotonic() + timeout_seconds
        while time.monotonic() < deadline:
            if not await self.reachable(cdp_url):
                return True
            await asyncio.sleep(interval_seconds)
        return not await self.reachable(cdp_url)
