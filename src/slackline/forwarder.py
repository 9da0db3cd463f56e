from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

import httpx

from .models import NotificationEvent

logger = logging.getLogger("slackline.forwarder")


class WebhookForwarder:
    """Best-effort POST of each event to a webhook.

    No retries, no queue: every event gets its own in-flight task, and
    ``close()`` cancels whatever is still running.
    """

    def __init__(
        self,
        webhook_url: str,
        timeout_seconds: float = 10.0,
        on_error: Callable[[Exception], None] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.webhook_url = webhook_url
        self.on_error = on_error
        self._client = httpx.AsyncClient(timeout=timeout_seconds, transport=transport)
        self._inflight: set[asyncio.Task[None]] = set()

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    async def forward(self, event: NotificationEvent) -> bool:
        try:
            response = await self._client.post(self.webhook_url, json=event.to_dict())
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Webhook returned error: %s %s",
                exc.response.status_code,
                exc.response.reason_phrase,
            )
            self._report(exc)
            return False
        except httpx.HTTPError as exc:
            logger.warning("Failed to send webhook: %s", exc)
            self._report(exc)
            return False
        return True

    def submit(self, event: NotificationEvent) -> asyncio.Task[None]:
        """Schedule delivery without waiting for it; usable as an EventBus handler."""

        async def _deliver() -> None:
            await self.forward(event)

        task = asyncio.get_running_loop().create_task(_deliver())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def close(self) -> None:
        pending = list(self._inflight)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self._client.aclose()

    def _report(self, exc: Exception) -> None:
        if self.on_error is None:
            return
        try:
            self.on_error(exc)
        except Exception:
            logger.debug("Webhook error callback failed", exc_info=True)
