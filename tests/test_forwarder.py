import asyncio
import json
import logging

import httpx
import pytest

from slackline.forwarder import WebhookForwarder
from slackline.models import NotificationEvent

WEBHOOK = "https://hooks.example.test/slack"


def _event():
    return NotificationEvent.notification("New message from U1", {"body": "hi", "source": "slack-websocket"})


@pytest.mark.asyncio
async def test_forward_posts_event_json():
    captured = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(204)

    forwarder = WebhookForwarder(WEBHOOK, transport=httpx.MockTransport(handler))
    try:
        assert await forwarder.forward(_event()) is True
    finally:
        await forwarder.close()

    request = captured[0]
    assert request.method == "POST"
    assert str(request.url) == WEBHOOK
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == {
        "type": "notification",
        "data": {"title": "New message from U1", "options": {"body": "hi", "source": "slack-websocket"}},
    }


@pytest.mark.asyncio
async def test_forward_title_event_has_no_options():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200)

    forwarder = WebhookForwarder(WEBHOOK, transport=httpx.MockTransport(handler))
    await forwarder.forward(NotificationEvent.title_change("(3) Slack"))
    await forwarder.close()

    assert bodies == [{"type": "title", "data": {"title": "(3) Slack"}}]


@pytest.mark.asyncio
async def test_non_success_status_is_reported(caplog):
    errors = []
    forwarder = WebhookForwarder(
        WEBHOOK,
        on_error=errors.append,
        transport=httpx.MockTransport(lambda request: httpx.Response(503)),
    )

    with caplog.at_level(logging.WARNING, logger="slackline.forwarder"):
        assert await forwarder.forward(_event()) is False
    await forwarder.close()

    assert isinstance(errors[0], httpx.HTTPStatusError)
    assert "503 Service Unavailable" in caplog.text


@pytest.mark.asyncio
async def test_network_error_is_reported_not_raised():
    errors = []

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    forwarder = WebhookForwarder(WEBHOOK, on_error=errors.append, transport=httpx.MockTransport(handler))

    assert await forwarder.forward(_event()) is False
    await forwarder.close()

    assert isinstance(errors[0], httpx.ConnectError)


@pytest.mark.asyncio
async def test_failing_error_callback_is_contained():
    def explode(exc):
        raise ValueError("callback broke")

    forwarder = WebhookForwarder(
        WEBHOOK,
        on_error=explode,
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )

    assert await forwarder.forward(_event()) is False
    await forwarder.close()


@pytest.mark.asyncio
async def test_submit_delivers_in_background():
    delivered = asyncio.Event()

    def handler(request: httpx.Request) -> httpx.Response:
        delivered.set()
        return httpx.Response(200)

    forwarder = WebhookForwarder(WEBHOOK, transport=httpx.MockTransport(handler))
    task = forwarder.submit(_event())
    assert forwarder.inflight == 1

    await task
    assert delivered.is_set()
    assert forwarder.inflight == 0
    await forwarder.close()


@pytest.mark.asyncio
async def test_close_cancels_inflight_deliveries():
    release = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        await release.wait()
        return httpx.Response(200)

    forwarder = WebhookForwarder(WEBHOOK, transport=httpx.MockTransport(handler))
    task = forwarder.submit(_event())
    await asyncio.sleep(0)

    await forwarder.close()

    assert task.cancelled()
    assert forwarder.inflight == 0
