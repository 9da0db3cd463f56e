import pytest

from conftest import FakeContext, FakePage
from slackline.errors import AlreadyListening, InterceptionUnavailable
from slackline.interceptor import FRAME_EVENT, FrameInterceptor


def _setup():
    page = FakePage()
    context = FakeContext([page])
    frames = []
    return page, context, frames, FrameInterceptor(page, frames.append)


@pytest.mark.asyncio
async def test_start_enables_network_and_forwards_text_frames():
    page, context, frames, interceptor = _setup()

    await interceptor.start()
    context.session.emit(FRAME_EVENT, {"response": {"opcode": 1, "payloadData": '{"type":"message"}'}})
    context.session.emit(FRAME_EVENT, {"response": {}})
    context.session.emit(FRAME_EVENT, {})

    assert context.session.sent == ["Network.enable"]
    assert interceptor.listening
    assert frames == ['{"type":"message"}']


@pytest.mark.asyncio
async def test_second_start_raises_already_listening():
    _, _, _, interceptor = _setup()
    await interceptor.start()

    with pytest.raises(AlreadyListening):
        await interceptor.start()


@pytest.mark.asyncio
async def test_session_failure_is_reported(playwright_error):
    _, context, _, interceptor = _setup()
    context.session_error = playwright_error("Target closed")

    with pytest.raises(InterceptionUnavailable, match="Target closed"):
        await interceptor.start()
    assert not interceptor.listening


@pytest.mark.asyncio
async def test_stop_detaches_and_allows_restart():
    _, context, frames, interceptor = _setup()
    await interceptor.start()

    await interceptor.stop()
    context.session.emit(FRAME_EVENT, {"response": {"payloadData": "late"}})

    assert context.session.detached
    assert not interceptor.listening
    assert frames == []

    await interceptor.stop()
    await interceptor.start()
    assert interceptor.listening


@pytest.mark.asyncio
async def test_page_close_drops_session():
    page, _, _, interceptor = _setup()
    await interceptor.start()

    for handler in page.listeners["close"]:
        handler(page)

    assert not interceptor.listening
