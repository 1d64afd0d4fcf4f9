import asyncio

import pytest
from aiohttp import ClientSession, web

from webhook_service.main import create_app
from webhook_service.services.executor import DeliveryExecutor

from tests.fakes import FakeClock, make_repositories


class Receiver:
    """Local webhook endpoint recording every request it gets."""

    def __init__(self):
        self.url = ""
        self.received: list[tuple[dict[str, str], bytes]] = []
        # consumed one per request; 200 once exhausted
        self.statuses: list[int] = []
        self.delay_seconds = 0.0
        # when set, the response body is streamed in chunks up to this size
        self.stream_bytes = 0
        self.streamed = 0

    async def handler(self, request: web.Request) -> web.StreamResponse:
        raw = await request.read()
        self.received.append(({k: v for k, v in request.headers.items()}, raw))
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        status = self.statuses.pop(0) if self.statuses else 200
        if self.stream_bytes:
            return await self._stream(request, status)
        return web.Response(status=status, text="ok" if status < 300 else "upstream exploded")

    async def _stream(self, request: web.Request, status: int) -> web.StreamResponse:
        resp = web.StreamResponse(status=status)
        resp.content_type = "text/plain"
        await resp.prepare(request)
        chunk = b"x" * 65536
        try:
            while self.streamed < self.stream_bytes:
                await resp.write(chunk)
                self.streamed += len(chunk)
        except ConnectionError:
            pass
        return resp


@pytest.fixture
async def receiver():
    rec = Receiver()
    app = web.Application()
    app.router.add_post("/hook", rec.handler)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    port = site._server.sockets[0].getsockname()[1]  # type: ignore[union-attr]
    rec.url = f"http://127.0.0.1:{port}/hook"
    yield rec
    await runner.cleanup()


@pytest.fixture
async def http_session():
    async with ClientSession() as session:
        yield session


@pytest.fixture
def executor(http_session):
    return DeliveryExecutor(http_session, timeout_seconds=2.0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repositories():
    return make_repositories()


@pytest.fixture
async def service_client(aiohttp_client, repositories):
    """API client over in-memory storage, without the dispatcher."""
    app = create_app(repositories=repositories, start_background=False)
    return await aiohttp_client(app)
