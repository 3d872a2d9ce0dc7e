"""Tests for the HTTP relay driver."""

import asyncio

import httpx
import pytest

from iptv_relay.domain.models.results import BackendError, ProviderErrorKind
from iptv_relay.domain.services.provider_core import ProviderCore
from iptv_relay.infrastructure.drivers.http_driver import HttpDriverConfig, HttpRelayDriver

from fakes import RecordingRegistry


def make_driver(handler, **config) -> HttpRelayDriver:
    """Create a driver talking to a mock transport."""
    return HttpRelayDriver(
        url_template="http://source.local/live/{channel}.ts",
        transport=httpx.MockTransport(handler),
        **config,
    )


def test_url_for():
    """Test channel substitution in the URL template."""
    driver = HttpRelayDriver(HttpDriverConfig(url_template="http://src/{channel}/index"))
    assert driver.url_for("news1") == "http://src/news1/index"


def test_missing_url_template():
    """Test that a driver needs a source URL."""
    with pytest.raises(ValueError):
        HttpRelayDriver()


@pytest.mark.asyncio
async def test_begin_acquire_streams_body():
    """Test acquiring a stream and reading its chunks."""
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        return httpx.Response(
            200,
            headers={"Content-Type": "video/mp2t", "X-Internal": "secret"},
            content=b"abcdef",
        )

    driver = make_driver(handler, chunk_size=2)
    stream = await driver.begin_acquire("news1")

    assert requested == ["http://source.local/live/news1.ts"]
    assert stream.headers == {"content-type": "video/mp2t"}
    assert [chunk async for chunk in stream.chunks] == [b"ab", b"cd", b"ef"]

    await driver.end_acquire(stream)
    assert stream.handle.closed


@pytest.mark.asyncio
async def test_begin_acquire_http_error():
    """Test that an upstream error status fails the acquisition."""
    driver = make_driver(lambda request: httpx.Response(404))

    with pytest.raises(BackendError) as exc_info:
        await driver.begin_acquire("missing")
    assert "404" in str(exc_info.value)


@pytest.mark.asyncio
async def test_begin_acquire_connection_error():
    """Test that a connection failure fails the acquisition."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    driver = make_driver(handler)

    with pytest.raises(BackendError):
        await driver.begin_acquire("news1")


@pytest.mark.asyncio
async def test_end_acquire_is_idempotent():
    """Test that releasing a stream twice is harmless."""
    driver = make_driver(lambda request: httpx.Response(200, content=b"data"))
    stream = await driver.begin_acquire("news1")

    await driver.end_acquire(stream)
    await driver.end_acquire(stream)

    assert stream.handle.closed


class ClosingTransport(httpx.MockTransport):
    """Mock transport remembering whether its client closed it."""

    def __init__(self, handler):
        super().__init__(handler)
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True


async def _hang(request: httpx.Request) -> httpx.Response:
    await asyncio.sleep(10)
    return httpx.Response(200)


@pytest.mark.asyncio
async def test_acquire_timeout_closes_client():
    """Test that a timed out acquisition does not leak its client."""
    transport = ClosingTransport(_hang)
    driver = HttpRelayDriver(url_template="http://source.local/{channel}.ts", transport=transport)
    provider = ProviderCore(driver, RecordingRegistry(), {"channel": "news1", "acquire_timeout": 0.05})

    result = await provider.start("news1")

    assert result.error is ProviderErrorKind.ACQUIRE_TIMEOUT
    assert transport.closed


@pytest.mark.asyncio
async def test_cancelled_acquire_closes_client():
    """Test that cancelling a pending acquisition closes its client."""
    transport = ClosingTransport(_hang)
    driver = HttpRelayDriver(url_template="http://source.local/{channel}.ts", transport=transport)

    task = asyncio.create_task(driver.begin_acquire("news1"))
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert transport.closed
