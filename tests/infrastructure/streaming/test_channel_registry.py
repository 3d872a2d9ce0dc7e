"""Tests for the in-memory channel registry."""

import asyncio
from typing import AsyncIterator, List
from unittest.mock import AsyncMock

import pytest

from iptv_relay.domain.models.stream import MediaStream, ProviderState
from iptv_relay.domain.services.provider_core import ProviderCore
from iptv_relay.infrastructure.streaming.channel_registry import (
    ChannelAlreadyRegisteredError,
    ChannelRegistry,
)

from fakes import FakeDriver


async def _chunks(items: List[bytes]) -> AsyncIterator[bytes]:
    for item in items:
        yield item


async def _endless() -> AsyncIterator[bytes]:
    while True:
        yield b"x"
        await asyncio.sleep(0.001)


async def _settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_register_duplicate_channel(channel_registry: ChannelRegistry):
    """Test error on duplicate channel registration."""
    stream = MediaStream(chunks=_chunks([]))
    channel_registry.register_channel("news1", stream, {}, AsyncMock())

    with pytest.raises(ChannelAlreadyRegisteredError):
        channel_registry.register_channel("news1", stream, {}, AsyncMock())
    assert channel_registry.list_channels() == ["news1"]


@pytest.mark.asyncio
async def test_subscriber_receives_upstream(channel_registry: ChannelRegistry):
    """Test that subscribers get every chunk and teardown follows upstream end."""
    on_teardown = AsyncMock()
    managed = channel_registry.register_channel(
        "news1", MediaStream(chunks=_chunks([b"a", b"b", b"c"])), {"content-type": "video/mp2t"}, on_teardown
    )

    received = [chunk async for chunk in managed.subscribe()]
    await _settle()

    assert received == [b"a", b"b", b"c"]
    on_teardown.assert_awaited_once()
    assert managed.is_closed
    assert channel_registry.get_channel("news1") is None


@pytest.mark.asyncio
async def test_fan_out_to_many_subscribers(channel_registry: ChannelRegistry):
    """Test that one upstream feeds several subscribers."""
    managed = channel_registry.register_channel(
        "news1", MediaStream(chunks=_endless()), {}, AsyncMock()
    )

    async def take(count: int) -> List[bytes]:
        chunks = []
        async for chunk in managed.subscribe():
            chunks.append(chunk)
            if len(chunks) == count:
                break
        return chunks

    first, second = await asyncio.gather(take(3), take(3))

    assert first == [b"x"] * 3
    assert second == [b"x"] * 3
    managed.close()


@pytest.mark.asyncio
async def test_last_subscriber_leaving_requests_teardown(channel_registry: ChannelRegistry):
    """Test that teardown is requested once nobody is watching."""
    on_teardown = AsyncMock()
    managed = channel_registry.register_channel(
        "news1", MediaStream(chunks=_endless()), {}, on_teardown
    )

    subscription = managed.subscribe()
    assert await subscription.__anext__() == b"x"
    assert managed.subscriber_count == 1
    await subscription.aclose()
    await _settle()

    on_teardown.assert_awaited_once()
    assert managed.is_closed
    assert channel_registry.list_channels() == []


@pytest.mark.asyncio
async def test_close_ends_subscribers_without_teardown(channel_registry: ChannelRegistry):
    """Test that closing ends subscriptions but does not call teardown."""
    on_teardown = AsyncMock()
    managed = channel_registry.register_channel(
        "news1", MediaStream(chunks=_endless()), {}, on_teardown
    )

    async def consume() -> int:
        return len([chunk async for chunk in managed.subscribe()])

    consumer = asyncio.create_task(consume())
    await asyncio.sleep(0.01)
    managed.close()
    managed.close()

    assert await consumer >= 0
    await _settle()
    on_teardown.assert_not_called()
    assert channel_registry.get_channel("news1") is None


@pytest.mark.asyncio
async def test_subscribe_after_close(channel_registry: ChannelRegistry):
    """Test that a closed stream yields nothing."""
    managed = channel_registry.register_channel(
        "news1", MediaStream(chunks=_chunks([b"a"])), {}, AsyncMock()
    )
    managed.close()

    assert [chunk async for chunk in managed.subscribe()] == []


@pytest.mark.asyncio
async def test_provider_stops_when_upstream_ends(channel_registry: ChannelRegistry):
    """Test the registry-initiated teardown path through a provider."""
    driver = FakeDriver(chunks=[b"a", b"b"])
    provider = ProviderCore(driver, channel_registry, {"channel": "news1"})
    stopped = asyncio.Event()
    provider.add_stopped_listener(stopped.set)

    result = await provider.start("news1")
    received = [chunk async for chunk in result.stream.subscribe()]
    await asyncio.wait_for(stopped.wait(), timeout=1)

    assert received == [b"a", b"b"]
    assert provider.state is ProviderState.IDLE
    assert len(driver.released) == 1
    assert channel_registry.list_channels() == []

    # The channel can be started again
    assert (await provider.start("news1")).ok


@pytest.mark.asyncio
async def test_caller_stop_closes_channel(channel_registry: ChannelRegistry):
    """Test that a caller-initiated stop removes the channel without re-entering stop."""
    driver = FakeDriver(chunks=[b"a"])
    provider = ProviderCore(driver, channel_registry, {"channel": "news1"})

    result = await provider.start("news1")
    await provider.stop()
    await _settle()

    assert result.stream.is_closed
    assert channel_registry.list_channels() == []
    assert len(driver.released) == 1


@pytest.mark.asyncio
async def test_close_all(channel_registry: ChannelRegistry):
    """Test closing every channel."""
    channel_registry.register_channel("a", MediaStream(chunks=_chunks([])), {}, AsyncMock())
    channel_registry.register_channel("b", MediaStream(chunks=_chunks([])), {}, AsyncMock())

    channel_registry.close_all()

    assert channel_registry.list_channels() == []


@pytest.mark.asyncio
async def test_unwatched_channel_is_torn_down():
    """Test that a channel nobody ever reads from stops its provider."""
    registry = ChannelRegistry(idle_timeout=0.01)
    driver = FakeDriver()
    provider = ProviderCore(driver, registry, {"channel": "news1"})
    stopped = asyncio.Event()
    provider.add_stopped_listener(stopped.set)

    result = await provider.start("news1")
    # Consumer gone before its first read
    await result.stream.subscribe().aclose()
    await asyncio.wait_for(stopped.wait(), timeout=1)

    assert provider.state is ProviderState.IDLE
    assert len(driver.released) == 1
    assert registry.list_channels() == []


@pytest.mark.asyncio
async def test_first_subscriber_cancels_idle_teardown():
    """Test that a subscriber arriving in time keeps the channel alive."""
    registry = ChannelRegistry(idle_timeout=0.01)
    on_teardown = AsyncMock()
    managed = registry.register_channel("news1", MediaStream(chunks=_endless()), {}, on_teardown)

    subscription = managed.subscribe()
    assert await subscription.__anext__() == b"x"
    await asyncio.sleep(0.05)

    on_teardown.assert_not_called()
    assert not managed.is_closed

    await subscription.aclose()
    await _settle()
    on_teardown.assert_awaited_once()
