"""Test configuration and common fixtures."""

import pytest

from fakes import FakeDriver, RecordingRegistry
from iptv_relay.domain.services.provider_core import ProviderCore
from iptv_relay.infrastructure.streaming.channel_registry import ChannelRegistry


@pytest.fixture
def driver() -> FakeDriver:
    """Provide a fake backend driver."""
    return FakeDriver()


@pytest.fixture
def registry() -> RecordingRegistry:
    """Provide a recording stream registry."""
    return RecordingRegistry()


@pytest.fixture
def channel_registry() -> ChannelRegistry:
    """Provide an in-memory channel registry."""
    return ChannelRegistry(queue_size=16)


@pytest.fixture
def provider(driver: FakeDriver, registry: RecordingRegistry) -> ProviderCore:
    """Provide a provider pre-bound to channel 'news1'."""
    return ProviderCore(driver, registry, {"channel": "news1"})
