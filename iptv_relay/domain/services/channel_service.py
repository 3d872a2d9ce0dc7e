"""Domain service exposing provider channels to consumers."""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional
from urllib.parse import quote

from ..models.results import ProviderErrorKind
from ..ports.stream_registry import ManagedStream
from .provider_core import ProviderCore

logger = logging.getLogger(__name__)


class ChannelNotFoundError(KeyError):
    """Raised when a channel id is not served by any provider."""


class ChannelService:
    """Directory of channels and the providers serving them.

    Consumers asking for a channel that is already running, or already
    starting, join the live stream; otherwise the channel's provider is
    started.
    """

    def __init__(self):
        """Initialize the service."""
        self._channels: Dict[str, ProviderCore] = {}
        self._pending: Dict[str, asyncio.Future] = {}

    def add_channel(self, provider: ProviderCore, channel_id: Optional[str] = None) -> None:
        """Serve a bound provider under a channel id.

        Args:
            provider: Provider bound to a channel
            channel_id: Public id, defaults to the provider's channel name
        """
        channel_id = channel_id or provider.describe()
        if not channel_id:
            raise ValueError("Provider is not bound to a channel")
        if channel_id in self._channels:
            raise ValueError(f"Channel {channel_id} already registered")
        self._channels[channel_id] = provider

    def add_provider_channels(self, provider: ProviderCore, channels: Iterable[str]) -> None:
        """Expose several channels of one backend connection.

        The channels share the provider's state, so only one of them can
        be streamed at a time.
        """
        for channel in channels:
            self.add_channel(provider.bind_to_channel(channel))

    def get_channel(self, channel_id: str) -> ProviderCore:
        """Get the provider serving a channel.

        Raises:
            ChannelNotFoundError: If the channel is unknown
        """
        if channel_id not in self._channels:
            raise ChannelNotFoundError(channel_id)
        return self._channels[channel_id]

    def list_channels(self) -> List[Dict[str, object]]:
        """Get the channels and whether each is currently streaming."""
        return [
            {
                "id": channel_id,
                "name": provider.describe(),
                "running": self._live_stream(channel_id, provider) is not None,
                "available": not provider.started,
            }
            for channel_id, provider in self._channels.items()
        ]

    async def open_channel(self, channel_id: str) -> ManagedStream:
        """Get a live stream for a channel, starting it if needed.

        Raises:
            ChannelNotFoundError: If the channel is unknown
            ProviderStartError: If the provider could not start
        """
        provider = self.get_channel(channel_id)

        live = self._live_stream(channel_id, provider)
        if live is not None:
            logger.info(f"👥 Joining running channel '{channel_id}'")
            return live

        pending = self._pending.get(channel_id)
        if pending is None:
            pending = asyncio.ensure_future(provider.start(channel_id))
            self._pending[channel_id] = pending
            pending.add_done_callback(lambda task: self._forget_pending(channel_id, task))
        else:
            logger.info(f"👥 Waiting for channel '{channel_id}' to start")

        # A viewer leaving does not cancel the shared start
        result = await asyncio.shield(pending)
        if not result.ok and result.error is ProviderErrorKind.IN_USE:
            logger.warning(f"⚠️ Channel '{channel_id}' unavailable: source busy")
        return result.raise_for_error().stream

    def playlist(self, base_url: str) -> str:
        """Render an M3U playlist of all channels.

        Args:
            base_url: Public URL prefix of the API

        Returns:
            Playlist text
        """
        base_url = base_url.rstrip("/")
        lines = ["#EXTM3U"]
        for channel_id, provider in self._channels.items():
            name = str(provider) or channel_id
            lines.append(f'#EXTINF:-1 tvg-id="{channel_id}",{name}')
            lines.append(f"{base_url}/channels/{quote(channel_id, safe='')}/stream")
        return "\n".join(lines) + "\n"

    async def shutdown(self) -> None:
        """Abort pending starts and stop every running provider."""
        pending = list(self._pending.values())
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        for channel_id, provider in self._channels.items():
            if self._live_stream(channel_id, provider) is not None:
                logger.info(f"⏹️ Stopping channel '{channel_id}'")
                await provider.stop()

    def _forget_pending(self, channel_id: str, task: asyncio.Future) -> None:
        if self._pending.get(channel_id) is task:
            del self._pending[channel_id]

    @staticmethod
    def _live_stream(channel_id: str, provider: ProviderCore) -> Optional[ManagedStream]:
        managed = provider.managed_stream
        if managed is not None and managed.channel_id == channel_id:
            return managed
        return None
