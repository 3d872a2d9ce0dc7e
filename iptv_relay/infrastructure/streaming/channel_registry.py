"""In-memory stream registry fanning one upstream out to many consumers."""

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Set

from ...domain.models.stream import MediaStream
from ...domain.ports.stream_registry import TeardownCallback

logger = logging.getLogger(__name__)

# Marks the end of a subscriber queue
_EOF = None


class ChannelAlreadyRegisteredError(ValueError):
    """Raised when a channel id is already being distributed."""


class ManagedStream:
    """A registered stream and its subscribers.

    Upstream chunks are pumped once a first subscriber arrives and copied
    into every subscriber queue. Slow subscribers drop chunks instead of
    stalling the others. The registry asks for teardown once, when the last
    subscriber leaves, when nobody subscribes within idle_timeout of
    registration, or when the upstream ends.
    """

    def __init__(
        self,
        registry: "ChannelRegistry",
        channel_id: str,
        stream: MediaStream,
        metadata: Dict[str, Any],
        on_teardown: TeardownCallback,
        queue_size: int = 256,
        idle_timeout: float = 10.0,
    ):
        self._registry = registry
        self._channel_id = channel_id
        self._stream = stream
        self._metadata = metadata
        self._on_teardown = on_teardown
        self._queue_size = queue_size
        self._subscribers: Set[asyncio.Queue] = set()
        self._pump_task: Optional[asyncio.Task] = None
        self._teardown_task: Optional[asyncio.Task] = None
        self._teardown_requested = False
        self._closed = False
        self._idle_handle: Optional[asyncio.TimerHandle] = asyncio.get_running_loop().call_later(
            idle_timeout, self._request_teardown, "no subscribers"
        )

    @property
    def channel_id(self) -> str:
        return self._channel_id

    @property
    def metadata(self) -> Dict[str, Any]:
        return self._metadata

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def subscribe(self) -> AsyncIterator[bytes]:
        """Yield upstream chunks until the stream closes."""
        if self._closed:
            return

        self._cancel_idle()
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.add(queue)
        logger.debug(f"👥 Subscriber joined '{self._channel_id}' ({len(self._subscribers)} total)")
        self._ensure_pump()

        try:
            while True:
                chunk = await queue.get()
                if chunk is _EOF:
                    break
                yield chunk
        finally:
            self._subscribers.discard(queue)
            logger.debug(f"👥 Subscriber left '{self._channel_id}' ({len(self._subscribers)} left)")
            if not self._subscribers and not self._closed:
                self._request_teardown("last subscriber left")

    def close(self) -> None:
        """End all subscribers and drop the channel from the registry.

        Closing does not call the teardown callback; it is what the
        callback's owner calls once it has stopped.
        """
        if self._closed:
            return
        self._closed = True
        self._cancel_idle()
        self._registry._discard(self)

        if self._pump_task is not None and not self._pump_task.done():
            self._pump_task.cancel()

        for queue in list(self._subscribers):
            _put_eof(queue)
        logger.info(f"🧹 Closed channel '{self._channel_id}'")

    def _cancel_idle(self) -> None:
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None

    def _ensure_pump(self) -> None:
        if self._pump_task is None:
            self._pump_task = asyncio.get_running_loop().create_task(self._pump())

    async def _pump(self) -> None:
        try:
            async for chunk in self._stream.chunks:
                for queue in list(self._subscribers):
                    try:
                        queue.put_nowait(chunk)
                    except asyncio.QueueFull:
                        logger.debug(f"Dropping chunk for slow subscriber on '{self._channel_id}'")
            reason = "upstream ended"
        except Exception as e:
            logger.error(f"❌ Upstream error on '{self._channel_id}': {e}")
            reason = f"upstream error: {e}"

        for queue in list(self._subscribers):
            _put_eof(queue)
        self._request_teardown(reason)

    def _request_teardown(self, reason: str) -> None:
        if self._teardown_requested or self._closed:
            return
        self._teardown_requested = True
        logger.info(f"🔌 Tearing down '{self._channel_id}': {reason}")
        self._teardown_task = asyncio.get_running_loop().create_task(self._run_teardown())

    async def _run_teardown(self) -> None:
        try:
            await self._on_teardown()
        except Exception as e:
            logger.error(f"❌ Teardown callback failed for '{self._channel_id}': {e}")
        finally:
            self.close()


def _put_eof(queue: asyncio.Queue) -> None:
    while True:
        try:
            queue.put_nowait(_EOF)
            return
        except asyncio.QueueFull:
            queue.get_nowait()


class ChannelRegistry:
    """Registry of channels currently being distributed."""

    def __init__(self, queue_size: int = 256, idle_timeout: float = 10.0):
        """Initialize the registry.

        Args:
            queue_size: Per-subscriber chunk buffer
            idle_timeout: Seconds a new channel waits for its first subscriber
        """
        self._queue_size = queue_size
        self._idle_timeout = idle_timeout
        self._channels: Dict[str, ManagedStream] = {}

    def register_channel(
        self,
        channel_id: str,
        stream: MediaStream,
        metadata: Dict[str, Any],
        on_teardown: TeardownCallback,
    ) -> ManagedStream:
        """Register a stream for distribution under channel_id.

        Raises:
            ChannelAlreadyRegisteredError: If channel_id is already live
        """
        if channel_id in self._channels:
            raise ChannelAlreadyRegisteredError(f"Channel {channel_id} already registered")

        managed = ManagedStream(
            self,
            channel_id,
            stream,
            metadata,
            on_teardown,
            queue_size=self._queue_size,
            idle_timeout=self._idle_timeout,
        )
        self._channels[channel_id] = managed
        logger.info(f"📺 Registered channel '{channel_id}'")
        return managed

    def get_channel(self, channel_id: str) -> Optional[ManagedStream]:
        """Get a live channel by id."""
        return self._channels.get(channel_id)

    def list_channels(self) -> List[str]:
        """Get list of live channel ids."""
        return list(self._channels.keys())

    def close_all(self) -> None:
        """Close every live channel without calling teardown callbacks."""
        for managed in list(self._channels.values()):
            managed.close()

    def _discard(self, managed: ManagedStream) -> None:
        if self._channels.get(managed.channel_id) is managed:
            del self._channels[managed.channel_id]
