"""Port interface for the stream distribution registry."""

from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Protocol

from ..models.stream import MediaStream

TeardownCallback = Callable[[], Awaitable[None]]


class ManagedStream(Protocol):
    """Registry-side handle of a distributed stream."""

    @property
    def channel_id(self) -> str:
        """Get the channel id the stream is registered under."""
        ...

    @property
    def metadata(self) -> Dict[str, Any]:
        """Get the metadata stored with the stream (e.g. headers)."""
        ...

    def subscribe(self) -> AsyncIterator[bytes]:
        """Consume the stream as a new subscriber."""
        ...

    def close(self) -> None:
        """Remove the stream from the registry and end all subscribers."""
        ...


class StreamRegistry(Protocol):
    """Protocol for registries fanning one stream out to many consumers."""

    def register_channel(
        self,
        channel_id: str,
        stream: MediaStream,
        metadata: Dict[str, Any],
        on_teardown: TeardownCallback,
    ) -> ManagedStream:
        """Register a stream for distribution.

        Args:
            channel_id: Channel identity consumers request
            stream: Stream to distribute
            metadata: Associated metadata such as transport headers
            on_teardown: Awaited when the registry decides the stream
                should end

        Returns:
            Handle consumers subscribe to
        """
        ...
