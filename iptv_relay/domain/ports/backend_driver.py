"""Port interface for stream backend drivers."""

from abc import ABC, abstractmethod

from ..models.stream import MediaStream


class BackendDriver(ABC):
    """Abstract interface for backends producing live media streams.

    Concrete implementations (HTTP relay, direct URL, VLC capture, stream
    daemon) live in the infrastructure layer. The provider core only ever
    calls these two methods.
    """

    @abstractmethod
    async def begin_acquire(self, channel: str) -> MediaStream:
        """Open a stream for a channel.

        Args:
            channel: Backend channel name (e.g. a playlist entry)

        Returns:
            The acquired media stream

        Raises:
            BackendError: If the stream cannot be acquired
        """
        pass

    @abstractmethod
    async def end_acquire(self, stream: MediaStream) -> None:
        """Release resources tied to a previously acquired stream.

        Must tolerate being called on a stream that is already partially
        or fully cleaned up.

        Args:
            stream: Stream returned by begin_acquire()
        """
        pass

    @property
    def driver_name(self) -> str:
        """Get the driver name."""
        return type(self).__name__
