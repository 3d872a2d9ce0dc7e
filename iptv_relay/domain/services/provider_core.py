"""Provider lifecycle core and channel bindings.

A ProviderCore wraps one backend driver and owns the lifecycle state of the
physical connection behind it. bind_to_channel() specializes a provider into
ChannelBinding views that all share that state: exposing every channel of a
source through bindings gives mutual exclusion across them for free, which
is what single-stream sources (a capture device, a tuner) need.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from ..models.results import (
    AcquireTimeoutError,
    NotStartedError,
    ProviderErrorKind,
    StartResult,
)
from ..models.stream import MediaStream, ProviderState
from ..ports.backend_driver import BackendDriver
from ..ports.stream_registry import ManagedStream, StreamRegistry

logger = logging.getLogger(__name__)

ReadyCallback = Callable[[ManagedStream], Any]
ErrorCallback = Callable[[StartResult], Any]
StoppedListener = Callable[[], Any]

# Process-wide guard for the deprecated chan() alias
_chan_warned = False


class ProviderOptions(BaseModel):
    """Construction options for a provider."""

    channel: Optional[str] = Field(
        default=None,
        description="Channel to bind to at construction time",
    )
    acquire_timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Seconds to wait for the backend to deliver a stream",
    )


class ProviderIdentity:
    """Lifecycle state shared by a provider and all of its bindings."""

    def __init__(self):
        self.state = ProviderState.IDLE
        self.current_stream: Optional[MediaStream] = None
        self.managed_stream: Optional[ManagedStream] = None
        self.stopped_listeners: List[StoppedListener] = []

    @property
    def started(self) -> bool:
        return self.state is not ProviderState.IDLE

    def reset(self) -> None:
        self.state = ProviderState.IDLE
        self.current_stream = None
        self.managed_stream = None


async def _invoke(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class ProviderCore:
    """Lifecycle manager around a single backend driver.

    Public methods:
        start(channel_id, on_ready, on_error): acquire a stream from the
            backend and register it under channel_id
        stop(): release the running stream
        bind_to_channel(channel): channel-specialized view of this provider
        describe(): display name of the bound channel
    """

    def __init__(
        self,
        driver: BackendDriver,
        registry: StreamRegistry,
        options: Optional[Union[ProviderOptions, Dict[str, Any]]] = None,
    ):
        """Initialize the provider.

        Args:
            driver: Backend driver producing the streams
            registry: Registry the streams are distributed through
            options: Provider options, or a mapping of them
        """
        if isinstance(options, dict):
            options = ProviderOptions(**options)
        self._options = options or ProviderOptions()
        self._driver = driver
        self._registry = registry
        self._identity = ProviderIdentity()
        self._channel = self._options.channel

    @property
    def channel(self) -> Optional[str]:
        """Get the bound channel, if any."""
        return self._channel

    @property
    def state(self) -> ProviderState:
        """Get the shared lifecycle state."""
        return self._identity.state

    @property
    def started(self) -> bool:
        """Check whether the shared identity is in use."""
        return self._identity.started

    @property
    def current_stream(self) -> Optional[MediaStream]:
        """Get the running backend stream, if any."""
        return self._identity.current_stream

    @property
    def managed_stream(self) -> Optional[ManagedStream]:
        """Get the registry handle of the running stream, if any."""
        return self._identity.managed_stream

    def shares_identity_with(self, other: "ProviderCore") -> bool:
        """Check whether two views drive the same backend connection."""
        return self._identity is other._identity

    async def start(
        self,
        channel_id: str,
        on_ready: Optional[ReadyCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> StartResult:
        """Acquire a stream and register it under channel_id.

        Failures are reported through the returned result (and on_error);
        they never leave the provider marked as started.

        Args:
            channel_id: Registry channel identity
            on_ready: Called with the managed stream on success
            on_error: Called with the failed result

        Returns:
            Start result holding the managed stream or the error kind
        """
        if not self._channel:
            return await self._fail(
                StartResult.failure(
                    ProviderErrorKind.NO_CHANNEL_SELECTED, "No channel selected"
                ),
                on_error,
            )

        identity = self._identity
        if identity.started:
            return await self._fail(
                StartResult.failure(
                    ProviderErrorKind.IN_USE,
                    f"Provider for '{self._channel}' is already in use",
                ),
                on_error,
            )

        # Claimed before the first await so concurrent starts see IN_USE
        identity.state = ProviderState.STARTING
        logger.info(f"📡 Acquiring stream for channel '{self._channel}' via {self._driver.driver_name}")

        try:
            stream = await self._acquire()
        except asyncio.CancelledError:
            identity.reset()
            raise
        except AcquireTimeoutError as e:
            identity.reset()
            logger.warning(f"⏱️ {e}")
            return await self._fail(
                StartResult.failure(ProviderErrorKind.ACQUIRE_TIMEOUT, str(e), cause=e),
                on_error,
            )
        except Exception as e:
            identity.reset()
            logger.error(f"❌ Backend failed to acquire '{self._channel}': {e}")
            return await self._fail(
                StartResult.failure(ProviderErrorKind.BACKEND_ERROR, str(e), cause=e),
                on_error,
            )

        async def on_teardown() -> None:
            # Ignore requests for a stream that was already stopped
            if identity.current_stream is not stream:
                logger.debug(f"Ignoring stale teardown for channel '{channel_id}'")
                return
            logger.info(f"🔌 Registry requested teardown of channel '{channel_id}'")
            await self.stop()

        try:
            managed = self._registry.register_channel(
                channel_id, stream, dict(stream.headers), on_teardown
            )
        except Exception as e:
            logger.error(f"❌ Failed to register channel '{channel_id}': {e}")
            await self._release(stream)
            identity.reset()
            return await self._fail(
                StartResult.failure(ProviderErrorKind.REGISTRY_ERROR, str(e), cause=e),
                on_error,
            )

        identity.current_stream = stream
        identity.managed_stream = managed
        identity.state = ProviderState.RUNNING
        logger.info(f"✅ Channel '{channel_id}' running from '{self._channel}'")

        await _invoke(on_ready, managed)
        return StartResult.success(managed)

    async def stop(self) -> None:
        """Release the running stream.

        Raises:
            NotStartedError: If no stream is running
        """
        identity = self._identity
        if identity.state is not ProviderState.RUNNING:
            raise NotStartedError(
                f"Provider for '{self.describe()}' is not started ({identity.state.value})"
            )

        stream = identity.current_stream
        managed = identity.managed_stream
        identity.state = ProviderState.STOPPING
        identity.current_stream = None
        identity.managed_stream = None

        try:
            try:
                if managed is not None:
                    managed.close()
            finally:
                await self._driver.end_acquire(stream)
        finally:
            identity.state = ProviderState.IDLE
            logger.info(f"⏹️ Stopped provider for '{self.describe()}'")
            await self._emit_stopped()

    def bind_to_channel(self, channel: str) -> "ChannelBinding":
        """Bind the provider to a specific channel.

        The returned binding shares this provider's backend connection and
        lifecycle state, so at most one binding of a provider runs at a time.

        Args:
            channel: Backend channel name (e.g. a playlist entry)

        Returns:
            Channel binding view of this provider
        """
        if not channel:
            raise ValueError("Channel name must not be empty")
        return ChannelBinding(self, channel)

    def chan(self, channel: str) -> "ChannelBinding":
        """Deprecated alias of bind_to_channel()."""
        global _chan_warned
        if not _chan_warned:
            _chan_warned = True
            logger.warning("⚠️ chan() is deprecated, please use bind_to_channel()")
        return self.bind_to_channel(channel)

    def describe(self) -> str:
        """Get a user-friendly channel name for playlist generation."""
        return self._channel or ""

    def add_stopped_listener(self, listener: StoppedListener) -> None:
        """Register a listener called whenever the shared identity stops."""
        self._identity.stopped_listeners.append(listener)

    def remove_stopped_listener(self, listener: StoppedListener) -> None:
        """Unregister a stopped listener."""
        try:
            self._identity.stopped_listeners.remove(listener)
        except ValueError:
            pass

    async def _acquire(self) -> MediaStream:
        timeout = self._options.acquire_timeout
        if timeout is None:
            return await self._driver.begin_acquire(self._channel)
        try:
            return await asyncio.wait_for(
                self._driver.begin_acquire(self._channel), timeout
            )
        except asyncio.TimeoutError as e:
            raise AcquireTimeoutError(
                f"No stream for '{self._channel}' after {timeout}s"
            ) from e

    async def _release(self, stream: MediaStream) -> None:
        try:
            await self._driver.end_acquire(stream)
        except Exception as e:
            logger.warning(f"⚠️ Failed to release stream for '{self._channel}': {e}")

    async def _fail(
        self, result: StartResult, on_error: Optional[ErrorCallback]
    ) -> StartResult:
        await _invoke(on_error, result)
        return result

    async def _emit_stopped(self) -> None:
        for listener in list(self._identity.stopped_listeners):
            try:
                await _invoke(listener)
            except Exception as e:
                logger.error(f"❌ Stopped listener failed: {e}")

    def __str__(self) -> str:
        return self.describe()

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(channel={self._channel!r}, "
            f"state={self._identity.state.value})"
        )


class ChannelBinding(ProviderCore):
    """A provider view permanently bound to one channel.

    Shares the driver, registry, options and lifecycle state of the
    provider it was created from; only the channel differs.
    """

    def __init__(self, provider: ProviderCore, channel: str):
        self._options = provider._options
        self._driver = provider._driver
        self._registry = provider._registry
        self._identity = provider._identity
        self._channel = channel

    @property
    def channel(self) -> str:
        return self._channel
