"""HTTP relay implementation of the backend driver interface."""

import logging
from typing import AsyncIterator, Dict, Optional

import httpx
from pydantic import BaseModel, Field

from ...domain.models.results import BackendError
from ...domain.models.stream import MediaStream
from ...domain.ports.backend_driver import BackendDriver

logger = logging.getLogger(__name__)

# Upstream headers worth passing on to consumers
FORWARDED_HEADERS = ("content-type", "icy-name", "icy-br", "icy-metaint")


class HttpDriverConfig(BaseModel):
    """Configuration for the HTTP relay driver."""

    url_template: str = Field(..., description="Source URL, '{channel}' is substituted")
    timeout: float = Field(default=10.0, description="Connect/read timeout in seconds")
    chunk_size: int = Field(default=64 * 1024, description="Read size in bytes")
    headers: Dict[str, str] = Field(
        default_factory=lambda: {"User-Agent": "IptvRelay/1.0"},
        description="Request headers sent upstream",
    )


class _Connection:
    """Client and response pair behind one acquired stream."""

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response):
        self.client = client
        self.response = response
        self.closed = False

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self.response.aclose()
        finally:
            await self.client.aclose()


class HttpRelayDriver(BackendDriver):
    """Relays a live stream served over plain HTTP."""

    def __init__(
        self,
        config: Optional[HttpDriverConfig] = None,
        url_template: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs,
    ):
        """Initialize the driver.

        Args:
            config: Driver configuration
            url_template: Shortcut for config.url_template
            transport: Optional httpx transport (used by tests)
            **kwargs: Remaining HttpDriverConfig fields
        """
        if config is None:
            config = HttpDriverConfig(url_template=url_template, **kwargs)
        self._config = config
        self._transport = transport

    def url_for(self, channel: str) -> str:
        """Get the upstream URL of a channel."""
        return self._config.url_template.replace("{channel}", channel)

    async def begin_acquire(self, channel: str) -> MediaStream:
        url = self.url_for(channel)
        client = httpx.AsyncClient(
            timeout=self._config.timeout,
            headers=self._config.headers,
            transport=self._transport,
            follow_redirects=True,
        )

        try:
            request = client.build_request("GET", url)
            response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            await client.aclose()
            raise BackendError(f"Failed to connect to {url}: {e}") from e
        except BaseException:
            # Cancelled, e.g. by an acquisition timeout
            await client.aclose()
            raise

        if response.status_code >= 400:
            await response.aclose()
            await client.aclose()
            raise BackendError(f"Upstream {url} answered {response.status_code}")

        logger.info(f"🌐 Connected to {url} ({response.headers.get('content-type', 'unknown type')})")
        connection = _Connection(client, response)
        headers = {
            name: response.headers[name]
            for name in FORWARDED_HEADERS
            if name in response.headers
        }
        return MediaStream(
            chunks=self._iter_chunks(connection),
            headers=headers,
            handle=connection,
        )

    async def end_acquire(self, stream: MediaStream) -> None:
        connection = stream.handle
        if connection is None:
            return
        await connection.aclose()
        logger.info(f"🔌 Closed upstream {connection.response.url}")

    async def _iter_chunks(self, connection: _Connection) -> AsyncIterator[bytes]:
        try:
            async for chunk in connection.response.aiter_bytes(self._config.chunk_size):
                yield chunk
        except (httpx.HTTPError, httpx.StreamError) as e:
            if not connection.closed:
                raise BackendError(f"Upstream read failed: {e}") from e
