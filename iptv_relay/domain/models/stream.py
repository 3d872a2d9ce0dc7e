"""Domain models for media streams and provider lifecycle state."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional


class ProviderState(str, Enum):
    """Lifecycle state of a provider's shared identity."""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class MediaStream:
    """An open media source produced by a backend driver.

    The provider never interprets the chunks; it forwards the stream to the
    registry and later hands it back to the driver for teardown.
    """

    chunks: AsyncIterator[bytes]
    headers: Dict[str, str] = field(default_factory=dict)
    handle: Optional[Any] = None  # driver-private
