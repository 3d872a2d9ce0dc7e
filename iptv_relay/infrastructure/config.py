"""Relay configuration management."""

import logging
import os
from typing import List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class RelaySettings(BaseModel):
    """Configuration for the relay service."""

    driver: str = Field(default="http", description="Registered backend driver name")
    source_url: Optional[str] = Field(
        default=None,
        description="Upstream URL template, '{channel}' is substituted",
    )
    channels: List[str] = Field(default_factory=list, description="Channels served by the source")
    acquire_timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Seconds to wait for a backend stream (no limit if unset)",
    )
    http_timeout: float = Field(default=10.0, gt=0)
    subscriber_queue_size: int = Field(default=256, gt=0)
    idle_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Seconds a started channel waits for its first subscriber",
    )
    shared_source: bool = Field(
        default=True,
        description="Channels share one backend connection (one live channel at a time)",
    )
    public_url: Optional[str] = Field(
        default=None,
        description="Public URL prefix used in generated playlists",
    )

    @classmethod
    def from_env(cls) -> "RelaySettings":
        """Create configuration from environment variables."""
        channels = [
            name.strip()
            for name in os.getenv("IPTV_CHANNELS", "").split(",")
            if name.strip()
        ]
        acquire_timeout = os.getenv("IPTV_ACQUIRE_TIMEOUT")

        settings = cls(
            driver=os.getenv("IPTV_DRIVER", "http"),
            source_url=os.getenv("IPTV_SOURCE_URL") or None,
            channels=channels,
            acquire_timeout=float(acquire_timeout) if acquire_timeout else None,
            http_timeout=float(os.getenv("IPTV_HTTP_TIMEOUT", "10.0")),
            subscriber_queue_size=int(os.getenv("IPTV_SUBSCRIBER_QUEUE_SIZE", "256")),
            idle_timeout=float(os.getenv("IPTV_IDLE_TIMEOUT", "10.0")),
            shared_source=os.getenv("IPTV_SHARED_SOURCE", "true").lower() == "true",
            public_url=os.getenv("IPTV_PUBLIC_URL") or None,
        )

        if not settings.source_url:
            logger.warning("⚠️ IPTV_SOURCE_URL not set - no channels will be served")
        elif not settings.channels:
            logger.warning("⚠️ IPTV_CHANNELS is empty - no channels will be served")
        else:
            logger.info(f"📺 Configured {len(settings.channels)} channels from {settings.source_url}")

        return settings
