"""Dependency injection configuration for the relay service."""

import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from ..domain.services.channel_service import ChannelService
from ..domain.services.provider_core import ProviderOptions
from .config import RelaySettings
from .drivers.factory import DriverFactory
from .streaming.channel_registry import ChannelRegistry

# Load environment variables from .env file if it exists
load_dotenv()

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Service container for dependency injection."""

    def __init__(
        self,
        settings: Optional[RelaySettings] = None,
        driver_factory: Optional[DriverFactory] = None,
        **driver_config: Any,
    ):
        """Initialize service container.

        Args:
            settings: Relay settings, read from the environment if omitted
            driver_factory: Factory used to build providers
            **driver_config: Extra driver configuration (e.g. an httpx transport)
        """
        self._settings = settings or RelaySettings.from_env()
        self._driver_factory = driver_factory or DriverFactory()
        self._driver_config = driver_config
        self._services: Dict[str, Any] = {}
        self._setup_services()

    def _setup_services(self):
        """Setup all services and their dependencies."""
        logger.info("🔧 Setting up service container...")
        settings = self._settings

        registry = ChannelRegistry(
            queue_size=settings.subscriber_queue_size,
            idle_timeout=settings.idle_timeout,
        )
        channel_service = ChannelService()

        if settings.source_url and settings.channels:
            driver_config = {
                "url_template": settings.source_url,
                "timeout": settings.http_timeout,
                **self._driver_config,
            }
            if settings.shared_source:
                provider = self._driver_factory.create_provider(
                    settings.driver,
                    registry,
                    ProviderOptions(acquire_timeout=settings.acquire_timeout),
                    **driver_config,
                )
                channel_service.add_provider_channels(provider, settings.channels)
            else:
                for channel in settings.channels:
                    provider = self._driver_factory.create_provider(
                        settings.driver,
                        registry,
                        ProviderOptions(channel=channel, acquire_timeout=settings.acquire_timeout),
                        **driver_config,
                    )
                    channel_service.add_channel(provider)
            logger.info(f"✅ Serving {len(settings.channels)} channels via '{settings.driver}' driver")

        self._services = {
            "settings": settings,
            "stream_registry": registry,
            "channel_service": channel_service,
        }

        logger.info("✅ Service container setup completed")

    def get(self, service_name: str) -> Any:
        """Get a service by name.

        Args:
            service_name: Name of the service

        Returns:
            Service instance

        Raises:
            KeyError: If service not found
        """
        if service_name not in self._services:
            raise KeyError(f"Service '{service_name}' not found")
        return self._services[service_name]

    def get_settings(self) -> RelaySettings:
        """Get relay settings."""
        return self.get("settings")

    def get_stream_registry(self) -> ChannelRegistry:
        """Get the stream registry."""
        return self.get("stream_registry")

    def get_channel_service(self) -> ChannelService:
        """Get channel service."""
        return self.get("channel_service")

    async def shutdown(self) -> None:
        """Stop running channels and close the registry."""
        await self.get_channel_service().shutdown()
        self.get_stream_registry().close_all()


# Global service container instance
@lru_cache()
def get_service_container() -> ServiceContainer:
    """Get global service container instance.

    Returns:
        Service container instance
    """
    return ServiceContainer()


# Convenience functions for FastAPI dependency injection
def get_settings() -> RelaySettings:
    """FastAPI dependency for relay settings."""
    return get_service_container().get_settings()


def get_stream_registry() -> ChannelRegistry:
    """FastAPI dependency for the stream registry."""
    return get_service_container().get_stream_registry()


def get_channel_service() -> ChannelService:
    """FastAPI dependency for channel service."""
    return get_service_container().get_channel_service()
