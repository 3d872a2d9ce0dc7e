"""Factory for creating providers from registered backend drivers."""

from typing import Any, Dict, Optional, Type, Union

from ...domain.ports.backend_driver import BackendDriver
from ...domain.ports.stream_registry import StreamRegistry
from ...domain.services.provider_core import ProviderCore, ProviderOptions
from .http_driver import HttpRelayDriver


class DriverFactory:
    """Factory for backend drivers and the providers wrapping them.

    This factory maintains a registry of available driver classes and
    builds ProviderCore instances around them.
    """

    def __init__(self):
        """Initialize the factory."""
        self._driver_registry: Dict[str, Type[BackendDriver]] = {}

        # Register built-in drivers
        self.register_driver("http", HttpRelayDriver)

    def register_driver(self, name: str, driver_class: Type[BackendDriver]) -> None:
        """Register a new driver class.

        Args:
            name: Unique identifier for the driver
            driver_class: The driver class to register
        """
        if name in self._driver_registry:
            raise ValueError(f"Driver {name} already registered")
        self._driver_registry[name] = driver_class

    def create_driver(self, name: str, **config: Any) -> BackendDriver:
        """Create a driver instance.

        Args:
            name: Name of the driver to create
            **config: Driver-specific configuration

        Raises:
            ValueError: If driver not found
        """
        if name not in self._driver_registry:
            raise ValueError(f"Driver {name} not registered")
        return self._driver_registry[name](**config)

    def create_provider(
        self,
        name: str,
        registry: StreamRegistry,
        options: Optional[Union[ProviderOptions, Dict[str, Any]]] = None,
        **config: Any,
    ) -> ProviderCore:
        """Create a provider around a new driver instance.

        Args:
            name: Name of the driver
            registry: Registry streams are distributed through
            options: Provider options
            **config: Driver-specific configuration

        Returns:
            Provider owning the new driver
        """
        driver = self.create_driver(name, **config)
        return ProviderCore(driver, registry, options)

    def list_drivers(self) -> list[str]:
        """Get list of registered driver names."""
        return list(self._driver_registry.keys())
