"""
Base service class providing the lifecycle shared by all services.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from utils.logging import get_logger


class BaseService(ABC):
    """
    Abstract base class for all services in the bot.

    Subclasses implement ``_initialize_impl`` and optionally
    ``_shutdown_impl``. A service constructed with ``enabled=False`` still
    goes through the lifecycle but its feature methods are expected to
    return early.
    """

    def __init__(self, name: str, enabled: bool = True) -> None:
        self.name = name
        self.enabled = enabled
        self.logger = get_logger(f"services.{name}")
        self._initialized = False
        self._lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Initialize the service once; later calls are no-ops."""
        async with self._lock:
            if self._initialized:
                return

            self.logger.info(f"Initializing {self.name} service")
            try:
                await self._initialize_impl()
            except Exception as e:
                self.logger.exception(f"Failed to initialize {self.name} service", exc_info=e)
                raise
            self._initialized = True
            if not self.enabled:
                self.logger.info(f"{self.name} service is disabled by configuration")

    async def shutdown(self) -> None:
        """Shut the service down. Errors are logged, never raised."""
        if not self._initialized:
            return

        self.logger.info(f"Shutting down {self.name} service")
        try:
            await self._shutdown_impl()
        except Exception as e:
            self.logger.exception(f"Error during {self.name} service shutdown", exc_info=e)
        finally:
            self._initialized = False

    @abstractmethod
    async def _initialize_impl(self) -> None:
        """Subclass-specific initialization logic."""

    async def _shutdown_impl(self) -> None:
        """Subclass-specific shutdown logic. Override if needed."""

    async def health_check(self) -> dict[str, Any]:
        if not self.enabled:
            status = "disabled"
        elif self._initialized:
            status = "healthy"
        else:
            status = "not_initialized"
        return {
            "service": self.name,
            "initialized": self._initialized,
            "enabled": self.enabled,
            "status": status,
        }
