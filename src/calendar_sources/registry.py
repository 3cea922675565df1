"""Registry utilities for calendar sources."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from src.calendar_sources.base import CalendarEventSource
    from src.config.settings import Settings

Factory = Callable[["Settings"], "CalendarEventSource | None"]

logger = structlog.get_logger(__name__)


class SourceRegistry:
    """Lightweight registry mapping source names to factories.

    A factory receives the settings and returns a configured source, or
    ``None`` when the settings do not enable it.
    """

    def __init__(self) -> None:
        self._registry: dict[str, Factory] = {}

    def register(self, name: str, factory: Factory) -> None:
        """Register a new source factory under the given name."""
        self._registry[name] = factory

    def unregister(self, name: str) -> None:
        """Remove a factory from the registry if it exists."""
        self._registry.pop(name, None)

    def create(self, name: str, settings: Settings) -> CalendarEventSource | None:
        """Instantiate the source associated with the given name."""
        factory = self._registry.get(name)
        if factory is None:
            raise KeyError(f"Calendar source '{name}' is not registered")
        return factory(settings)

    def get(self, name: str) -> Factory | None:
        """Return the raw factory callable for inspection."""
        return self._registry.get(name)

    def available(self) -> dict[str, Factory]:
        """Return a snapshot of all registered sources."""
        return dict(self._registry)

    def create_configured(self, settings: Settings) -> list[CalendarEventSource]:
        """Build every registered source the settings enable, in registration order."""
        sources: list[CalendarEventSource] = []
        for name, factory in self._registry.items():
            try:
                source = factory(settings)
            except Exception as e:
                logger.error("Failed to create calendar source", name=name, error=str(e))
                continue
            if source is not None:
                sources.append(source)
        logger.info(
            "Calendar sources configured",
            sources=[source.source_id for source in sources],
        )
        return sources


source_registry = SourceRegistry()


def register_source(name: str, factory: Factory) -> None:
    """Convenience wrapper to register via the global registry."""
    source_registry.register(name, factory)
