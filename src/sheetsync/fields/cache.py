"""Field definition cache with an externally owned TTL.

One FieldDefinitionCache is created per process and injected wherever field
metadata is needed. Stale or missing metadata is tolerated: a failed fetch
falls back to the last good copy, or to no definitions at all, in which case
classification degrades to key-shape rules only.
"""

from __future__ import annotations

import time
from collections.abc import Callable

import structlog

from src.sheetsync.config import Settings
from src.sheetsync.fields.schemas import EntityKind, FieldDefinition

logger = structlog.get_logger(__name__)

Fetcher = Callable[[EntityKind], list[FieldDefinition]]


class FieldDefinitionCache:
    """Caches field definitions per entity kind.

    Args:
        fetcher: Callable returning fresh definitions for an entity kind.
        ttl_seconds: Age after which cached definitions are refetched.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        ttl_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetcher = fetcher
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[EntityKind, tuple[float, list[FieldDefinition]]] = {}

    @classmethod
    def from_settings(
        cls,
        fetcher: Fetcher,
        settings: Settings,
        clock: Callable[[], float] = time.monotonic,
    ) -> FieldDefinitionCache:
        return cls(fetcher, ttl_seconds=settings.FIELD_CACHE_TTL_SECONDS, clock=clock)

    def get(self, kind: EntityKind, force_refresh: bool = False) -> list[FieldDefinition]:
        """Return definitions for kind, refetching when expired or forced."""
        entry = self._entries.get(kind)
        now = self._clock()
        if entry is not None and not force_refresh and now - entry[0] < self._ttl:
            return entry[1]

        try:
            definitions = self._fetcher(kind)
        except Exception as exc:
            if entry is not None:
                logger.warning(
                    "field_cache.fetch_failed_using_stale",
                    entity_kind=kind.value,
                    error=str(exc),
                )
                return entry[1]
            logger.warning(
                "field_cache.fetch_failed_no_cache",
                entity_kind=kind.value,
                error=str(exc),
            )
            return []

        if not definitions:
            logger.warning("field_cache.empty_definitions", entity_kind=kind.value)
        self._entries[kind] = (now, definitions)
        return definitions

    def definitions_map(self, kind: EntityKind, force_refresh: bool = False) -> dict[str, FieldDefinition]:
        """Definitions keyed by field key."""
        return {definition.key: definition for definition in self.get(kind, force_refresh)}

    def option_mappings(self, kind: EntityKind) -> dict[str, dict[str, str]]:
        """Map field key -> {str(option id): label} for fields with options."""
        return {
            definition.key: definition.option_map()
            for definition in self.get(kind)
            if definition.options
        }

    def invalidate(self, kind: EntityKind | None = None) -> None:
        """Drop cached definitions for one kind, or for all kinds."""
        if kind is None:
            self._entries.clear()
        else:
            self._entries.pop(kind, None)
