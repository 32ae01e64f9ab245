"""Process-level wiring for pushing sheet edits to Pipedrive.

SheetSyncService owns the one PipedriveClient and the one
FieldDefinitionCache a process uses, both built from Settings, and hands
out update adapters carrying the configured default currency.

Usage:
    with SheetSyncService.from_settings() as service:
        result = service.push(EntityKind.DEAL, rows, header_to_key)
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import httpx
import structlog

from src.sheetsync.config import Settings, get_settings
from src.sheetsync.crm.adapters import ADAPTERS, EntityUpdateAdapter
from src.sheetsync.crm.client import PipedriveClient, TokenProvider
from src.sheetsync.crm.sync import PushResult, RowUpdate, push_rows
from src.sheetsync.fields.cache import FieldDefinitionCache
from src.sheetsync.fields.schemas import EntityKind
from src.sheetsync.logging import configure_structlog

logger = structlog.get_logger(__name__)


class SheetSyncService:
    """Request capability, field metadata cache, and adapters for one process.

    Args:
        client: Authorized Pipedrive client.
        cache: Field definition cache fed by the client.
        settings: Settings the service was built from.
    """

    def __init__(self, client: PipedriveClient, cache: FieldDefinitionCache, settings: Settings) -> None:
        self.client = client
        self.cache = cache
        self.settings = settings

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        tokens: TokenProvider | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> SheetSyncService:
        """Configure logging and build the client and cache from settings."""
        settings = settings or get_settings()
        configure_structlog(settings)

        client = PipedriveClient.from_settings(settings, tokens=tokens, transport=transport)
        cache = FieldDefinitionCache.from_settings(client.fetch_field_definitions, settings)
        logger.info(
            "service.started",
            environment=settings.ENVIRONMENT.value,
            api_base_url=settings.api_base_url,
        )
        return cls(client, cache, settings)

    def adapter(self, kind: EntityKind) -> EntityUpdateAdapter:
        return ADAPTERS[kind].from_settings(self.client, self.settings)

    def push(
        self,
        kind: EntityKind,
        rows: Iterable[RowUpdate],
        header_to_key: Mapping[str, str],
        force_refresh: bool = False,
    ) -> PushResult:
        """Push edited rows of one entity kind using cached field definitions."""
        definitions = self.cache.definitions_map(kind, force_refresh=force_refresh)
        return push_rows(self.adapter(kind), rows, header_to_key, definitions)

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> SheetSyncService:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
