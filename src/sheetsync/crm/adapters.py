"""Entity update adapters -- one outbound update call per edited row.

Each adapter runs the full return path for one entity kind:

    build_envelope -> resolve_pairs -> assemble -> finalize -> request

and is the boundary past which no exception propagates: every failure comes
back as UpdateResult(success=False, ...). Retrying is left entirely to the
request capability (one refresh-and-retry on 401, nothing else).
"""

from __future__ import annotations

from abc import ABC
from collections.abc import Iterable, Mapping
from typing import Any, ClassVar, Protocol

import structlog
from pydantic import BaseModel, Field

from src.sheetsync.config import Settings
from src.sheetsync.errors import AuthError, TransportError
from src.sheetsync.fields.schemas import EntityKind, FieldDefinition, PayloadWarning
from src.sheetsync.payload.assembler import assemble, finalize
from src.sheetsync.payload.builder import build_envelope
from src.sheetsync.payload.envelope import PayloadEnvelope
from src.sheetsync.payload.ranges import resolve_pairs

logger = structlog.get_logger(__name__)

Definitions = Mapping[str, FieldDefinition] | Iterable[FieldDefinition] | None


class RequestCapability(Protocol):
    """Authorized request callable, e.g. PipedriveClient."""

    def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]: ...


class UpdateResult(BaseModel):
    """Outcome of a single entity update."""

    success: bool
    data: Any = None
    error: str | None = None
    error_info: str | None = None
    warnings: list[PayloadWarning] = Field(default_factory=list)
    payload: dict[str, Any] | None = None


def definitions_map(definitions: Definitions) -> dict[str, FieldDefinition]:
    """Normalize definitions given as a list or mapping into a key-indexed dict."""
    if definitions is None:
        return {}
    if isinstance(definitions, Mapping):
        return dict(definitions)
    return {definition.key: definition for definition in definitions}


class EntityUpdateAdapter(ABC):
    """Base class for per-entity update adapters.

    Subclasses only declare the entity kind, endpoint, and HTTP method.

    Args:
        client: Request capability used for the outbound call.
        default_currency: Currency for wrapping bare product prices.
    """

    entity_kind: ClassVar[EntityKind]
    path_template: ClassVar[str]
    method: ClassVar[str] = "PUT"

    def __init__(self, client: RequestCapability, default_currency: str = "USD") -> None:
        self._client = client
        self._default_currency = default_currency

    @classmethod
    def from_settings(cls, client: RequestCapability, settings: Settings) -> EntityUpdateAdapter:
        return cls(client, default_currency=settings.DEFAULT_CURRENCY)

    def record_id(self, record_id: int | str) -> int | str:
        """Numeric entity ids are sent as integers."""
        return int(record_id)

    def prepare(
        self,
        row_data: Mapping[str, Any],
        header_to_key: Mapping[str, str],
        field_definitions: Definitions = None,
    ) -> PayloadEnvelope:
        """Build, resolve, and shape the envelope for one edited row."""
        definitions = definitions_map(field_definitions)
        envelope = build_envelope(row_data, header_to_key, definitions)
        envelope = resolve_pairs(envelope, row_data, header_to_key, definitions)
        return assemble(self.entity_kind, envelope, self._default_currency)

    def update(
        self,
        record_id: int | str,
        row_data: Mapping[str, Any],
        header_to_key: Mapping[str, str],
        field_definitions: Definitions = None,
    ) -> UpdateResult:
        """Update one record from an edited row of the sheet."""
        try:
            envelope = self.prepare(row_data, header_to_key, field_definitions)
        except Exception as exc:
            return self._failure(record_id, exc, "Exception while preparing payload")
        return self._send(record_id, envelope)

    def update_payload(
        self,
        record_id: int | str,
        payload: dict[str, Any],
        field_definitions: Definitions = None,
    ) -> UpdateResult:
        """Update one record from an already built payload dict."""
        try:
            definitions = definitions_map(field_definitions)
            envelope = resolve_pairs(PayloadEnvelope.from_payload(payload), definitions=definitions)
            envelope = assemble(self.entity_kind, envelope, self._default_currency)
        except Exception as exc:
            return self._failure(record_id, exc, "Exception while preparing payload")
        return self._send(record_id, envelope)

    def _send(self, record_id: int | str, envelope: PayloadEnvelope) -> UpdateResult:
        warnings = list(envelope.warnings)
        wire = finalize(envelope)
        try:
            path = self.path_template.format(id=self.record_id(record_id))
            body = self._client.request(self.method, path, json=wire)
        except AuthError as exc:
            return self._failure(record_id, exc, "Authentication failed", warnings, wire)
        except TransportError as exc:
            info = f"HTTP {exc.status_code}" if exc.status_code is not None else "Transport failure"
            return self._failure(record_id, exc, info, warnings, wire)
        except Exception as exc:
            return self._failure(record_id, exc, f"Exception in {type(self).__name__}.update", warnings, wire)

        logger.info(
            "crm.record_updated",
            entity_kind=self.entity_kind.value,
            record_id=record_id,
            fields=len(wire),
            warnings=len(warnings),
        )
        return UpdateResult(
            success=True,
            data=body.get("data", body) if isinstance(body, dict) else body,
            warnings=warnings,
            payload=wire,
        )

    def _failure(
        self,
        record_id: int | str,
        exc: Exception,
        error_info: str,
        warnings: list[PayloadWarning] | None = None,
        wire: dict[str, Any] | None = None,
    ) -> UpdateResult:
        logger.error(
            "crm.update_failed",
            entity_kind=self.entity_kind.value,
            record_id=record_id,
            error=str(exc),
            error_info=error_info,
        )
        return UpdateResult(
            success=False,
            error=str(exc),
            error_info=error_info,
            warnings=warnings or [],
            payload=wire,
        )


# ── Concrete adapters ───────────────────────────────────────────────────────


class DealUpdateAdapter(EntityUpdateAdapter):
    entity_kind = EntityKind.DEAL
    path_template = "deals/{id}"


class PersonUpdateAdapter(EntityUpdateAdapter):
    entity_kind = EntityKind.PERSON
    path_template = "persons/{id}"


class OrganizationUpdateAdapter(EntityUpdateAdapter):
    entity_kind = EntityKind.ORGANIZATION
    path_template = "organizations/{id}"


class ProductUpdateAdapter(EntityUpdateAdapter):
    entity_kind = EntityKind.PRODUCT
    path_template = "products/{id}"


class ActivityUpdateAdapter(EntityUpdateAdapter):
    entity_kind = EntityKind.ACTIVITY
    path_template = "activities/{id}"


class LeadUpdateAdapter(EntityUpdateAdapter):
    """Leads are keyed by UUID and updated with PATCH."""

    entity_kind = EntityKind.LEAD
    path_template = "leads/{id}"
    method = "PATCH"

    def record_id(self, record_id: int | str) -> int | str:
        return str(record_id)


ADAPTERS: dict[EntityKind, type[EntityUpdateAdapter]] = {
    EntityKind.DEAL: DealUpdateAdapter,
    EntityKind.PERSON: PersonUpdateAdapter,
    EntityKind.ORGANIZATION: OrganizationUpdateAdapter,
    EntityKind.PRODUCT: ProductUpdateAdapter,
    EntityKind.ACTIVITY: ActivityUpdateAdapter,
    EntityKind.LEAD: LeadUpdateAdapter,
}


def adapter_for(
    kind: EntityKind,
    client: RequestCapability,
    default_currency: str = "USD",
) -> EntityUpdateAdapter:
    """Instantiate the update adapter for an entity kind."""
    return ADAPTERS[kind](client, default_currency)
