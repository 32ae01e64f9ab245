"""Pydantic schemas for field metadata, classification, and diagnostics.

Defines:
- Enums: EntityKind, FieldKind, WarningCode
- Field metadata: FieldOption, FieldDefinition (as served by the /<entity>Fields endpoints)
- Column mapping: ColumnMapping plus the header/key index builder
- Classification output: FieldClass
- Diagnostics: PayloadWarning
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ── Enums ───────────────────────────────────────────────────────────────────


class EntityKind(str, Enum):
    """CRM entity kinds that support update payloads."""

    DEAL = "deal"
    PERSON = "person"
    ORGANIZATION = "organization"
    ACTIVITY = "activity"
    LEAD = "lead"
    PRODUCT = "product"


class FieldKind(str, Enum):
    """Classification of a field key on the write path."""

    CONTACT_CHANNEL = "contact_channel"  # email.work, phone.mobile
    NESTED_PATH = "nested_path"  # org_id.name, address.locality
    ADDRESS_COMPONENT = "address_component"  # <hash>_locality
    RANGE_END = "range_end"  # <hash>_until
    CUSTOM_COMPONENT = "custom_component"  # <hash>_timezone_id, <hash>_currency
    CUSTOM_COMPONENT_GENERIC = "custom_component_generic"  # <hash>_<anything else>
    CUSTOM_BASE = "custom_base"  # <hash>
    OPTION = "option"  # well-known enum/set field
    WELL_KNOWN_SCALAR = "well_known_scalar"


class WarningCode(str, Enum):
    """Non-fatal diagnostics surfaced to the caller alongside a payload."""

    CLASSIFICATION_AMBIGUOUS = "classification_ambiguous"
    FORMAT_ERROR = "format_error"
    PAIR_DEFAULT_APPLIED = "pair_default_applied"
    PAIR_HALF_COPIED = "pair_half_copied"
    RANGE_KIND_MISMATCH = "range_kind_mismatch"
    COERCION_SKIPPED = "coercion_skipped"


# ── Field Metadata ──────────────────────────────────────────────────────────


class FieldOption(BaseModel):
    """A single option of an enum/set field."""

    id: int | str
    label: str


class FieldDefinition(BaseModel):
    """Field metadata as returned by the CRM field-metadata endpoints."""

    model_config = ConfigDict(extra="ignore")

    key: str
    name: str = ""
    field_type: str = "varchar"
    options: list[FieldOption] | None = None

    @property
    def is_range(self) -> bool:
        return self.field_type in ("timerange", "daterange")

    def option_map(self) -> dict[str, str]:
        """Map str(option id) -> label."""
        return {str(option.id): option.label for option in self.options or []}


# ── Column Mapping ──────────────────────────────────────────────────────────


class ColumnMapping(BaseModel):
    """Links a sheet header to the CRM field key it holds."""

    header: str
    field_key: str


def build_header_index(
    mappings: list[ColumnMapping],
) -> tuple[dict[str, str], dict[str, str]]:
    """Build (header -> key, key -> header) indexes from column mappings.

    When two headers map to the same key, the first header wins in the
    reverse index.
    """
    header_to_key: dict[str, str] = {}
    key_to_header: dict[str, str] = {}
    for mapping in mappings:
        header_to_key[mapping.header] = mapping.field_key
        key_to_header.setdefault(mapping.field_key, mapping.header)
    return header_to_key, key_to_header


# ── Classification ──────────────────────────────────────────────────────────


class FieldClass(BaseModel):
    """Result of classifying a field key.

    Only the attributes relevant to the kind are populated: hash_id and
    component for custom components, parent and prop for nested paths,
    label for contact channels, field_type and multiple for keys that
    matched a definition.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    kind: FieldKind
    hash_id: str | None = None
    component: str | None = None
    parent: str | None = None
    prop: str | None = None
    label: str | None = None
    field_type: str | None = None
    multiple: bool = False


# ── Diagnostics ─────────────────────────────────────────────────────────────


class PayloadWarning(BaseModel):
    """A non-fatal problem found while building a payload."""

    model_config = ConfigDict(frozen=True)

    code: WarningCode
    key: str
    message: str
    raw_value: Any = Field(default=None, repr=False)
