"""Build a PayloadEnvelope from an edited sheet row.

Each mapped column is classified, its cell value coerced to the wire type,
and the result placed at the payload root (well-known keys) or inside
custom_fields (hash-keyed custom fields). Range members are placed raw; the
range resolver formats and pairs them afterwards.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from src.sheetsync.errors import FormatError
from src.sheetsync.fields.classifier import classify
from src.sheetsync.fields.formatters import (
    OptionDirection,
    coerce_number,
    format_address_component,
    format_date,
    format_option_value,
    format_time,
    is_blank,
    to_wire_value,
)
from src.sheetsync.fields.schemas import (
    FieldClass,
    FieldDefinition,
    FieldKind,
    PayloadWarning,
    WarningCode,
)
from src.sheetsync.payload.envelope import PayloadEnvelope

logger = structlog.get_logger(__name__)

# Keys the CRM computes itself; edits to them are never sent back.
READ_ONLY_KEYS = frozenset(
    {
        "id",
        "add_time",
        "update_time",
        "creator_user_id",
        "cc_email",
        "weighted_value",
        "formatted_value",
        "next_activity_date",
        "last_activity_date",
    }
)

NUMERIC_FIELD_TYPES = frozenset({"double", "monetary", "int"})
RANGE_FIELD_TYPES = frozenset({"timerange", "daterange"})
RANGE_START_COMPONENT = "start"
PRICES_KEY = "prices"


def _format_typed(
    key: str,
    field_type: str | None,
    raw: Any,
    definition: FieldDefinition | None,
) -> Any:
    """Format a base field value by its declared type. Raises FormatError."""
    if field_type in RANGE_FIELD_TYPES:
        return raw

    if field_type == "date":
        value = format_date(raw)
    elif field_type == "time":
        value = format_time(raw)
    elif field_type in ("enum", "set") and definition is not None and definition.options:
        value = format_option_value(
            raw,
            definition.option_map(),
            multiple=field_type == "set",
            direction=OptionDirection.TO_IDS,
        )
    elif field_type in NUMERIC_FIELD_TYPES:
        value = coerce_number(raw)
    else:
        value = to_wire_value(raw)

    if value is None:
        raise FormatError(key, raw, f"not a valid {field_type or 'value'}")
    return value


def _structured_prices(key: str, raw: Any) -> list[dict[str, Any]]:
    """Price-list cells: one price object or a list of them."""
    entries = raw if isinstance(raw, list) else [raw]
    if not all(isinstance(entry, dict) and "price" in entry for entry in entries):
        raise FormatError(key, raw, "price entries need a price")
    return [{name: to_wire_value(value) for name, value in entry.items()} for entry in entries]


class _RowPayload:
    """Accumulates placements for one row before the envelope is frozen."""

    def __init__(self, definitions: Mapping[str, FieldDefinition]) -> None:
        self.definitions = definitions
        self.root: dict[str, Any] = {}
        self.custom: dict[str, Any] = {}
        self.contacts: dict[str, list[dict[str, Any]]] = {}
        self.warnings: list[PayloadWarning] = []

    def place(self, field: FieldClass, raw: Any) -> None:
        kind = field.kind

        if kind is FieldKind.CONTACT_CHANNEL:
            entries = self.contacts.setdefault(field.parent or "", [])
            entries.append(
                {
                    "label": field.label,
                    "value": str(to_wire_value(raw)).strip(),
                    "primary": not entries,
                }
            )
            return

        if kind is FieldKind.NESTED_PATH:
            if field.parent == "address":
                self.root[f"address_{field.prop}"] = str(to_wire_value(raw)).strip()
            else:
                logger.debug("builder.read_only_path_skipped", key=field.key)
            return

        if kind is FieldKind.ADDRESS_COMPONENT:
            value = format_address_component(raw, field.component or "")
            if value is not None:
                self.custom[field.key] = value
            return

        if kind is FieldKind.RANGE_END:
            self.custom[field.key] = raw
            return

        if kind in (FieldKind.CUSTOM_COMPONENT, FieldKind.CUSTOM_COMPONENT_GENERIC):
            if field.component == RANGE_START_COMPONENT and field.field_type in RANGE_FIELD_TYPES:
                self.custom[field.hash_id] = raw
                return
            value = to_wire_value(raw)
            if value is None:
                raise FormatError(field.key, raw, "unsupported component value")
            self.custom[field.key] = value
            return

        if field.key == PRICES_KEY and isinstance(raw, (list, dict)):
            self.root[field.key] = _structured_prices(field.key, raw)
            return

        definition = self.definitions.get(field.key)

        if kind is FieldKind.CUSTOM_BASE:
            self.custom[field.key] = _format_typed(field.key, field.field_type, raw, definition)
            return

        if kind is FieldKind.WELL_KNOWN_SCALAR and definition is None and self.definitions:
            self.warnings.append(
                PayloadWarning(
                    code=WarningCode.CLASSIFICATION_AMBIGUOUS,
                    key=field.key,
                    message=f"No field definition for {field.key}; sent as a plain value",
                )
            )
            logger.info("builder.classification_ambiguous", key=field.key)

        self.root[field.key] = _format_typed(field.key, field.field_type, raw, definition)

    def envelope(self) -> PayloadEnvelope:
        root = dict(self.root)
        root.update(self.contacts)
        return PayloadEnvelope(
            root=root,
            custom_fields=dict(self.custom) if self.custom else None,
            warnings=tuple(self.warnings),
        )


def build_envelope(
    row_data: Mapping[str, Any],
    header_to_key: Mapping[str, str],
    definitions: Mapping[str, FieldDefinition] | None = None,
) -> PayloadEnvelope:
    """Build the initial payload envelope for one edited row.

    Blank cells and read-only keys are skipped. A value that cannot be
    formatted is omitted and reported as a format_error warning rather than
    sent in a corrupted form.

    Args:
        row_data: Mapping of sheet header -> raw cell value.
        header_to_key: Mapping of sheet header -> CRM field key.
        definitions: Field definitions keyed by field key, if available.

    Returns:
        A PayloadEnvelope with root and custom_fields populated.
    """
    definitions = definitions or {}
    payload = _RowPayload(definitions)

    for header, raw in row_data.items():
        key = header_to_key.get(header)
        if not key or key in READ_ONLY_KEYS or is_blank(raw):
            continue

        field = classify(key, definitions)
        try:
            payload.place(field, raw)
        except FormatError as exc:
            logger.warning(
                "payload.format_error",
                key=exc.key,
                raw_value=repr(exc.raw_value),
                header=header,
                reason=exc.reason,
            )
            payload.warnings.append(
                PayloadWarning(
                    code=WarningCode.FORMAT_ERROR,
                    key=exc.key,
                    message=str(exc),
                    raw_value=exc.raw_value,
                )
            )

    return payload.envelope()
