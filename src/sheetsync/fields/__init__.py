"""Field metadata, key classification, and value formatting.

- classify(): maps a field key to a FieldClass (custom hash, component, nested path, option, scalar)
- formatters: pure coercions from raw cell values to CRM wire values
- FieldDefinitionCache: injected per-process cache of field definitions with a TTL
"""

from src.sheetsync.fields.cache import FieldDefinitionCache
from src.sheetsync.fields.classifier import classify, is_custom_key
from src.sheetsync.fields.formatters import (
    OptionDirection,
    format_address_component,
    format_date,
    format_option_value,
    format_time,
)
from src.sheetsync.fields.schemas import (
    ColumnMapping,
    EntityKind,
    FieldClass,
    FieldDefinition,
    FieldKind,
    FieldOption,
    PayloadWarning,
    WarningCode,
    build_header_index,
)

__all__ = [
    "FieldDefinitionCache",
    "classify",
    "is_custom_key",
    "OptionDirection",
    "format_address_component",
    "format_date",
    "format_option_value",
    "format_time",
    "ColumnMapping",
    "EntityKind",
    "FieldClass",
    "FieldDefinition",
    "FieldKind",
    "FieldOption",
    "PayloadWarning",
    "WarningCode",
    "build_header_index",
]
