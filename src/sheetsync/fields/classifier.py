"""Field key classification.

Custom fields are identified by 20+ hex-character hashes; components of
composite custom fields (addresses, ranges, monetary, time zones) append a
suffix to the hash. Well-known keys are resolved against field definitions.
All key-shape regexes live here so callers never re-implement them.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

import structlog

from src.sheetsync.fields.schemas import FieldClass, FieldDefinition, FieldKind

logger = structlog.get_logger(__name__)

CUSTOM_BASE_RE = re.compile(r"^[a-f0-9]{20,}$", re.IGNORECASE)
CUSTOM_COMPONENT_RE = re.compile(r"^([a-f0-9]{20,})_([a-z][a-z0-9_]*)$", re.IGNORECASE)

ADDRESS_COMPONENTS = frozenset(
    {
        "locality",
        "sublocality",
        "route",
        "street_number",
        "admin_area_level_1",
        "admin_area_level_2",
        "country",
        "postal_code",
        "subpremise",
        "formatted_address",
    }
)
RANGE_END_COMPONENT = "until"
MISC_COMPONENTS = frozenset({"timezone_id", "currency"})

CONTACT_CHANNELS = frozenset({"email", "phone"})
OPTION_FIELD_TYPES = frozenset({"enum", "set"})


def is_custom_key(key: str) -> bool:
    """True for custom-base and custom-component keys."""
    return bool(CUSTOM_BASE_RE.match(key) or CUSTOM_COMPONENT_RE.match(key))


def classify(
    key: str,
    definitions: Mapping[str, FieldDefinition] | None = None,
) -> FieldClass:
    """Classify a field key.

    Rules are applied in order: dotted contact channels, other dotted paths,
    hash-with-component, bare hash, then a definition lookup for well-known
    keys. Unknown keys fall back to a passthrough scalar.
    """
    definitions = definitions or {}

    if "." in key:
        parent, _, prop = key.partition(".")
        if parent in CONTACT_CHANNELS:
            return FieldClass(key=key, kind=FieldKind.CONTACT_CHANNEL, parent=parent, label=prop.lower())
        return FieldClass(key=key, kind=FieldKind.NESTED_PATH, parent=parent, prop=prop)

    match = CUSTOM_COMPONENT_RE.match(key)
    if match:
        hash_id, component = match.group(1), match.group(2).lower()
        base = definitions.get(hash_id)
        field_type = base.field_type if base else None
        if component in ADDRESS_COMPONENTS:
            kind = FieldKind.ADDRESS_COMPONENT
        elif component == RANGE_END_COMPONENT:
            kind = FieldKind.RANGE_END
        elif component in MISC_COMPONENTS:
            kind = FieldKind.CUSTOM_COMPONENT
        else:
            kind = FieldKind.CUSTOM_COMPONENT_GENERIC
        return FieldClass(
            key=key,
            kind=kind,
            hash_id=hash_id,
            component=component,
            field_type=field_type,
        )

    if CUSTOM_BASE_RE.match(key):
        definition = definitions.get(key)
        return FieldClass(
            key=key,
            kind=FieldKind.CUSTOM_BASE,
            hash_id=key,
            field_type=definition.field_type if definition else None,
            multiple=bool(definition and definition.field_type == "set"),
        )

    definition = definitions.get(key)
    if definition is None:
        if definitions:
            logger.debug("classifier.no_definition", key=key)
        return FieldClass(key=key, kind=FieldKind.WELL_KNOWN_SCALAR)

    if definition.field_type in OPTION_FIELD_TYPES:
        return FieldClass(
            key=key,
            kind=FieldKind.OPTION,
            field_type=definition.field_type,
            multiple=definition.field_type == "set",
        )
    return FieldClass(key=key, kind=FieldKind.WELL_KNOWN_SCALAR, field_type=definition.field_type)
