"""Per-entity payload shaping and finalization.

The update endpoints disagree on where custom fields go:

| Entity kind  | custom_fields at call time                          |
|--------------|-----------------------------------------------------|
| deal         | kept nested AND copied to the root                  |
| person       | flattened to the root, nested object removed        |
| organization | rebuilt key by key at the root, nested object removed |
| product      | flattened, plus coercion of unit/category/owner_id/prices |
| activity     | flattened                                           |
| lead         | flattened                                           |

finalize() turns the shaped envelope into the JSON object that is sent.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import structlog

from src.sheetsync.fields.classifier import is_custom_key
from src.sheetsync.fields.formatters import coerce_number, format_price_list, is_blank
from src.sheetsync.fields.schemas import EntityKind, PayloadWarning, WarningCode
from src.sheetsync.payload.envelope import PayloadEnvelope

logger = structlog.get_logger(__name__)

INTERNAL_PREFIX = "__"


def _public(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if not key.startswith(INTERNAL_PREFIX)}


# ── Shapers ─────────────────────────────────────────────────────────────────


def _promote(envelope: PayloadEnvelope, default_currency: str) -> PayloadEnvelope:
    """Deal shape: custom fields live nested and at the root."""
    root = _public(envelope.root)
    custom = dict(envelope.custom_fields or {})

    root.update(custom)
    for key, value in root.items():
        if is_custom_key(key) and key not in custom:
            custom[key] = value

    return envelope.model_copy(update={"root": root, "custom_fields": custom or None})


def _flatten(envelope: PayloadEnvelope, default_currency: str) -> PayloadEnvelope:
    """Person/activity/lead shape: everything at the root."""
    root = _public(envelope.root)
    root.update(envelope.custom_fields or {})
    return envelope.model_copy(update={"root": root, "custom_fields": None})


def _rebuild(envelope: PayloadEnvelope, default_currency: str) -> PayloadEnvelope:
    """Organization shape: standard keys copied verbatim, custom keys merged in."""
    root: dict[str, Any] = {}
    for key, value in envelope.root.items():
        if key.startswith(INTERNAL_PREFIX):
            continue
        root[key] = value
    for key, value in (envelope.custom_fields or {}).items():
        root[key] = value
    return envelope.model_copy(update={"root": root, "custom_fields": None})


def _product(envelope: PayloadEnvelope, default_currency: str) -> PayloadEnvelope:
    """Product shape: flattened, with standard attributes coerced to API types."""
    root: dict[str, Any] = {}
    warnings: list[PayloadWarning] = []

    for key, value in _public(envelope.root).items():
        if key == "unit":
            root[key] = None if is_blank(value) else str(value)
        elif key == "category":
            if is_blank(value):
                root[key] = None
            else:
                number = coerce_number(value)
                if number is None:
                    warnings.append(_skipped(key, value, "category must be a numeric category id"))
                else:
                    root[key] = number
        elif key == "owner_id":
            if is_blank(value):
                continue
            number = coerce_number(value)
            if number is None:
                warnings.append(_skipped(key, value, "owner_id must be a numeric user id"))
            else:
                root[key] = number
        elif key == "prices":
            if is_blank(value):
                continue
            prices = format_price_list(value, default_currency)
            if prices is None:
                warnings.append(_skipped(key, value, "prices must be numeric or price objects"))
            else:
                root[key] = prices
        else:
            root[key] = value

    root.update(envelope.custom_fields or {})
    return envelope.model_copy(update={"root": root, "custom_fields": None}).with_warnings(*warnings)


def _skipped(key: str, value: Any, reason: str) -> PayloadWarning:
    logger.warning("assembler.coercion_skipped", key=key, raw_value=repr(value), reason=reason)
    return PayloadWarning(
        code=WarningCode.COERCION_SKIPPED,
        key=key,
        message=f"Omitted {key}={value!r}: {reason}",
        raw_value=value,
    )


_SHAPERS: dict[EntityKind, Callable[[PayloadEnvelope, str], PayloadEnvelope]] = {
    EntityKind.DEAL: _promote,
    EntityKind.PERSON: _flatten,
    EntityKind.ORGANIZATION: _rebuild,
    EntityKind.PRODUCT: _product,
    EntityKind.ACTIVITY: _flatten,
    EntityKind.LEAD: _flatten,
}


# ── Public API ──────────────────────────────────────────────────────────────


def assemble(
    entity_kind: EntityKind,
    payload: PayloadEnvelope | dict[str, Any],
    default_currency: str = "USD",
) -> PayloadEnvelope:
    """Shape a payload for the update endpoint of entity_kind.

    Args:
        entity_kind: Entity being updated.
        payload: Resolved envelope, or a raw payload dict.
        default_currency: Currency used when a bare product price is wrapped.

    Returns:
        A new envelope in the entity's wire shape.
    """
    envelope = payload if isinstance(payload, PayloadEnvelope) else PayloadEnvelope.from_payload(payload)
    shaped = _SHAPERS[entity_kind](envelope, default_currency)
    logger.debug(
        "assembler.shaped",
        entity_kind=entity_kind.value,
        root_keys=len(shaped.root),
        nested_keys=len(shaped.custom_fields or {}),
    )
    return shaped


def finalize(envelope: PayloadEnvelope) -> dict[str, Any]:
    """Produce the JSON object to send, without internal bookkeeping."""
    wire = _public(envelope.root)
    if envelope.custom_fields:
        wire["custom_fields"] = _public(envelope.custom_fields)
    return wire
