"""Range pair resolution for date and time range fields.

The CRM stores a range as two keys, <base> and <base>_until, and rejects an
update carrying only one half. Halves can sit at the payload root, inside
custom_fields, or only in the edited row, so every source is scanned, the
pair is typed as a date or time range from its values, the missing half is
filled from the present one, and both halves are written back to every
payload location.

resolve_pairs() is idempotent: resolving an already resolved envelope
yields an equal envelope.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from src.sheetsync.fields.classifier import is_custom_key
from src.sheetsync.fields.formatters import format_date, format_time, is_blank, looks_like_date
from src.sheetsync.fields.schemas import FieldDefinition, PayloadWarning, WarningCode
from src.sheetsync.payload.envelope import UNTIL_SUFFIX, PayloadEnvelope, RangeKind, RangePair

logger = structlog.get_logger(__name__)

DEFAULT_TIME = "00:00:00"


def base_key_of(end_key: str) -> str:
    return end_key[: -len(UNTIL_SUFFIX)]


def discover_pairs(
    envelope: PayloadEnvelope,
    row_keys: Mapping[str, str],
    definitions: Mapping[str, FieldDefinition],
) -> list[str]:
    """Return base keys of every range pair visible in the envelope or row.

    A pair is registered when its end key appears anywhere, even if the start
    key is absent, and when a start key is present whose definition is a
    date or time range.
    """
    bases: dict[str, None] = {}
    sources = [envelope.root, envelope.custom_fields or {}, row_keys]
    for source in sources:
        for key in source:
            if key.endswith(UNTIL_SUFFIX) and len(key) > len(UNTIL_SUFFIX):
                bases.setdefault(base_key_of(key))

    for source in sources:
        for key in source:
            definition = definitions.get(key)
            if definition is not None and definition.is_range:
                bases.setdefault(key)

    return list(bases)


def _lookup(
    key: str,
    envelope: PayloadEnvelope,
    row_data: Mapping[str, Any],
    row_keys: Mapping[str, str],
) -> Any:
    """First non-blank value for key: root, then custom_fields, then row data."""
    for source in (envelope.root, envelope.custom_fields or {}):
        value = source.get(key)
        if not is_blank(value):
            return value
    header = row_keys.get(key)
    if header is not None:
        value = row_data.get(header)
        if not is_blank(value):
            return value
    return None


def _range_kind(
    base_key: str,
    start: Any,
    end: Any,
    definitions: Mapping[str, FieldDefinition],
) -> tuple[RangeKind, bool]:
    """Decide date vs time for a pair. Returns (kind, halves_disagree)."""
    present = [value for value in (start, end) if value is not None]
    if not present:
        definition = definitions.get(base_key)
        if definition is not None and definition.field_type == "daterange":
            return RangeKind.DATE, False
        return RangeKind.TIME, False

    date_like = [looks_like_date(value) for value in present]
    kind = RangeKind.DATE if any(date_like) else RangeKind.TIME
    return kind, len(set(date_like)) > 1


def _resolve_one(
    base_key: str,
    envelope: PayloadEnvelope,
    row_data: Mapping[str, Any],
    row_keys: Mapping[str, str],
    definitions: Mapping[str, FieldDefinition],
) -> tuple[RangePair | None, list[PayloadWarning]]:
    end_key = base_key + UNTIL_SUFFIX
    warnings: list[PayloadWarning] = []

    raw_start = _lookup(base_key, envelope, row_data, row_keys)
    raw_end = _lookup(end_key, envelope, row_data, row_keys)

    kind, disagree = _range_kind(base_key, raw_start, raw_end, definitions)
    if disagree:
        logger.warning(
            "ranges.kind_mismatch",
            base_key=base_key,
            start=repr(raw_start),
            end=repr(raw_end),
            resolved_kind=kind.value,
        )
        warnings.append(
            PayloadWarning(
                code=WarningCode.RANGE_KIND_MISMATCH,
                key=base_key,
                message=f"Range halves of {base_key} disagree on date vs time; treated as {kind.value} range",
            )
        )

    formatter = format_date if kind is RangeKind.DATE else format_time
    formatted: dict[str, str | None] = {}
    for key, raw in ((base_key, raw_start), (end_key, raw_end)):
        formatted[key] = formatter(raw) if raw is not None else None
        if raw is not None and formatted[key] is None:
            logger.warning("payload.format_error", key=key, raw_value=repr(raw), kind=kind.value)
            warnings.append(
                PayloadWarning(
                    code=WarningCode.FORMAT_ERROR,
                    key=key,
                    message=f"Cannot format {raw!r} as a {kind.value} for {key}",
                    raw_value=raw,
                )
            )

    start, end = formatted[base_key], formatted[end_key]

    if start is not None and end is None:
        logger.debug("ranges.end_filled_from_start", base_key=base_key, value=start)
        end = start
    elif start is None and end is not None:
        logger.warning("ranges.start_filled_from_end", base_key=base_key, value=end)
        warnings.append(
            PayloadWarning(
                code=WarningCode.PAIR_HALF_COPIED,
                key=base_key,
                message=f"Start of {base_key} was empty; copied from {end_key}",
            )
        )
        start = end
    elif start is None and end is None:
        if kind is RangeKind.DATE:
            logger.info("ranges.date_pair_unset", base_key=base_key)
            return None, warnings
        logger.warning("ranges.default_applied", base_key=base_key, default=DEFAULT_TIME)
        warnings.append(
            PayloadWarning(
                code=WarningCode.PAIR_DEFAULT_APPLIED,
                key=base_key,
                message=f"Both halves of {base_key} were empty; defaulted to {DEFAULT_TIME}",
            )
        )
        start = end = DEFAULT_TIME

    return RangePair.for_base(base_key, kind, start, end), warnings


def resolve_pairs(
    envelope: PayloadEnvelope,
    row_data: Mapping[str, Any] | None = None,
    header_to_key: Mapping[str, str] | None = None,
    definitions: Mapping[str, FieldDefinition] | None = None,
) -> PayloadEnvelope:
    """Find, type, complete, and synchronize every range pair.

    Args:
        envelope: Envelope built from the row.
        row_data: Mapping of sheet header -> raw cell value.
        header_to_key: Mapping of sheet header -> field key.
        definitions: Field definitions keyed by field key, if available.

    Returns:
        A new envelope with each resolved pair written at the root and, for
        custom fields, inside custom_fields; range_pairs and
        has_range_fields set.
    """
    row_data = row_data or {}
    definitions = definitions or {}
    row_keys: dict[str, str] = {}
    for header, key in (header_to_key or {}).items():
        if header in row_data:
            row_keys.setdefault(key, header)

    bases = discover_pairs(envelope, row_keys, definitions)
    if not bases:
        return envelope

    root = dict(envelope.root)
    custom = dict(envelope.custom_fields or {})
    pairs: list[RangePair] = []
    new_warnings: list[PayloadWarning] = []

    for base_key in bases:
        pair, warnings = _resolve_one(base_key, envelope, row_data, row_keys, definitions)
        new_warnings.extend(warning for warning in warnings if warning not in envelope.warnings)

        if pair is None:
            for key in (base_key, base_key + UNTIL_SUFFIX):
                root.pop(key, None)
                custom.pop(key, None)
            continue

        pairs.append(pair)
        nested = is_custom_key(base_key) or base_key in custom or pair.end_key in custom
        for key, value in ((pair.start_key, pair.start_value), (pair.end_key, pair.end_value)):
            root[key] = value
            if nested:
                custom[key] = value

    logger.debug("ranges.resolved", pairs=[pair.start_key for pair in pairs])

    return envelope.model_copy(
        update={
            "root": root,
            "custom_fields": custom or None,
            "range_pairs": tuple(pairs),
            "has_range_fields": True,
            "warnings": envelope.warnings + tuple(new_warnings),
        }
    )
