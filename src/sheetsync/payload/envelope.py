"""Immutable update-payload envelope.

A PayloadEnvelope is built fresh for one row update, passed through the
range resolver and the assembler (each returning a new envelope), and
discarded after the outbound call. It carries the wire data (root keys plus
an optional nested custom_fields object) and bookkeeping that is never
serialized: discovered range pairs, the range flag, and warnings.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator

from src.sheetsync.fields.schemas import PayloadWarning

UNTIL_SUFFIX = "_until"


class RangeKind(str, Enum):
    DATE = "date"
    TIME = "time"


class RangePair(BaseModel):
    """Start/end halves of a date or time range field."""

    model_config = ConfigDict(frozen=True)

    start_key: str
    end_key: str
    kind: RangeKind
    start_value: str | None = None
    end_value: str | None = None

    @model_validator(mode="after")
    def _end_key_matches_start(self) -> RangePair:
        if self.end_key != self.start_key + UNTIL_SUFFIX:
            raise ValueError(f"end_key must be {self.start_key + UNTIL_SUFFIX!r}, got {self.end_key!r}")
        return self

    @classmethod
    def for_base(cls, base_key: str, kind: RangeKind, start: str | None, end: str | None) -> RangePair:
        return cls(
            start_key=base_key,
            end_key=base_key + UNTIL_SUFFIX,
            kind=kind,
            start_value=start,
            end_value=end,
        )


class PayloadEnvelope(BaseModel):
    """Payload under construction for a single update call."""

    model_config = ConfigDict(frozen=True)

    root: dict[str, Any] = {}
    custom_fields: dict[str, Any] | None = None
    range_pairs: tuple[RangePair, ...] = ()
    has_range_fields: bool = False
    warnings: tuple[PayloadWarning, ...] = ()

    def get(self, key: str, default: Any = None) -> Any:
        """Look a key up at the root, then in custom_fields."""
        if key in self.root:
            return self.root[key]
        if self.custom_fields and key in self.custom_fields:
            return self.custom_fields[key]
        return default

    def with_root(self, values: dict[str, Any]) -> PayloadEnvelope:
        return self.model_copy(update={"root": {**self.root, **values}})

    def with_custom(self, values: dict[str, Any]) -> PayloadEnvelope:
        return self.model_copy(update={"custom_fields": {**(self.custom_fields or {}), **values}})

    def with_warnings(self, *warnings: PayloadWarning) -> PayloadEnvelope:
        if not warnings:
            return self
        return self.model_copy(update={"warnings": self.warnings + tuple(warnings)})

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> PayloadEnvelope:
        """Wrap a raw payload dict (root keys plus optional custom_fields)."""
        root = {
            key: value
            for key, value in payload.items()
            if key != "custom_fields" and not key.startswith("__")
        }
        custom = payload.get("custom_fields")
        return cls(root=root, custom_fields=dict(custom) if custom else None)
