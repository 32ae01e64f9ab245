"""Sequential push of edited sheet rows to the CRM.

Rows are processed one at a time, end to end. A failing row is recorded and
the loop moves on; no row's failure aborts the batch.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import structlog
from pydantic import BaseModel, Field

from src.sheetsync.crm.adapters import Definitions, EntityUpdateAdapter, UpdateResult, definitions_map

logger = structlog.get_logger(__name__)


class RowUpdate(BaseModel):
    """One edited row: the CRM record id plus header -> cell value."""

    record_id: int | str
    row_data: dict[str, Any]


class RowOutcome(BaseModel):
    record_id: int | str
    result: UpdateResult


class PushResult(BaseModel):
    """Summary of a batch push."""

    pushed: int = 0
    failed: int = 0
    outcomes: list[RowOutcome] = Field(default_factory=list)

    @property
    def errors(self) -> list[str]:
        return [
            f"{outcome.record_id}: {outcome.result.error}"
            for outcome in self.outcomes
            if not outcome.result.success
        ]


def push_rows(
    adapter: EntityUpdateAdapter,
    rows: Iterable[RowUpdate],
    header_to_key: Mapping[str, str],
    field_definitions: Definitions = None,
) -> PushResult:
    """Push each edited row through the adapter and collect per-row outcomes.

    Args:
        adapter: Update adapter for the sheet's entity kind.
        rows: Edited rows in sheet order.
        header_to_key: Mapping of sheet header -> field key.
        field_definitions: Definitions for the entity kind, if available.

    Returns:
        PushResult with pushed/failed counts and one outcome per row.
    """
    definitions = definitions_map(field_definitions)
    result = PushResult()

    for row in rows:
        outcome = adapter.update(row.record_id, row.row_data, header_to_key, definitions)
        result.outcomes.append(RowOutcome(record_id=row.record_id, result=outcome))
        if outcome.success:
            result.pushed += 1
        else:
            result.failed += 1

    logger.info(
        "sync.push_complete",
        entity_kind=adapter.entity_kind.value,
        pushed=result.pushed,
        failed=result.failed,
    )
    return result
