"""Shared fixtures for sheetsync tests.

Provides:
- Custom field hashes in the vendor's 40-hex-character shape
- Field definition maps for deal-like entities (ranges, options, dates)
- A MagicMock request capability returning a success body
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from src.sheetsync.fields.schemas import FieldDefinition, FieldOption

TIME_RANGE_HASH = "abc1230000000000000000000000000000000def"
DATE_RANGE_HASH = "d47e0000000000000000000000000000000000aa"
ADDRESS_HASH = "add7e55000000000000000000000000000000bee"
PRIORITY_HASH = "ba5e000000000000000000000000000000000001"


@pytest.fixture
def definitions() -> dict[str, FieldDefinition]:
    """Field definitions keyed by field key."""
    items = [
        FieldDefinition(key=TIME_RANGE_HASH, name="Meeting Window", field_type="timerange"),
        FieldDefinition(key=DATE_RANGE_HASH, name="Contract Period", field_type="daterange"),
        FieldDefinition(key=ADDRESS_HASH, name="Site Address", field_type="address"),
        FieldDefinition(
            key=PRIORITY_HASH,
            name="Priority",
            field_type="enum",
            options=[FieldOption(id=1, label="High"), FieldOption(id=2, label="Low")],
        ),
        FieldDefinition(key="title", name="Title", field_type="varchar"),
        FieldDefinition(key="expected_close_date", name="Expected Close", field_type="date"),
        FieldDefinition(key="value", name="Value", field_type="monetary"),
        FieldDefinition(
            key="label",
            name="Labels",
            field_type="set",
            options=[
                FieldOption(id=10, label="Hot"),
                FieldOption(id=11, label="Warm"),
                FieldOption(id=12, label="Cold"),
            ],
        ),
    ]
    return {item.key: item for item in items}


@pytest.fixture
def client() -> MagicMock:
    """Request capability that answers every call with success."""
    mock = MagicMock()
    mock.request.return_value = {"success": True, "data": {"id": 42}}
    return mock
