"""CRM integration layer -- request capability, entity update adapters, batch push.

Provides:
- PipedriveClient: Bearer-authenticated requests with one refresh-and-retry on 401
- EntityUpdateAdapter and its deal/person/organization/product/activity/lead variants
- push_rows(): sequential per-row push with independent outcomes
"""

from src.sheetsync.crm.adapters import (
    ADAPTERS,
    ActivityUpdateAdapter,
    DealUpdateAdapter,
    EntityUpdateAdapter,
    LeadUpdateAdapter,
    OrganizationUpdateAdapter,
    PersonUpdateAdapter,
    ProductUpdateAdapter,
    UpdateResult,
    adapter_for,
)
from src.sheetsync.crm.client import PipedriveClient, StaticTokenProvider, TokenProvider
from src.sheetsync.crm.sync import PushResult, RowUpdate, push_rows

__all__ = [
    "ADAPTERS",
    "ActivityUpdateAdapter",
    "DealUpdateAdapter",
    "EntityUpdateAdapter",
    "LeadUpdateAdapter",
    "OrganizationUpdateAdapter",
    "PersonUpdateAdapter",
    "ProductUpdateAdapter",
    "UpdateResult",
    "adapter_for",
    "PipedriveClient",
    "StaticTokenProvider",
    "TokenProvider",
    "PushResult",
    "RowUpdate",
    "push_rows",
]
