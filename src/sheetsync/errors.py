"""Exception taxonomy for the update path.

FormatError is raised inside payload construction and handled there (the
field is omitted). AuthError and TransportError come out of the request
capability and are converted to failure results by the entity adapters.
"""

from __future__ import annotations

from typing import Any


class SheetSyncError(Exception):
    """Base class for all sheetsync errors."""


class FormatError(SheetSyncError):
    """A cell value could not be coerced into its wire representation."""

    def __init__(self, key: str, raw_value: Any, reason: str = "") -> None:
        self.key = key
        self.raw_value = raw_value
        self.reason = reason
        message = f"Cannot format value {raw_value!r} for field {key}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class AuthError(SheetSyncError):
    """Authentication failed and could not be recovered by a token refresh."""


class TransportError(SheetSyncError):
    """The CRM answered with a non-2xx status or an unusable body."""

    def __init__(self, message: str, status_code: int | None = None, body: Any = None) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)
