"""Value formatters -- coerce raw cell values into CRM wire values.

Every formatter is a pure function returning the wire value, or None when
the input cannot be interpreted. Callers turn None into a FormatError and
omit the field; formatters never guess.

Spreadsheet quirks handled here:
- Time-only cells arrive as instants on 1899-12-30 (the Sheets/Excel day zero).
- Times may arrive as fractional day numbers (0.5 == 12:00:00).
- Dates may arrive as day serials counted from 1899-12-30.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

SHEETS_EPOCH = date(1899, 12, 30)
SHEETS_EPOCH_ISO = SHEETS_EPOCH.isoformat()
SECONDS_PER_DAY = 86400

_HMS_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_AMPM_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?(?::(\d{2}))?\s*([ap])\.?\s*m\.?$", re.IGNORECASE)
_ISO_DATE_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})$")
_ISO_DATETIME_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})[T ](\d{1,2}):(\d{2})(?::(\d{2}))?")
_ISO_PREFIX_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_SERIAL_RE = re.compile(r"^\d*\.\d+$")
_LOOSE_TIME_RE = re.compile(r"(\d{1,2})[:.](\d{2})")

_DATE_FORMATS = (
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%d.%m.%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
)


class OptionDirection(str, Enum):
    """Which way option values are mapped."""

    TO_LABELS = "to_labels"  # read path: ids -> labels for display
    TO_IDS = "to_ids"  # write path: labels -> ids for the payload


# ── Helpers ─────────────────────────────────────────────────────────────────


def is_blank(value: Any) -> bool:
    """True for None and whitespace-only strings."""
    return value is None or (isinstance(value, str) and not value.strip())


def is_time_sentinel(value: Any) -> bool:
    """True if the value is a spreadsheet time-only instant (dated 1899-12-30)."""
    if isinstance(value, datetime):
        return value.date() == SHEETS_EPOCH
    if isinstance(value, str):
        return SHEETS_EPOCH_ISO in value
    return False


def looks_like_date(value: Any) -> bool:
    """True if the value reads as a calendar date rather than a time of day."""
    if is_time_sentinel(value):
        return False
    if isinstance(value, (datetime, date)):
        return True
    if isinstance(value, str):
        return bool(_ISO_PREFIX_RE.match(value.strip()))
    return False


def _hms(hours: int, minutes: int, seconds: int = 0) -> str | None:
    if not (0 <= hours < 24 and 0 <= minutes < 60 and 0 <= seconds < 60):
        return None
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def _serial_to_time(value: float) -> str | None:
    if value < 0 or math.isnan(value) or math.isinf(value):
        return None
    # Whole day counts carry no time of day.
    if value >= 1 and value.is_integer():
        return None
    fraction = value % 1 if value >= 1 else value
    total = round(fraction * SECONDS_PER_DAY) % SECONDS_PER_DAY
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return _hms(hours, minutes, seconds)


def _unwrap(value: Any) -> Any:
    """Unwrap {"value": ...} objects the CRM uses for composite fields."""
    if isinstance(value, dict) and "value" in value:
        return value["value"]
    return value


# ── Time ────────────────────────────────────────────────────────────────────


def format_time(value: Any) -> str | None:
    """Format a time value as HH:MM:SS.

    Accepts datetime/time instants, {"hour", "minute"} objects, "HH:MM[:SS]"
    strings, 12-hour "H:MM AM/PM" strings, ISO datetime strings (the wall
    clock time is taken as written), and fractional day numbers. Whole numbers
    of 1 or more are day counts without a time and give None.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, dict):
        if "hour" in value:
            try:
                return _hms(
                    int(value["hour"]),
                    int(value.get("minute", 0)),
                    int(value.get("second", 0)),
                )
            except (TypeError, ValueError):
                return None
        if "value" in value:
            return format_time(value["value"])
        return None

    if isinstance(value, datetime):
        return _hms(value.hour, value.minute, value.second)
    if isinstance(value, time):
        return _hms(value.hour, value.minute, value.second)
    if isinstance(value, date):
        return None

    if isinstance(value, (int, float)):
        return _serial_to_time(float(value))

    if isinstance(value, str):
        return _parse_time_string(value.strip())

    return None


def _parse_time_string(text: str) -> str | None:
    if not text:
        return None

    match = _HMS_RE.match(text)
    if match:
        return _hms(int(match.group(1)), int(match.group(2)), int(match.group(3) or 0))

    match = _AMPM_RE.match(text)
    if match:
        hours = int(match.group(1))
        if not 1 <= hours <= 12:
            return None
        meridiem = match.group(4).lower()
        if meridiem == "p" and hours < 12:
            hours += 12
        elif meridiem == "a" and hours == 12:
            hours = 0
        return _hms(hours, int(match.group(2) or 0), int(match.group(3) or 0))

    match = _ISO_DATETIME_RE.match(text)
    if match:
        return _hms(int(match.group(2)), int(match.group(3)), int(match.group(4) or 0))

    if _ISO_DATE_RE.match(text):
        return None

    if _SERIAL_RE.match(text):
        return _serial_to_time(float(text))

    match = _LOOSE_TIME_RE.search(text)
    if match:
        return _hms(int(match.group(1)), int(match.group(2)))

    return None


# ── Date ────────────────────────────────────────────────────────────────────


def format_date(value: Any) -> str | None:
    """Format a date value as YYYY-MM-DD.

    Time components are dropped. Time-only input (a bare "H:MM:SS" string, a
    time instant, or a 1899-12-30 sentinel) is rejected rather than given an
    invented date.
    """
    if value is None or isinstance(value, bool):
        return None

    value = _unwrap(value)

    if isinstance(value, datetime):
        if is_time_sentinel(value):
            logger.warning("formatters.date_rejected_time_value", value=str(value))
            return None
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        logger.warning("formatters.date_rejected_time_value", value=str(value))
        return None

    if isinstance(value, (int, float)):
        if value < 1 or math.isnan(value) or math.isinf(value):
            return None
        return (SHEETS_EPOCH + timedelta(days=int(value))).isoformat()

    if isinstance(value, str):
        return _parse_date_string(value.strip())

    return None


def _valid_iso_date(text: str) -> str | None:
    try:
        return date.fromisoformat(text).isoformat()
    except ValueError:
        return None


def _parse_date_string(text: str) -> str | None:
    if not text:
        return None

    if _ISO_DATE_RE.match(text):
        return _valid_iso_date(text)

    if _HMS_RE.match(text) or _AMPM_RE.match(text) or is_time_sentinel(text):
        logger.warning("formatters.date_rejected_time_value", value=text)
        return None

    match = _ISO_PREFIX_RE.match(text)
    if match:
        return _valid_iso_date(match.group(0))

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue

    logger.warning("formatters.date_unparseable", value=text)
    return None


# ── Address ─────────────────────────────────────────────────────────────────


def format_address_component(value: Any, component: str) -> str | None:
    """Extract one component from an address value.

    Structured addresses yield the named sub-field; a missing or unknown
    component yields None so the field is omitted. Scalar values are taken
    to be the already-extracted component.
    """
    if value is None:
        return None

    if isinstance(value, dict):
        extracted = value.get(component)
        if extracted is None and component == "formatted_address":
            extracted = value.get("value")
        if extracted is None or is_blank(extracted):
            return None
        return str(extracted).strip()

    text = str(value).strip()
    return text or None


# ── Options ─────────────────────────────────────────────────────────────────


def _split_members(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        members = [str(item["id"]) if isinstance(item, dict) and "id" in item else str(item) for item in value]
    else:
        members = str(value).split(",")
    return [member.strip() for member in members if member.strip()]


def _wire_option_id(option_id: str) -> int | str:
    return int(option_id) if option_id.lstrip("-").isdigit() else option_id


def _label_to_id(member: str, options: Mapping[str, str]) -> int | str | None:
    lowered = member.lower()
    for option_id, label in options.items():
        if label.lower() == lowered:
            return _wire_option_id(option_id)
    if member in options:
        return _wire_option_id(member)
    return None


def format_option_value(
    value: Any,
    options: Mapping[str, str],
    *,
    multiple: bool = False,
    direction: OptionDirection = OptionDirection.TO_IDS,
) -> Any:
    """Map option values between ids and labels.

    Args:
        value: A single id/label, a comma-separated string, or a list.
        options: Mapping of str(option id) -> label for the field.
        multiple: True for multi-option (set) fields.
        direction: TO_IDS for the update payload, TO_LABELS for display.

    Returns:
        TO_LABELS: the label (single) or ", "-joined labels (multiple); ids
        without a known label are shown as-is.
        TO_IDS: the option id (single) or a list of ids in input order
        (multiple); None if any label has no matching option.
    """
    if is_blank(value) or isinstance(value, bool):
        return None

    if isinstance(value, dict) and "id" in value:
        value = value["id"]

    if direction is OptionDirection.TO_LABELS:
        if multiple:
            return ", ".join(options.get(member, member) for member in _split_members(value))
        key = str(value).strip()
        return options.get(key, key)

    if multiple:
        ids: list[int | str] = []
        for member in _split_members(value):
            option_id = _label_to_id(member, options)
            if option_id is None:
                logger.warning("formatters.option_label_unknown", label=member)
                return None
            ids.append(option_id)
        return ids

    option_id = _label_to_id(str(value).strip(), options)
    if option_id is None:
        logger.warning("formatters.option_label_unknown", label=str(value))
    return option_id


# ── Numbers and prices ──────────────────────────────────────────────────────


def coerce_number(value: Any) -> int | float | None:
    """Coerce to int/float; None for blanks and non-numeric text."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return int(value) if value.is_integer() else value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return coerce_number(float(text))
        except ValueError:
            return None
    return None


def format_price_list(value: Any, currency: str) -> list[dict[str, Any]] | None:
    """Normalize a product price value into a list of price objects.

    A bare numeric scalar becomes a single entry in the default currency.
    Non-numeric text gives None so the caller omits prices instead of
    overwriting them with zero.
    """
    if value is None:
        return None
    if isinstance(value, list):
        return value
    if isinstance(value, dict) and "price" in value:
        return [value]
    price = coerce_number(value)
    if price is None:
        return None
    return [{"price": price, "currency": currency}]


# ── Generic wire conversion ─────────────────────────────────────────────────


def to_wire_value(value: Any) -> Any:
    """Convert a passthrough cell value into a JSON-serializable wire value."""
    value = _unwrap(value)
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return coerce_number(value)
    if isinstance(value, datetime):
        if is_time_sentinel(value):
            return format_time(value)
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return format_time(value)
    if isinstance(value, (list, tuple)):
        converted = [to_wire_value(item) for item in value]
        return None if any(item is None for item in converted) else converted
    return None
