from __future__ import annotations

import re
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping
from uuid import UUID

from .errors import ValidationError
from .pricing import MAX_AMOUNT, MAX_INT

_MOBILE_PREFIXES = (
    "032", "033", "034", "035", "036", "037", "038", "039",
    "070", "076", "077", "078", "079",
    "081", "082", "083", "084", "085",
    "056", "058", "059",
    "086", "096", "097", "098",
    "089", "090", "093",
    "088", "091", "094",
    "092", "099",
)
PHONE_RE = re.compile(rf"^({'|'.join(_MOBILE_PREFIXES)})[0-9]{{7}}$")


def parse_id(value: Any, field: str = "id") -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a positive integer.")
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a positive integer.") from None
    if parsed <= 0:
        raise ValidationError(f"{field} must be a positive integer.")
    return parsed


def parse_optional_id(value: Any, field: str) -> int | None:
    if value is None:
        return None
    return parse_id(value, field)


def parse_order_id(value: Any) -> UUID:
    try:
        order_id = UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationError("Order ID must be a valid UUID v4 string.") from None
    if order_id.version != 4:
        raise ValidationError("Order ID must be a valid UUID v4 string.")
    return order_id


def parse_quantity(value: Any, field: str = "quantity") -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer.")
    if value > MAX_INT:
        raise ValidationError(f"{field} cannot exceed {MAX_INT}.")
    return value


def parse_non_negative_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{field} must be a non-negative integer.")
    if value > MAX_INT:
        raise ValidationError(f"{field} cannot exceed {MAX_INT}.")
    return value


def parse_amount(value: Any, field: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number > 0.")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number > 0.") from None
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{field} must be a number > 0.")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT}.")
    return amount


def parse_text(value: Any, field: str, *, min_len: int = 1, max_len: int) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required.")
    text = value.strip()
    if not min_len <= len(text) <= max_len:
        raise ValidationError(f"{field} must be between {min_len} and {max_len} characters.")
    return text


def parse_optional_text(value: Any, field: str, *, max_len: int) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_text(value, field, max_len=max_len)


def parse_phone(value: Any, field: str = "phone_number") -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string.")
    phone = value.strip()
    if not phone:
        return None
    if not PHONE_RE.match(phone):
        raise ValidationError(
            f"{field} must be a 10-digit mobile number starting with a valid carrier prefix (e.g. 090, 032, 079)."
        )
    return phone


def parse_choice(value: Any, field: str, choices: Iterable[str]) -> str:
    choices = tuple(choices)
    if value not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}.")
    return value


def parse_date(value: Any, field: str) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise ValidationError(f"{field} must be a valid date (YYYY-MM-DD).") from None


def parse_datetime(value: Any, field: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"{field} must be a valid ISO 8601 date.") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def require_body(payload: Any) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object.")
    return payload


def parse_page(args: Mapping[str, str], *, default_limit: int, max_limit: int) -> tuple[int, int]:
    try:
        page = int(args.get("page", 1))
        limit = int(args.get("limit", default_limit))
    except (TypeError, ValueError):
        raise ValidationError("page and limit must be integers.") from None
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be >= 1.")
    return page, min(limit, max_limit)


def day_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    return (
        datetime.combine(start, time.min, tzinfo=timezone.utc),
        datetime.combine(end, time.max, tzinfo=timezone.utc),
    )
