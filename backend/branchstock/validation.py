from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable

from .errors import ValidationError
from .time_utils import parse_iso_date, parse_iso_datetime

MAIN_LOCATION = "main"

# Maximum money amount: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999


@dataclass(frozen=True)
class Location:
    """
    A stock location inside one shop.

    The shop's default pool is NOT "no branch": it is an explicit location
    with is_main=True and branch_id=None. A Location with is_main=False
    always carries a branch_id.
    """
    branch_id: int | None
    is_main: bool

    @classmethod
    def main(cls) -> "Location":
        return cls(branch_id=None, is_main=True)

    @classmethod
    def branch(cls, branch_id: int) -> "Location":
        return cls(branch_id=branch_id, is_main=False)

    def key(self) -> str:
        return MAIN_LOCATION if self.is_main else str(self.branch_id)


def coerce_int(value: Any, field: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    """
    Strict integer coercion for JSON input.

    Rejects bools, floats, decimals-in-strings and scientific notation.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    if maximum is not None and result > maximum:
        raise ValidationError(f"{field} cannot exceed {maximum}")
    return result


def optional_int(value: Any, field: str, **kwargs) -> int | None:
    if value is None or value == "":
        return None
    return coerce_int(value, field, **kwargs)


def require_text(value: Any, field: str, *, max_length: int | None = None) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    text = str(value).strip()
    if max_length and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def optional_text(value: Any, field: str, *, max_length: int | None = None) -> str | None:
    if value is None or not str(value).strip():
        return None
    return require_text(value, field, max_length=max_length)


def require_choice(value: Any, field: str, choices: Iterable[str]) -> str:
    allowed = tuple(choices)
    if value not in allowed:
        raise ValidationError(f"Invalid {field}: {value!r}. Expected one of: {', '.join(allowed)}")
    return value


def require_list(value: Any, field: str) -> list:
    if not isinstance(value, list) or not value:
        raise ValidationError(f"{field} must be a non-empty list")
    return value


def parse_location(value: Any, field: str) -> Location:
    """Accept "main" for the shop's default pool or an integer branch id."""
    if isinstance(value, str) and value.strip().lower() == MAIN_LOCATION:
        return Location.main()
    if value is None or value == "":
        raise ValidationError(f"{field} is required (branch id or '{MAIN_LOCATION}')")
    return Location.branch(coerce_int(value, field, minimum=1))


def parse_date_field(value: Any, field: str, *, required: bool = True) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None
    try:
        parsed = parse_iso_date(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date")
    if parsed is None:
        raise ValidationError(f"{field} must be an ISO-8601 date")
    return parsed


def parse_datetime_field(value: Any, field: str) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return parse_iso_datetime(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def parse_branch_id(value: Any, field: str = "branch_id") -> int | None:
    """Optional location argument: missing or "main" means the default pool."""
    if value is None or value == "":
        return None
    return parse_location(value, field).branch_id


def parse_limit(value: Any, default: int = 100, maximum: int = 500) -> int:
    if value is None or value == "":
        return default
    return coerce_int(value, "limit", minimum=1, maximum=maximum)
