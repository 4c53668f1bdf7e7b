from __future__ import annotations

import base64
import logging
import math
import re
from datetime import date, datetime, timezone
from typing import Any, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .constants import _TEMPLATE_DIR

logger = logging.getLogger(__name__)

_JINJA_ENV = Environment(
    loader=FileSystemLoader(str(_TEMPLATE_DIR)),
    autoescape=select_autoescape(["html", "xml", "j2"]),
)

_DATE_PATTERN = re.compile(
    r"(\d{4})[-/](\d{1,2})[-/](\d{1,2})"
    r"(?:[T ](\d{1,2}):(\d{2})(?::(\d{2})(?:\.(\d{1,6}))?)?)?"
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    return utc_now().isoformat()


def parse_date(value: Any) -> Optional[datetime]:
    """Return an aware datetime for date objects and ``YYYY[-/]M[-/]D`` strings."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if not isinstance(value, str):
        return None
    text = value.strip()
    match = _DATE_PATTERN.search(text)
    if not match:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        year, month, day, hour, minute, second, fraction = match.groups()
        try:
            parsed = datetime(
                int(year),
                int(month),
                int(day),
                int(hour or 0),
                int(minute or 0),
                int(second or 0),
                int((fraction or "0").ljust(6, "0")),
            )
        except ValueError:
            return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def to_number(value: Any) -> Optional[float]:
    """Finite float for numbers and numeric strings; booleans are not numbers."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        if not value.strip():
            return None
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def coerce_number(value: Any) -> float:
    number = to_number(value)
    if number is None and isinstance(value, bool):
        return float(value)
    return number if number is not None else 0.0


def label_for(value: Any) -> str:
    parsed = parse_date(value)
    if parsed is not None:
        return parsed.date().isoformat()
    return str(value)


def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64decode(data: str) -> bytes:
    return base64.b64decode(data.encode("ascii"))
