from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional, Tuple


IST = timezone(timedelta(hours=5, minutes=30), name="IST")

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

_AMOUNT_JUNK = re.compile(r"[^0-9.\-]")
_DISPLAY_INPUT_FORMATS = (
    "%m/%d/%Y, %I:%M:%S %p",
    "%m/%d/%Y %I:%M:%S %p",
    "%d-%m-%Y, %I:%M:%S %p",
    "%Y-%m-%d %H:%M:%S",
)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def epoch_seconds(moment: Optional[datetime] = None) -> int:
    return int((moment or now_utc()).timestamp())


def parse_day(value: str) -> date:
    return datetime.strptime(value.strip(), "%Y-%m-%d").date()


def ist_day_start(day: date) -> datetime:
    """00:00:00.000 IST on ``day`` as a UTC instant."""
    return datetime(day.year, day.month, day.day, tzinfo=IST).astimezone(timezone.utc)


def ist_day_end(day: date) -> datetime:
    """23:59:59.999 IST on ``day`` as a UTC instant."""
    return ist_day_start(day) + timedelta(days=1) - timedelta(milliseconds=1)


def ist_day_bounds(day: date) -> Tuple[datetime, datetime]:
    return ist_day_start(day), ist_day_end(day)


def ist_today(moment: Optional[datetime] = None) -> date:
    return (moment or now_utc()).astimezone(IST).date()


def ist_month_bounds(year: int, month_index: int) -> Tuple[datetime, datetime]:
    """Bounds of a calendar month in IST; ``month_index`` is 0-based."""
    start = datetime(year, month_index + 1, 1, tzinfo=IST)
    if month_index == 11:
        following = datetime(year + 1, 1, 1, tzinfo=IST)
    else:
        following = datetime(year, month_index + 2, 1, tzinfo=IST)
    return start.astimezone(timezone.utc), (following - timedelta(milliseconds=1)).astimezone(timezone.utc)


def to_datetime(value: Any) -> Optional[datetime]:
    """
    Coerce stored timestamp shapes into an aware ``datetime``.

    Accepts native datetimes (including Firestore's ``DatetimeWithNanoseconds``),
    ``{"seconds": ..}`` / ``{"_seconds": ..}`` maps, epoch numbers (values above
    1e12 are read as milliseconds) and ISO-8601 strings.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        if isinstance(seconds, (int, float)):
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) > 1e12 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.isdigit():
            return to_datetime(int(text))
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def to_millis(value: Any) -> Optional[int]:
    moment = to_datetime(value)
    if moment is None:
        return None
    return int(moment.timestamp() * 1000)


def isoformat(moment: datetime) -> str:
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def serialize_date(value: Any) -> Optional[str]:
    """Timestamps become ISO strings, strings pass through, anything else is null."""
    if isinstance(value, datetime):
        return isoformat(value)
    if isinstance(value, str):
        return value
    return None


def serialize(value: Any) -> Any:
    if isinstance(value, datetime):
        return isoformat(value)
    if isinstance(value, dict):
        return {key: serialize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize(item) for item in value]
    return value


def display_date(moment: datetime) -> str:
    local = moment.astimezone(IST)
    hour = local.hour % 12 or 12
    return f"{local:%d-%m-%Y}, {hour}:{local:%M:%S} {local:%p}"


def normalize_display_date(raw: Any, created_at: Any = None) -> Optional[str]:
    if not raw:
        moment = to_datetime(created_at)
        return display_date(moment) if moment else None
    if not isinstance(raw, str):
        return raw
    for fmt in _DISPLAY_INPUT_FORMATS:
        try:
            parsed = datetime.strptime(raw.strip(), fmt)
        except ValueError:
            continue
        local = parsed.replace(tzinfo=IST)
        return display_date(local)
    moment = to_datetime(raw)
    return display_date(moment) if moment else raw


def parse_amount(value: Any) -> float:
    """Amounts arrive as numbers or strings like ``"₹1,20,000"``."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = _AMOUNT_JUNK.sub("", str(value))
    if cleaned in {"", "-", ".", "-."}:
        return 0.0
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def month_doc_id(moment: Optional[datetime] = None) -> str:
    local = (moment or now_utc()).astimezone(IST)
    return f"{MONTH_NAMES[local.month - 1]}_{local.year}"


def month_label(year: int, month_index: int) -> str:
    return f"{MONTH_NAMES[month_index]}_{year}"


def parse_month_label(label: str) -> Optional[Tuple[int, int]]:
    """``"Mar_2025"`` -> ``(2025, 2)``."""
    try:
        name, year = label.split("_", 1)
        return int(year), MONTH_NAMES.index(name[:3].title())
    except ValueError:
        return None
