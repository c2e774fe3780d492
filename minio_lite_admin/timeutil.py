import re
from datetime import datetime, timezone
from typing import Optional, Union

ISO_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Go emits up to nanosecond precision; datetime only keeps microseconds.
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_rfc3339(text: str) -> datetime:
    """Parse RFC 3339 text (date, time and offset required) into aware UTC.

    Raises ValueError for anything else.
    """
    raw = text.strip()
    if "T" not in raw.upper():
        raise ValueError(f"not an RFC 3339 timestamp: {text!r}")
    raw = _FRACTION_RE.sub(r"\1", raw)
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    dt = datetime.fromisoformat(raw)
    if dt.tzinfo is None:
        raise ValueError(f"timestamp has no UTC offset: {text!r}")
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: Union[str, int, datetime]) -> datetime:
    """Interpret RFC 3339 text, Unix seconds (int or digit string) or a datetime."""
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    if isinstance(value, bool):
        raise ValueError("boolean is not a timestamp")
    if isinstance(value, int):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return datetime.fromtimestamp(int(text), tz=timezone.utc)
        return parse_rfc3339(text)
    raise ValueError(f"unsupported timestamp type: {type(value).__name__}")


def format_timestamp(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime(ISO_FORMAT)


def normalize_expiration(value) -> Optional[str]:
    """Normalize an upstream expiration to ISO-8601 text.

    Missing values, unparsable values and the epoch-zero sentinel used for
    non-expiring keys all mean "no expiration".
    """
    if value is None or value == "":
        return None
    try:
        dt = parse_timestamp(value)
    except (ValueError, OverflowError, OSError):
        return None
    if dt.timestamp() <= 0:
        return None
    return format_timestamp(dt)
