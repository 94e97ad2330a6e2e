"""ISO 8601 timestamp helpers. Naive inputs are read as UTC."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

# Extended format only: date, optional time with seconds and any number of
# fractional digits, optional Z or +HH:MM offset.
_ISO_RE = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})"
    r"(?:[Tt ](?P<time>\d{2}:\d{2}(?::\d{2}(?:\.(?P<frac>\d+))?)?)"
    r"(?P<tz>[Zz]|[+-]\d{2}:\d{2})?)?$",
    re.ASCII,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize(match: re.Match) -> str:
    """Rewrite to the subset datetime.fromisoformat reads on every version."""
    text = match.group("date")
    time = match.group("time")
    if time is None:
        return text
    frac = match.group("frac")
    if frac is not None:
        time = time[: -(len(frac) + 1)] + "." + frac[:6].ljust(6, "0")
    tz = match.group("tz") or ""
    if tz in ("Z", "z"):
        tz = "+00:00"
    return f"{text}T{time}{tz}"


def parse_iso8601(value: str) -> Optional[datetime]:
    """Parse an ISO 8601 date or date-time, returning None when invalid."""
    if not isinstance(value, str):
        return None
    match = _ISO_RE.match(value.strip())
    if match is None:
        return None
    try:
        parsed = datetime.fromisoformat(_normalize(match))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_iso8601(moment: datetime) -> str:
    """Format as UTC with millisecond precision, e.g. 2026-01-01T00:00:00.000Z."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"
