"""ISO-8601 timestamp helpers.

Timestamps are stored as text in one normalized form (UTC, millisecond
precision, ``Z`` suffix) so that string ordering matches time ordering.
"""
from datetime import datetime, timedelta, UTC
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_iso(moment: datetime) -> str:
    """Render an instant as e.g. ``2026-10-19T09:00:00.000Z``."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO-8601 string into an aware UTC datetime.

    Returns None for anything unparseable; naive values are taken as UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except (ValueError, TypeError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    try:
        return parsed.astimezone(UTC)
    except OverflowError:
        # Parses, but shifting to UTC leaves the datetime range
        return None


def format_time_diff(value, now: Optional[datetime] = None) -> str:
    """Human relative time such as "just now", "5m ago", "3h ago", "2d ago"."""
    moment = parse_timestamp(value)
    if moment is None:
        return "recently"

    delta = (now or utc_now()) - moment
    minutes = int(delta / timedelta(minutes=1))
    hours = minutes // 60
    days = hours // 24

    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    return f"{days}d ago"
