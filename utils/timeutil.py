from datetime import datetime, timedelta, timezone

# Operators read audit data in India Standard Time regardless of server locale.
IST = timezone(timedelta(hours=5, minutes=30), "IST")


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat_utc(value):
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc).isoformat().replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    """Parses an ISO-8601 string into a naive UTC datetime."""
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def format_ist(value) -> str:
    if value is None:
        return "Invalid Date"
    local = value.replace(tzinfo=timezone.utc).astimezone(IST)
    return local.strftime("%Y-%m-%d %H:%M:%S") + " IST"
