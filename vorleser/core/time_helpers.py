from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as naive UTC (the schema stores TIMESTAMP without time zone)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize client supplied timestamps; naive values are taken as UTC already"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
