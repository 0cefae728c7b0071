from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def now_ms() -> int:
    return int(utcnow().timestamp() * 1000)


def start_of_day(moment: datetime | None = None) -> datetime:
    reference = (moment or utcnow()).astimezone()
    return reference.replace(hour=0, minute=0, second=0, microsecond=0)


def coerce_datetime(value: datetime | str) -> datetime:
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, str):
        candidate = value.strip().replace(" ", "T", 1)
        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(candidate)
        except ValueError:
            for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M:%S.%f"):
                try:
                    moment = datetime.strptime(value, fmt)
                    break
                except ValueError:
                    continue
            else:
                raise ValueError(f"Unsupported datetime value: {value!r}") from None
    else:
        raise ValueError(f"Unsupported datetime value: {value!r}")

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def format_relative_time(value: datetime | str, *, now: datetime | None = None) -> str:
    reference = coerce_datetime(now) if now is not None else utcnow()
    moment = coerce_datetime(value)

    total_seconds = int((reference - moment).total_seconds())

    if total_seconds < 60:
        return "just now"

    minutes = total_seconds // 60
    if minutes == 1:
        return "1 minute ago"
    if minutes < 60:
        return f"{minutes} minutes ago"

    hours = minutes // 60
    if hours == 1:
        return "1 hour ago"
    if hours < 24:
        return f"{hours} hours ago"

    days = hours // 24
    if days == 1:
        return "Yesterday"
    return f"{days} days ago"
