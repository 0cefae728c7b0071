from .time import coerce_datetime, format_relative_time, now_ms, start_of_day, utcnow

__all__ = ["coerce_datetime", "format_relative_time", "now_ms", "start_of_day", "utcnow"]
