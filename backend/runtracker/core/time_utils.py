from datetime import datetime, timezone


def format_time(seconds: float | None) -> str:
    """
    Format elapsed seconds for display.
    Below an hour: 'MM:SS' (e.g. 1505 -> '25:05'); otherwise 'H:MM:SS'.
    None -> '--:--'
    """
    if seconds is None:
        return "--:--"
    total = int(seconds)
    if total < 3600:
        return f"{total // 60:02d}:{total % 60:02d}"
    hours = total // 3600
    minutes = (total % 3600) // 60
    return f"{hours}:{minutes:02d}:{total % 60:02d}"


def format_pace(pace: float | None) -> str:
    """
    Format pace in minutes per unit as 'M:SS'.
    Example: 8.5 -> '8:30'. No pace yet -> '--:--'
    """
    if pace is None or pace <= 0:
        return "--:--"
    minutes = int(pace)
    seconds = int((pace - minutes) * 60)
    return f"{minutes}:{seconds:02d}"


def to_utc(value) -> datetime:
    """Coerce a timestamp into an aware UTC datetime.

    - datetime: naive values are assumed to be UTC.
    - int/float: epoch milliseconds, as reported by browser geolocation.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    raise TypeError(f"Unsupported timestamp type: {type(value).__name__}")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
