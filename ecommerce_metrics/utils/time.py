from __future__ import annotations

from datetime import datetime, timezone
from typing import Union

MINUTE_FORMAT = "%Y-%m-%dT%H:%M"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Aware UTC datetime; naive values are taken to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_naive_utc(value: datetime) -> datetime:
    """Storage form: the DateTime columns hold naive UTC."""
    return to_utc(value).replace(tzinfo=None)


def parse_timestamp(value: Union[str, datetime, int, float]) -> datetime:
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # epoch milliseconds, as emitted by JavaScript producers
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return to_utc(datetime.fromisoformat(text))
    raise ValueError(f"Unsupported timestamp value: {value!r}")


def minute_key(value: Union[str, datetime, int, float]) -> str:
    """Truncate a timestamp to minute granularity: YYYY-MM-DDTHH:MM."""
    return parse_timestamp(value).strftime(MINUTE_FORMAT)


def day_key(value: datetime) -> str:
    return to_utc(value).strftime("%Y-%m-%d")
