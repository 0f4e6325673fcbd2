"""Datetime helpers for Bankly path and query parameters.

Provides:
    parse_iso8601(s): ISO-8601 parser that always returns an *aware* UTC
        datetime. Accepts trailing "Z", explicit offsets and fractional seconds.
    to_bankly_datetime(value): renders a datetime/date/ISO string in the
        ``YYYY-MM-DDTHH:MM:SS`` form the billet search endpoint expects.
"""
from __future__ import annotations

import datetime as _dt
from typing import Union

from dateutil.parser import isoparse as _isoparse

__all__ = ["parse_iso8601", "to_bankly_datetime"]


def _ensure_utc(dt: _dt.datetime) -> _dt.datetime:
    """Return *dt* converted to UTC and TZ-aware."""
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        # naive → assume already UTC
        return dt.replace(tzinfo=_dt.timezone.utc)
    return dt.astimezone(_dt.timezone.utc)


def parse_iso8601(value: Union[str, _dt.datetime]) -> _dt.datetime:
    """Parse *value* into a timezone-aware UTC datetime."""
    if isinstance(value, _dt.datetime):
        return _ensure_utc(value)

    if not isinstance(value, str):
        raise TypeError("parse_iso8601 expects str or datetime, got " + type(value).__name__)

    try:
        dt = _isoparse(value)
    except Exception as exc:
        raise ValueError(f"invalid ISO-8601 datetime: {value}") from exc

    return _ensure_utc(dt)


def to_bankly_datetime(value: Union[str, _dt.date, _dt.datetime]) -> str:
    if isinstance(value, _dt.date) and not isinstance(value, _dt.datetime):
        value = _dt.datetime(value.year, value.month, value.day)
    return parse_iso8601(value).strftime("%Y-%m-%dT%H:%M:%S")
