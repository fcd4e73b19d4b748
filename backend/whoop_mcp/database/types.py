"""
Custom column types
"""
from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator

from whoop_mcp.utils.datetime_helper import ensure_utc


class UTCDateTime(TypeDecorator):
    """
    Stores naive UTC, returns timezone-aware UTC.

    SQLite has no native timezone support, so every instant is normalized to
    UTC before it reaches the database and UTC is re-attached on load.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, datetime):
            raise TypeError(f"UTCDateTime expects datetime, got {type(value).__name__}")
        return ensure_utc(value).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)
