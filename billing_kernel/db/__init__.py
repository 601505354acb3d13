"""Database layer - engine, base classes and column types."""

from billing_kernel.db.base import Base, TimestampedBase, UTCDateTime, UUIDString
from billing_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TimestampedBase",
    "UTCDateTime",
    "UUIDString",
]
