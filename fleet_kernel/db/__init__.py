"""Database layer - engine, base classes, types, and immutability listeners."""

from fleet_kernel.db.base import UUID, Base, TrackedBase, UTCDateTime, UUIDString
from fleet_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from fleet_kernel.db.types import Money, format_money, round_money

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UTCDateTime",
    "UUID",
    "Money",
    "format_money",
    "round_money",
]
