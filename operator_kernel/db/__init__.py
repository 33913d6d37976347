"""Database layer - engine, base classes, types, record store and immutability."""

from operator_kernel.db.base import UUID, Base, TrackedBase, UTCDateTime, UUIDString
from operator_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from operator_kernel.db.types import MinorUnits, PayloadHash, average_minor_units

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
    "UUID",
    "MinorUnits",
    "PayloadHash",
    "average_minor_units",
]
