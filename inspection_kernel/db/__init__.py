"""Database layer - engine, base classes and immutability listeners."""

from inspection_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from inspection_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)

__all__ = [
    "Base",
    "TrackedBase",
    "UUID",
    "UUIDString",
    "create_tables",
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
]
