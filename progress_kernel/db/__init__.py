"""Database layer - engine, base classes, column types."""

from progress_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from progress_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    session_scope,
)
from progress_kernel.db.types import ExactPercent, Hours, MilestoneValue, Percent, Weight

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Hours",
    "MilestoneValue",
    "Percent",
    "ExactPercent",
    "Weight",
]
