"""Database layer - engine, base classes, types, and unit of work."""

from sourcing_kernel.db.base import UUID, Base, TrackedBase, UTCDateTime, UUIDString
from sourcing_kernel.db.engine import build_engine, create_tables, make_session_factory
from sourcing_kernel.db.types import DocumentNumber, LongText, Money, Quantity, ShortCode
from sourcing_kernel.db.unit_of_work import UnitOfWork

__all__ = [
    "build_engine",
    "make_session_factory",
    "create_tables",
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
    "UUID",
    "Money",
    "Quantity",
    "ShortCode",
    "DocumentNumber",
    "LongText",
    "UnitOfWork",
]
