"""
Pure domain layer.

Value objects and policy with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O (SystemClock excepted)
"""

from sourcing_kernel.domain.access_policy import AccessPolicy, Actor, RolePolicy
from sourcing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from sourcing_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "AccessPolicy",
    "Actor",
    "RolePolicy",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Guard",
    "Transition",
    "Workflow",
]
