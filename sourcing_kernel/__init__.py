"""
Sourcing Kernel

Shared infrastructure for the procurement sourcing workflow:
- Typed exceptions with machine-readable codes
- Structured JSON logging
- SQLAlchemy declarative base, engine and unit of work
- Clock, workflow and access-policy value objects
- Collision-free document numbering
"""

__version__ = "0.1.0"
