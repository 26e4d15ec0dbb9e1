"""
Module ORM Registry (``sourcing_modules._orm_registry``).

Responsibility
--------------
Ensure all SQLAlchemy ORM models are imported so that ``Base.metadata``
contains their table definitions before tables are created.

Architecture position
---------------------
**Modules layer** -- utility.  ``sourcing_kernel.db.engine.create_tables``
calls ``import_all_orm_models()`` lazily, so every entry point (scripts,
``tests/conftest.py``) gets the full schema from one function.
"""


def import_all_orm_models() -> None:
    """Import the kernel numbering table and every ``sourcing_modules.*.orm`` module.

    Idempotent -- repeated calls are harmless.  Requisitions are imported
    before RFQs, which reference them.
    """
    # fmt: off
    import sourcing_kernel.services.sequence_service  # noqa: F401  # numbering locks
    import sourcing_modules.requisition.orm  # noqa: F401
    import sourcing_modules.rfq.orm  # noqa: F401
    import sourcing_modules.quotation.orm  # noqa: F401
    # fmt: on
