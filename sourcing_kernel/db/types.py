"""
Module: sourcing_kernel.db.types
Responsibility: Annotated type aliases and rounding helpers shared by every
    ORM model and service.  Centralizes precision so that prices, quantities
    and totals use identical column definitions.
Architecture position: Kernel > DB.  May be imported by orm, domain,
    services and engines.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for prices or quantities.  All amounts use Decimal.
    - round_money() is the one rounding function for amounts shown to users.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Numeric, String, Text

# Price or amount: 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Quantity: same precision as Money, kept as a distinct alias for readability
Quantity = Annotated[Decimal, Numeric(38, 9)]

# Short identifier strings (status values, item codes, units)
ShortCode = Annotated[str, String(50)]

# Document numbers (PR-202501-0001, RFQ-2025-0001)
DocumentNumber = Annotated[str, String(64)]

# Descriptions, terms, reasons
LongText = Annotated[str, String(4000)]

# Email bodies and free text with no practical limit
Body = Annotated[str, Text]

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def decimal_from_text(value: str) -> Decimal | None:
    """
    Parse a human-written number ("1,250.50") into a Decimal.

    Returns None when the text is not a number.
    """
    cleaned = value.replace(",", "").strip()
    if not cleaned:
        return None
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None
