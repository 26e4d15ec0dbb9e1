"""
Closed status vocabularies.

Every lifecycle status, priority and decision is a ``str``-valued Enum.
The ORM stores ``.value``; text arriving from outside (API payloads, CSV,
operator scripts) goes through ``parse`` exactly once.
"""

from enum import Enum
from typing import Self

from sourcing_kernel.exceptions import ValidationError


class ParseableEnum(str, Enum):
    """str Enum with a single case-insensitive parsing boundary."""

    @classmethod
    def parse(cls, raw: "str | ParseableEnum", field: str | None = None) -> Self:
        if isinstance(raw, cls):
            return raw
        text = str(raw).strip().lower()
        for member in cls:
            if member.value == text:
                return member
        allowed = ", ".join(m.value for m in cls)
        raise ValidationError(
            field or cls.__name__,
            f"{raw!r} is not one of: {allowed}",
        )

    def __str__(self) -> str:
        return self.value
