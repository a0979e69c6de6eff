"""
Parsing of enumerated request values shared by the marketplace use cases.
"""

from enum import Enum
from typing import Optional, TypeVar

from fracart.domain.marketplace.errors import ValidationError

E = TypeVar("E", bound=Enum)

HISTORY_DIRECTIONS = ("all", "buy", "sell", "pending", "completed")


def parse_choice(enum_cls: type[E], value: Optional[str], field_name: str) -> Optional[E]:
    """Map a raw string onto an enum member, or None when no value was given.

    Raises:
        ValidationError: If the value is not one of the enum's values.
    """
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {field_name} '{value}'; expected one of: {allowed}") from None
