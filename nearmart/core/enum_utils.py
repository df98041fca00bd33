"""
Enum Utilities for VARCHAR-based Status Fields

• Database: VARCHAR(30) - NOT a database ENUM type
• SQLAlchemy: String(30) with Mapped[str]
• Pydantic: Python (str, Enum) for API validation
• API Response: the stored string is returned directly
• Case: all enum values are stored in lowercase

DATA FLOW:
    INPUT:  Pydantic Enum -> .value -> String -> Database
    OUTPUT: VARCHAR "pending" -> "pending" (no conversion needed)
"""

from enum import Enum
from typing import Any, Optional, TypeVar, Type


T = TypeVar('T', bound=Enum)


def get_enum_value(value: Any) -> Optional[str]:
    """
    Safely get string value from an enum or string.

    Examples:
        >>> get_enum_value(OrderStatus.PENDING)
        'pending'
        >>> get_enum_value("pending")
        'pending'
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    return str(value)


def to_enum(value: Any, enum_class: Type[T]) -> Optional[T]:
    """Convert a stored string back to an enum member, or None if unknown."""
    if value is None:
        return None
    if isinstance(value, enum_class):
        return value
    try:
        return enum_class(str(value).lower())
    except (ValueError, KeyError):
        return None


def enum_values(enum_class: Type[Enum]) -> list:
    return [e.value for e in enum_class]


def enum_comment(enum_class: Type[Enum]) -> str:
    """
    Generate a comment string for a VARCHAR column.

    Examples:
        >>> enum_comment(PaymentStatus)
        'pending, completed, failed, refunded'
    """
    return ", ".join(enum_values(enum_class))


# =============================================================================
# COMPARISON HELPERS
# =============================================================================

def is_status(db_value: Optional[str], enum_value: Enum) -> bool:
    """Compare a database string with an enum value."""
    if db_value is None:
        return False
    return db_value == enum_value.value


def status_in(db_value: Optional[str], *enum_values: Enum) -> bool:
    """Check if database value matches any of the given enums."""
    if db_value is None:
        return False
    return db_value in [e.value for e in enum_values]
