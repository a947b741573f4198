"""
Input validation helpers shared by the ledger managers.
"""

from enum import Enum
from typing import Optional, Type, TypeVar, Union

from .errors import ValidationError

E = TypeVar('E', bound=Enum)


def coerce_enum(enum_type: Type[E], value: Union[E, str], field: str) -> E:
    """Accept an enum member or its value; anything else is a ValidationError"""
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_type)
        raise ValidationError(field, f"'{value}' is not one of: {allowed}")


def require_text(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(field, "is required")
    return str(value).strip()


def optional_text(value: Optional[str]) -> Optional[str]:
    """Blank strings are stored as None"""
    if value is None:
        return None
    value = str(value).strip()
    return value or None
