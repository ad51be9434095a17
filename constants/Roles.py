from enum import Enum


class Role(str, Enum):
    TOP = "TOP"
    JUNGLE = "JUNGLE"
    MIDDLE = "MIDDLE"
    BOTTOM = "BOTTOM"
    UTILITY = "UTILITY"


def normalize_role(value: str) -> str | None:
    """Map user input (any case) to a Role value, or None if unknown."""
    pos = (value or "").strip().upper()
    if pos in Role.__members__:
        return Role[pos].value
    return None
