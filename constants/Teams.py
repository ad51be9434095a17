from enum import Enum


class TeamSide(str, Enum):
    BLUE = "blue"
    RED = "red"


def normalize_result(value: str) -> str | None:
    """A match result names the winning side."""
    side = (value or "").strip().lower()
    for member in TeamSide:
        if member.value == side:
            return member.value
    return None
