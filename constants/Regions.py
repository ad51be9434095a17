from enum import Enum


class RegionEq(str, Enum):
    """Platform id -> routing region."""
    br1 = "americas"
    la1 = "americas"
    la2 = "americas"
    na1 = "americas"
    eun1 = "europe"
    euw1 = "europe"
    tr1 = "europe"
    ru = "europe"
    jp1 = "asia"
    kr = "asia"
    sg2 = "asia"
    tw2 = "asia"
    vn2 = "asia"
    oc1 = "sea"


# RegionEq members share values, so iterate names (aliases included) instead of members
PLATFORMS = tuple(RegionEq.__members__)


def is_known_platform(region: str) -> bool:
    return region.strip().lower() in RegionEq.__members__

