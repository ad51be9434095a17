"""Field-level checks run before anything reaches the store.

Every ``validate_*`` function only reads its input and records problems on a
:class:`Validator`; callers decide what to do with ``v.valid``.
"""
import re
from dataclasses import dataclass, field
from typing import List

from constants.Regions import is_known_platform
from constants.Roles import Role, normalize_role
from constants.Teams import normalize_result
import schemas

EMAIL_RX = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)

MAX_PAGE = 10_000_000
MAX_PAGE_SIZE = 100
TOKEN_LENGTH = 26


class Validator:
    def __init__(self):
        self.errors: dict[str, str] = {}

    @property
    def valid(self) -> bool:
        return not self.errors

    def add_error(self, key: str, message: str) -> None:
        # first message per field wins
        self.errors.setdefault(key, message)

    def check(self, ok: bool, key: str, message: str) -> None:
        if not ok:
            self.add_error(key, message)


@dataclass
class Filters:
    page: int = 1
    page_size: int = 20
    sort: str = "id"
    sort_safelist: List[str] = field(default_factory=lambda: ["id"])

    @property
    def sort_column(self) -> str:
        if self.sort not in self.sort_safelist:
            # validate_filters should have rejected this already
            raise ValueError(f"unsafe sort parameter: {self.sort}")
        return self.sort.lstrip("-")

    @property
    def descending(self) -> bool:
        return self.sort.startswith("-")

    @property
    def limit(self) -> int:
        return self.page_size

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


def with_descending(*columns: str) -> List[str]:
    return [*columns, *(f"-{c}" for c in columns)]


def validate_filters(v: Validator, f: Filters) -> None:
    v.check(f.page > 0, "page", "must be greater than zero")
    v.check(f.page <= MAX_PAGE, "page", "must be a maximum of 10 million")
    v.check(f.page_size > 0, "page_size", "must be greater than zero")
    v.check(f.page_size <= MAX_PAGE_SIZE, "page_size", "must be a maximum of 100")
    v.check(f.sort in f.sort_safelist, "sort", "invalid sort value")


def validate_summoner(v: Validator, summoner: schemas.SummonerCreate) -> None:
    v.check(summoner.username != "", "username", "must be provided")
    v.check(len(summoner.username.encode()) <= 500, "username", "must not be more than 500 bytes long")
    v.check(summoner.region != "", "region", "must be provided")
    if summoner.region:
        v.check(is_known_platform(summoner.region), "region", "must be a known platform id")


def validate_champion(v: Validator, champion: schemas.ChampionCreate) -> None:
    v.check(champion.name != "", "name", "must be provided")
    v.check(champion.main_role != "", "main_role", "must be provided")
    if champion.main_role:
        v.check(
            normalize_role(champion.main_role) is not None,
            "main_role",
            "must be one of " + ", ".join(r.value for r in Role),
        )

    v.check(champion.name != "Champion", "name", "must be different from the name of the champion")


def _validate_team(v: Validator, key: str, team: schemas.Team) -> None:
    for i, p in enumerate(team.summoners):
        prefix = f"{key}.summoners.{i}"
        v.check(p.summoner_id > 0, f"{prefix}.summoner_id", "must be a positive integer")
        v.check(p.champion_id > 0, f"{prefix}.champion_id", "must be a positive integer")
        v.check(normalize_role(p.role) is not None, f"{prefix}.role", "must be a known role")
        v.check(p.net_worth >= 0, f"{prefix}.net_worth", "must not be negative")
        v.check(
            min(p.kda.kills, p.kda.deaths, p.kda.assists) >= 0,
            f"{prefix}.kda",
            "must not contain negative values",
        )


def validate_match(v: Validator, match: schemas.MatchCreate) -> None:
    v.check(match.result != "", "result", "must be provided")
    if match.result:
        v.check(normalize_result(match.result) is not None, "result", "must be either blue or red")
    v.check(match.duration > 0, "duration", "must be provided")
    v.check(match.blue_team is not None, "blue_team", "must be provided")
    v.check(match.red_team is not None, "red_team", "must be provided")

    seen: set[int] = set()
    for key, team in (("blue_team", match.blue_team), ("red_team", match.red_team)):
        if team is None:
            continue
        _validate_team(v, key, team)
        for p in team.summoners:
            if p.summoner_id in seen:
                v.add_error("summoners", "a summoner can appear only once per match")
            seen.add(p.summoner_id)


def validate_user(v: Validator, user: schemas.UserCreate) -> None:
    v.check(user.name != "", "name", "must be provided")
    v.check(len(user.name.encode()) <= 500, "name", "must not be more than 500 bytes long")
    validate_email(v, user.email)
    validate_password(v, user.password)


def validate_email(v: Validator, email: str) -> None:
    v.check(email != "", "email", "must be provided")
    v.check(EMAIL_RX.match(email) is not None, "email", "must be a valid email address")


def validate_password(v: Validator, password: str) -> None:
    v.check(password != "", "password", "must be provided")
    v.check(len(password.encode()) >= 8, "password", "must be at least 8 bytes long")
    v.check(len(password.encode()) <= 72, "password", "must not be more than 72 bytes long")


def validate_token(v: Validator, token: str) -> None:
    v.check(token != "", "token", "must be provided")
    v.check(len(token) == TOKEN_LENGTH, "token", "must be 26 bytes long")
