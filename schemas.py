from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime, timezone


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; every stored timestamp is UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class KDA(BaseModel):
    kills: int = 0
    deaths: int = 0
    assists: int = 0


# -----------------------------
# Match snapshots
# -----------------------------
class SummonerMatchPerformance(BaseModel):
    """One summoner's line in a team snapshot."""
    summoner_id: int = 0
    champion_id: int = 0
    role: str = ""
    net_worth: int = 0
    kda: KDA = Field(default_factory=KDA)
    bought_items: List[str] = []


class Team(BaseModel):
    team_kda: Optional[KDA] = None  # summed from summoners when omitted
    turrets_destroyed: int = 0
    inhibitors_destroyed: int = 0
    rift_heralds_killed: int = 0
    dragons_killed: int = 0
    baron_nashors_killed: int = 0
    summoners: List[SummonerMatchPerformance] = []
    banned_champions: List[int] = []


class MatchCreate(BaseModel):
    duration: int = 0
    result: str = ""
    played_date: Optional[datetime] = None
    blue_team: Optional[Team] = None
    red_team: Optional[Team] = None

    @field_validator("played_date")
    @classmethod
    def _played_date_utc(cls, v):
        return _as_utc(v)


class Match(BaseModel):
    id: int
    played_date: datetime
    duration: int
    result: str
    blue_team: Team
    red_team: Team

    @field_validator("played_date")
    @classmethod
    def _played_date_utc(cls, v):
        return _as_utc(v)


# -----------------------------
# Champions
# -----------------------------
class ChampionCreate(BaseModel):
    name: str = ""
    main_role: str = ""


class ChampionData(BaseModel):
    id: int
    name: str
    main_role: str

    class Config:
        from_attributes = True


class Champion(BaseModel):
    id: int
    name: str
    main_role: str
    popularity: float
    count_of_played_matches: int
    wins: int
    win_rate: float
    ban_rate: float

    class Config:
        from_attributes = True


# -----------------------------
# Summoners
# -----------------------------
class SummonerCreate(BaseModel):
    username: str = ""
    region: str = ""


class SummonerData(BaseModel):
    id: int
    username: str
    region: str

    class Config:
        from_attributes = True


class Summoner(BaseModel):
    id: int
    username: str
    region: str
    rating: int
    count_of_played_games: int
    wins: int
    win_rate: float
    average_kda: KDA

    class Config:
        from_attributes = True


class ChampionStats(BaseModel):
    """A summoner's record on one champion."""
    champion: ChampionData
    count_of_played_matches: int
    wins: int
    win_rate: float


class RoleStats(BaseModel):
    role: str
    count_of_played_matches: int
    wins: int
    win_rate: float

    class Config:
        from_attributes = True


class SummonerDetail(Summoner):
    champion_stats: List[ChampionStats] = []
    role_stats: List[RoleStats] = []


class BestSummoner(BaseModel):
    summoner: SummonerData
    win_rate: float
    count_of_played_matches: int


class ChampionDetail(Champion):
    best_summoners: List[BestSummoner] = []


class MatchSummonerPerformance(BaseModel):
    """A performance row joined with its summoner, champion and match."""
    match_id: int
    summoner_id: int
    username: str
    champion: ChampionData
    team: str
    role: str
    net_worth: int
    kda: KDA
    bought_items: List[str]
    match_duration: int
    match_date: datetime
    match_result: str

    @field_validator("match_date")
    @classmethod
    def _match_date_utc(cls, v):
        return _as_utc(v)


# -----------------------------
# Accounts
# -----------------------------
class UserCreate(BaseModel):
    name: str = ""
    email: str = ""
    password: str = ""


class User(BaseModel):
    id: int
    created_at: datetime
    name: str
    email: str
    activated: bool

    class Config:
        from_attributes = True


class ActivationRequest(BaseModel):
    token: str = ""


class Credentials(BaseModel):
    email: str = ""
    password: str = ""


class AuthenticationToken(BaseModel):
    token: str
    expiry: datetime
