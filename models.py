from sqlalchemy import (
    ForeignKey,
    String,
    Integer,
    Boolean,
    Float,
    Index,
    DateTime,
    BigInteger,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from db import Base
from datetime import datetime, timezone
from sqlalchemy.dialects.postgresql import JSONB

# bigserial on PostgreSQL; SQLite only autoincrements INTEGER PRIMARY KEY
BigIntPK = BigInteger().with_variant(Integer, "sqlite")
JSONBlob = JSON().with_variant(JSONB, "postgresql")


def zero_kda() -> dict:
    return {"kills": 0, "deaths": 0, "assists": 0}


class Champion(Base):
    __tablename__ = "champions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, index=True)
    main_role: Mapped[str] = mapped_column(String(16), index=True)

    popularity: Mapped[float] = mapped_column(Float, default=0)
    count_of_played_matches: Mapped[int] = mapped_column(Integer, default=0)
    wins: Mapped[int] = mapped_column(Integer, default=0)
    win_rate: Mapped[float] = mapped_column(Float, default=0)
    ban_rate: Mapped[float] = mapped_column(Float, default=0)


class Summoner(Base):
    __tablename__ = "summoners"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String, index=True)
    region: Mapped[str] = mapped_column(String(8), index=True)
    rating: Mapped[int] = mapped_column(Integer, default=0)

    count_of_played_games: Mapped[int] = mapped_column(Integer, default=0)
    wins: Mapped[int] = mapped_column(Integer, default=0)
    win_rate: Mapped[float] = mapped_column(Float, default=0)
    average_kda: Mapped[dict] = mapped_column(JSONBlob, default=zero_kda)


class Match(Base):
    __tablename__ = "matches"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    played_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
    duration: Mapped[int] = mapped_column(Integer)
    result: Mapped[str] = mapped_column(String(8), index=True)

    # Team snapshots, (de)serialized by services at the store boundary
    blue_team: Mapped[dict] = mapped_column(JSONBlob)
    red_team: Mapped[dict] = mapped_column(JSONBlob)

    # Processed-match marker: aggregates are applied at most once per match
    statistics_applied: Mapped[bool] = mapped_column(Boolean, default=False)

    performances = relationship(
        "MatchPerformance",
        back_populates="match",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class MatchPerformance(Base):
    __tablename__ = "match_performances"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    match_id: Mapped[int] = mapped_column(
        ForeignKey("matches.id", ondelete="CASCADE"), index=True
    )
    summoner_id: Mapped[int] = mapped_column(
        ForeignKey("summoners.id", ondelete="CASCADE"), index=True
    )
    champion_id: Mapped[int] = mapped_column(
        ForeignKey("champions.id", ondelete="CASCADE"), index=True
    )

    team: Mapped[str] = mapped_column(String(8))  # blue / red
    role: Mapped[str] = mapped_column(String(16))
    net_worth: Mapped[int] = mapped_column(Integer, default=0)
    kills: Mapped[int] = mapped_column(Integer, default=0)
    deaths: Mapped[int] = mapped_column(Integer, default=0)
    assists: Mapped[int] = mapped_column(Integer, default=0)
    bought_items: Mapped[list] = mapped_column(JSONBlob, default=list)

    match = relationship("Match", back_populates="performances")

    __table_args__ = (
        Index("ix_mp_summoner_match", "summoner_id", "match_id"),
        Index("ix_mp_champion_match", "champion_id", "match_id"),
    )


class SummonerChampionStats(Base):
    __tablename__ = "summoner_champion_stats"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    summoner_id: Mapped[int] = mapped_column(ForeignKey("summoners.id", ondelete="CASCADE"))
    champion_id: Mapped[int] = mapped_column(
        ForeignKey("champions.id", ondelete="CASCADE"), index=True
    )
    count_of_played_matches: Mapped[int] = mapped_column(Integer, default=0)
    wins: Mapped[int] = mapped_column(Integer, default=0)
    win_rate: Mapped[float] = mapped_column(Float, default=0)

    __table_args__ = (
        UniqueConstraint("summoner_id", "champion_id", name="uq_summoner_champion_stats"),
    )


class SummonerRoleStats(Base):
    __tablename__ = "summoner_role_stats"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    summoner_id: Mapped[int] = mapped_column(ForeignKey("summoners.id", ondelete="CASCADE"))
    role: Mapped[str] = mapped_column(String(16))
    count_of_played_matches: Mapped[int] = mapped_column(Integer, default=0)
    wins: Mapped[int] = mapped_column(Integer, default=0)
    win_rate: Mapped[float] = mapped_column(Float, default=0)

    __table_args__ = (
        UniqueConstraint("summoner_id", "role", name="uq_summoner_role_stats"),
    )


class ChampionBestSummoner(Base):
    __tablename__ = "champion_best_summoners"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    champion_id: Mapped[int] = mapped_column(ForeignKey("champions.id", ondelete="CASCADE"))
    summoner_id: Mapped[int] = mapped_column(
        ForeignKey("summoners.id", ondelete="CASCADE"), index=True
    )
    win_rate: Mapped[float] = mapped_column(Float, default=0)
    count_of_played_matches: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (
        UniqueConstraint("champion_id", "summoner_id", name="uq_champion_best_summoners"),
    )


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    name: Mapped[str] = mapped_column(String)
    email: Mapped[str] = mapped_column(String, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String)
    activated: Mapped[bool] = mapped_column(Boolean, default=False)


class Token(Base):
    __tablename__ = "tokens"

    hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    expiry: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    scope: Mapped[str] = mapped_column(String(32))
