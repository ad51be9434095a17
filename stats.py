"""Incremental aggregate updates applied when a match result is recorded.

Everything here runs inside the caller's transaction; nothing commits. The
caller (``services.create_match``) bounds the transaction with a timeout and
rolls it back on any failure, so either every aggregate below moves or none
does.

Rows are locked in a fixed order (summoners by id, then champions by id) so
two matches sharing players cannot deadlock each other.
"""
import logging

from sqlalchemy import Float, cast, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

import models
from errors import RecordNotFound

logger = logging.getLogger(__name__)


def _insert(db: AsyncSession, entity):
    if db.get_bind().dialect.name == "sqlite":
        return sqlite.insert(entity)
    return postgresql.insert(entity)


def running_average(prior_avg: dict, prior_games: int, kda: dict) -> dict:
    """Cumulative mean per component, integer division."""
    games = prior_games + 1
    return {
        key: (int(prior_avg.get(key, 0)) * prior_games + int(kda.get(key, 0))) // games
        for key in ("kills", "deaths", "assists")
    }


def lock_summoner(summoner_id: int):
    # FOR NO KEY UPDATE, compatible with the KEY SHARE locks that foreign key
    # checks on match_performances already hold in this transaction
    return (
        select(
            models.Summoner.count_of_played_games,
            models.Summoner.wins,
            models.Summoner.average_kda,
        )
        .where(models.Summoner.id == summoner_id)
        .with_for_update(key_share=True)
    )


def lock_champion(champion_id: int):
    return (
        select(models.Champion.count_of_played_matches, models.Champion.wins)
        .where(models.Champion.id == champion_id)
        .with_for_update(key_share=True)
    )


async def _upsert_counter(db: AsyncSession, entity, keys: dict, won: bool) -> None:
    # win_rate == (old_rate * (n - 1) + won) / n, kept exact through the wins counter
    w = int(won)
    stmt = _insert(db, entity).values(
        **keys,
        count_of_played_matches=1,
        wins=w,
        win_rate=float(w),
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=list(keys),
        set_={
            "count_of_played_matches": entity.count_of_played_matches + 1,
            "wins": entity.wins + w,
            "win_rate": cast(entity.wins + w, Float) / (entity.count_of_played_matches + 1),
        },
    )
    await db.execute(stmt)


async def update_summoner_statistics(
    db: AsyncSession,
    summoner_id: int,
    champion_id: int,
    role: str,
    kda: dict,
    won: bool,
) -> None:
    result = await db.execute(lock_summoner(summoner_id))
    row = result.one_or_none()
    if row is None:
        raise RecordNotFound(f"summoner {summoner_id} not found")

    prior_games, prior_wins, prior_avg = row
    games = prior_games + 1
    wins = prior_wins + int(won)

    await db.execute(
        update(models.Summoner)
        .where(models.Summoner.id == summoner_id)
        .values(
            count_of_played_games=games,
            wins=wins,
            win_rate=wins / games,
            average_kda=running_average(prior_avg or {}, prior_games, kda),
        )
        .execution_options(synchronize_session=False)
    )

    await _upsert_counter(
        db,
        models.SummonerChampionStats,
        {"summoner_id": summoner_id, "champion_id": champion_id},
        won,
    )
    await _upsert_counter(
        db,
        models.SummonerRoleStats,
        {"summoner_id": summoner_id, "role": role},
        won,
    )


async def update_champion_statistics(
    db: AsyncSession,
    champion_id: int,
    summoner_id: int,
    won: bool,
) -> None:
    result = await db.execute(lock_champion(champion_id))
    row = result.one_or_none()
    if row is None:
        raise RecordNotFound(f"champion {champion_id} not found")

    matches = row.count_of_played_matches + 1
    wins = row.wins + int(won)

    popularity = await db.scalar(
        select(func.count(func.distinct(models.SummonerChampionStats.summoner_id)))
        .where(models.SummonerChampionStats.champion_id == champion_id)
    )

    await db.execute(
        update(models.Champion)
        .where(models.Champion.id == champion_id)
        .values(
            count_of_played_matches=matches,
            wins=wins,
            win_rate=wins / matches,
            popularity=float(popularity or 0),
        )
        .execution_options(synchronize_session=False)
    )

    # Best summoners mirror the summoner's own record on this champion
    result = await db.execute(
        select(
            models.SummonerChampionStats.win_rate,
            models.SummonerChampionStats.count_of_played_matches,
        ).where(
            models.SummonerChampionStats.summoner_id == summoner_id,
            models.SummonerChampionStats.champion_id == champion_id,
        )
    )
    win_rate, played = result.one()

    stmt = _insert(db, models.ChampionBestSummoner).values(
        champion_id=champion_id,
        summoner_id=summoner_id,
        win_rate=win_rate,
        count_of_played_matches=played,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["champion_id", "summoner_id"],
        set_={
            "win_rate": stmt.excluded.win_rate,
            "count_of_played_matches": stmt.excluded.count_of_played_matches,
        },
    )
    await db.execute(stmt)


async def apply_match_statistics(db: AsyncSession, match_id: int) -> bool:
    """Fold one recorded match into the summoner and champion aggregates.

    Returns False (and changes nothing) when the match was already applied.
    """
    claimed = await db.execute(
        update(models.Match)
        .where(models.Match.id == match_id, models.Match.statistics_applied.is_(False))
        .values(statistics_applied=True)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount == 0:
        exists = await db.scalar(select(models.Match.id).where(models.Match.id == match_id))
        if exists is None:
            raise RecordNotFound(f"match {match_id} not found")
        logger.info("Statistics for match %s already applied, skipping", match_id)
        return False

    result_side = await db.scalar(select(models.Match.result).where(models.Match.id == match_id))
    performances = (
        await db.execute(
            select(models.MatchPerformance)
            .where(models.MatchPerformance.match_id == match_id)
            .order_by(models.MatchPerformance.summoner_id)
        )
    ).scalars().all()

    for p in performances:
        await update_summoner_statistics(
            db,
            p.summoner_id,
            p.champion_id,
            p.role,
            {"kills": p.kills, "deaths": p.deaths, "assists": p.assists},
            p.team == result_side,
        )

    for p in sorted(performances, key=lambda p: (p.champion_id, p.summoner_id)):
        await update_champion_statistics(db, p.champion_id, p.summoner_id, p.team == result_side)

    logger.info("Applied statistics for match %s (%d performances)", match_id, len(performances))
    return True
