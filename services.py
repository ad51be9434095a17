import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

import models
import schemas
import stats
from config import settings
from constants.Roles import normalize_role
from constants.Teams import TeamSide, normalize_result
from errors import RecordNotFound
from validation import Filters, Validator, with_descending

logger = logging.getLogger(__name__)

SUMMONER_SORT_SAFELIST = with_descending("id", "username", "region", "rating", "win_rate")
CHAMPION_SORT_SAFELIST = with_descending("id", "name", "main_role", "popularity", "win_rate", "ban_rate")
MATCH_SORT_SAFELIST = with_descending("id", "duration", "result", "played_date")

BEST_SUMMONERS_LIMIT = 10


# -----------------------------
# Helpers
# -----------------------------
def _apply_filters(stmt, entity, filters: Filters, equals: dict[str, str]):
    for column, value in equals.items():
        if value:
            stmt = stmt.where(func.lower(getattr(entity, column)) == value.lower())

    col = getattr(entity, filters.sort_column)
    order = col.desc() if filters.descending else col.asc()
    return stmt.order_by(order, entity.id.asc()).limit(filters.limit).offset(filters.offset)


async def _get_or_404(db: AsyncSession, entity, record_id: int):
    if record_id < 1:
        raise RecordNotFound()
    result = await db.execute(
        select(entity)
        .where(entity.id == record_id)
        .execution_options(populate_existing=True)
    )
    record = result.scalar_one_or_none()
    if record is None:
        raise RecordNotFound()
    return record


async def _delete(db: AsyncSession, entity, record_id: int) -> None:
    if record_id < 1:
        raise RecordNotFound()
    result = await db.execute(delete(entity).where(entity.id == record_id))
    if result.rowcount == 0:
        await db.rollback()
        raise RecordNotFound()
    await db.commit()


# -----------------------------
# Summoners
# -----------------------------
async def create_summoner(db: AsyncSession, data: schemas.SummonerCreate) -> models.Summoner:
    summoner = models.Summoner(
        username=data.username,
        region=data.region.strip().lower(),
        rating=0,
        count_of_played_games=0,
        wins=0,
        win_rate=0.0,
        average_kda=models.zero_kda(),
    )
    db.add(summoner)
    await db.commit()
    await db.refresh(summoner)
    return summoner


async def get_summoner(db: AsyncSession, summoner_id: int) -> models.Summoner:
    return await _get_or_404(db, models.Summoner, summoner_id)


async def update_summoner(db: AsyncSession, summoner_id: int, data: schemas.SummonerCreate) -> models.Summoner:
    summoner = await get_summoner(db, summoner_id)
    summoner.username = data.username
    summoner.region = data.region.strip().lower()
    await db.commit()
    return summoner


async def delete_summoner(db: AsyncSession, summoner_id: int) -> None:
    await _delete(db, models.Summoner, summoner_id)


async def list_summoners(db: AsyncSession, username: str, region: str, filters: Filters) -> list[models.Summoner]:
    stmt = _apply_filters(
        select(models.Summoner),
        models.Summoner,
        filters,
        {"username": username, "region": region},
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_summoner_champion_stats(db: AsyncSession, summoner_id: int) -> list[schemas.ChampionStats]:
    result = await db.execute(
        select(models.SummonerChampionStats, models.Champion)
        .join(models.Champion, models.Champion.id == models.SummonerChampionStats.champion_id)
        .where(models.SummonerChampionStats.summoner_id == summoner_id)
        .order_by(models.SummonerChampionStats.count_of_played_matches.desc(), models.Champion.id)
    )
    return [
        schemas.ChampionStats(
            champion=schemas.ChampionData.model_validate(champion),
            count_of_played_matches=row.count_of_played_matches,
            wins=row.wins,
            win_rate=row.win_rate,
        )
        for row, champion in result.all()
    ]


async def get_summoner_role_stats(db: AsyncSession, summoner_id: int) -> list[models.SummonerRoleStats]:
    result = await db.execute(
        select(models.SummonerRoleStats)
        .where(models.SummonerRoleStats.summoner_id == summoner_id)
        .order_by(models.SummonerRoleStats.count_of_played_matches.desc(), models.SummonerRoleStats.role)
    )
    return list(result.scalars().all())


async def get_summoner_detail(db: AsyncSession, summoner_id: int) -> schemas.SummonerDetail:
    summoner = await get_summoner(db, summoner_id)
    role_stats = await get_summoner_role_stats(db, summoner_id)
    return schemas.SummonerDetail(
        **schemas.Summoner.model_validate(summoner).model_dump(),
        champion_stats=await get_summoner_champion_stats(db, summoner_id),
        role_stats=[schemas.RoleStats.model_validate(r) for r in role_stats],
    )


# -----------------------------
# Champions
# -----------------------------
async def create_champion(db: AsyncSession, data: schemas.ChampionCreate) -> models.Champion:
    champion = models.Champion(
        name=data.name,
        main_role=normalize_role(data.main_role),
        popularity=0.0,
        count_of_played_matches=0,
        wins=0,
        win_rate=0.0,
        ban_rate=0.0,
    )
    db.add(champion)
    await db.commit()
    await db.refresh(champion)
    return champion


async def get_champion(db: AsyncSession, champion_id: int) -> models.Champion:
    return await _get_or_404(db, models.Champion, champion_id)


async def update_champion(db: AsyncSession, champion_id: int, data: schemas.ChampionCreate) -> models.Champion:
    champion = await get_champion(db, champion_id)
    champion.name = data.name
    champion.main_role = normalize_role(data.main_role)
    await db.commit()
    return champion


async def delete_champion(db: AsyncSession, champion_id: int) -> None:
    await _delete(db, models.Champion, champion_id)


async def list_champions(db: AsyncSession, name: str, main_role: str, filters: Filters) -> list[models.Champion]:
    stmt = _apply_filters(
        select(models.Champion),
        models.Champion,
        filters,
        {"name": name, "main_role": main_role},
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_best_summoners(db: AsyncSession, champion_id: int) -> list[schemas.BestSummoner]:
    result = await db.execute(
        select(models.ChampionBestSummoner, models.Summoner)
        .join(models.Summoner, models.Summoner.id == models.ChampionBestSummoner.summoner_id)
        .where(models.ChampionBestSummoner.champion_id == champion_id)
        .order_by(
            models.ChampionBestSummoner.win_rate.desc(),
            models.ChampionBestSummoner.count_of_played_matches.desc(),
            models.Summoner.id,
        )
        .limit(BEST_SUMMONERS_LIMIT)
    )
    return [
        schemas.BestSummoner(
            summoner=schemas.SummonerData.model_validate(summoner),
            win_rate=row.win_rate,
            count_of_played_matches=row.count_of_played_matches,
        )
        for row, summoner in result.all()
    ]


async def get_champion_detail(db: AsyncSession, champion_id: int) -> schemas.ChampionDetail:
    champion = await get_champion(db, champion_id)
    return schemas.ChampionDetail(
        **schemas.Champion.model_validate(champion).model_dump(),
        best_summoners=await get_best_summoners(db, champion_id),
    )


# -----------------------------
# Matches
# -----------------------------
def team_to_blob(team: schemas.Team) -> dict:
    team = team.model_copy(update={
        "summoners": [
            p.model_copy(update={"role": normalize_role(p.role) or p.role})
            for p in team.summoners
        ]
    })
    if team.team_kda is None:
        team = team.model_copy(update={
            "team_kda": schemas.KDA(
                kills=sum(p.kda.kills for p in team.summoners),
                deaths=sum(p.kda.deaths for p in team.summoners),
                assists=sum(p.kda.assists for p in team.summoners),
            )
        })
    return team.model_dump(mode="json")


def team_from_blob(blob: dict) -> schemas.Team:
    return schemas.Team.model_validate(blob)


def match_to_schema(match: models.Match) -> schemas.Match:
    return schemas.Match(
        id=match.id,
        played_date=match.played_date,
        duration=match.duration,
        result=match.result,
        blue_team=team_from_blob(match.blue_team),
        red_team=team_from_blob(match.red_team),
    )


def _performance_rows(data: schemas.MatchCreate) -> list[models.MatchPerformance]:
    rows = []
    for side, team in ((TeamSide.BLUE, data.blue_team), (TeamSide.RED, data.red_team)):
        for p in team.summoners:
            rows.append(models.MatchPerformance(
                summoner_id=p.summoner_id,
                champion_id=p.champion_id,
                team=side.value,
                role=normalize_role(p.role),
                net_worth=p.net_worth,
                kills=p.kda.kills,
                deaths=p.kda.deaths,
                assists=p.kda.assists,
                bought_items=list(p.bought_items),
            ))
    return rows


def _referenced_ids(data: schemas.MatchCreate) -> tuple[set[int], set[int]]:
    summoner_ids, champion_ids = set(), set()
    for team in (data.blue_team, data.red_team):
        for p in team.summoners:
            summoner_ids.add(p.summoner_id)
            champion_ids.add(p.champion_id)
    return summoner_ids, champion_ids


async def check_match_references(db: AsyncSession, v: Validator, data: schemas.MatchCreate) -> None:
    """Record an error for every summoner or champion id that is not stored."""
    summoner_ids, champion_ids = _referenced_ids(data)
    for key, entity, ids in (
        ("summoners", models.Summoner, summoner_ids),
        ("champions", models.Champion, champion_ids),
    ):
        if not ids:
            continue
        found = set((await db.execute(select(entity.id).where(entity.id.in_(ids)))).scalars().all())
        missing = sorted(ids - found)
        if missing:
            v.add_error(key, "unknown ids: " + ", ".join(str(i) for i in missing))


async def create_match(
    db: AsyncSession,
    data: schemas.MatchCreate,
    timeout: Optional[float] = None,
) -> models.Match:
    """Store the match, its performance rows and its aggregates in one transaction."""
    timeout = settings.STATS_TX_TIMEOUT if timeout is None else timeout

    async def _record() -> models.Match:
        match = models.Match(
            duration=data.duration,
            result=normalize_result(data.result),
            played_date=data.played_date or datetime.now(timezone.utc).replace(microsecond=0),
            blue_team=team_to_blob(data.blue_team),
            red_team=team_to_blob(data.red_team),
            statistics_applied=False,
            performances=_performance_rows(data),
        )
        db.add(match)
        await db.flush()
        await stats.apply_match_statistics(db, match.id)
        await db.commit()
        return match

    try:
        return await asyncio.wait_for(_record(), timeout)
    except Exception:
        logger.error("Recording match aborted, rolling back")
        await db.rollback()
        raise


async def get_match(db: AsyncSession, match_id: int) -> models.Match:
    return await _get_or_404(db, models.Match, match_id)


async def update_match(db: AsyncSession, match_id: int, data: schemas.MatchCreate) -> models.Match:
    """Administrative edit: rewrites the record, never the aggregates."""
    match = await get_match(db, match_id)
    match.duration = data.duration
    match.result = normalize_result(data.result)
    if data.played_date is not None:
        match.played_date = data.played_date
    match.blue_team = team_to_blob(data.blue_team)
    match.red_team = team_to_blob(data.red_team)

    await db.execute(
        delete(models.MatchPerformance).where(models.MatchPerformance.match_id == match_id)
    )
    rows = _performance_rows(data)
    for row in rows:
        row.match_id = match_id
    db.add_all(rows)
    await db.commit()
    return match


async def delete_match(db: AsyncSession, match_id: int) -> None:
    await _delete(db, models.Match, match_id)


async def list_matches(db: AsyncSession, result: str, filters: Filters) -> list[models.Match]:
    stmt = _apply_filters(select(models.Match), models.Match, filters, {"result": result})
    rows = await db.execute(stmt)
    return list(rows.scalars().all())


async def list_performances(
    db: AsyncSession,
    *,
    match_id: Optional[int] = None,
    summoner_id: Optional[int] = None,
    champion_id: Optional[int] = None,
    filters: Optional[Filters] = None,
) -> list[schemas.MatchSummonerPerformance]:
    """Performance rows joined with summoner, champion and match."""
    mp = models.MatchPerformance
    stmt = (
        select(mp, models.Summoner.username, models.Champion, models.Match)
        .join(models.Summoner, models.Summoner.id == mp.summoner_id)
        .join(models.Champion, models.Champion.id == mp.champion_id)
        .join(models.Match, models.Match.id == mp.match_id)
    )
    if match_id is not None:
        stmt = stmt.where(mp.match_id == match_id).order_by(mp.team, mp.id)
    else:
        if summoner_id is not None:
            stmt = stmt.where(mp.summoner_id == summoner_id)
        if champion_id is not None:
            stmt = stmt.where(mp.champion_id == champion_id)
        stmt = stmt.order_by(models.Match.played_date.desc(), models.Match.id.desc(), mp.id)
    if filters is not None:
        stmt = stmt.limit(filters.limit).offset(filters.offset)

    result = await db.execute(stmt)
    return [
        schemas.MatchSummonerPerformance(
            match_id=match.id,
            summoner_id=perf.summoner_id,
            username=username,
            champion=schemas.ChampionData.model_validate(champion),
            team=perf.team,
            role=perf.role,
            net_worth=perf.net_worth,
            kda=schemas.KDA(kills=perf.kills, deaths=perf.deaths, assists=perf.assists),
            bought_items=perf.bought_items or [],
            match_duration=match.duration,
            match_date=match.played_date,
            match_result=match.result,
        )
        for perf, username, champion, match in result.all()
    ]
