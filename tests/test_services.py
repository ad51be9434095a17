# tests/test_services.py

from datetime import datetime, timezone

import pytest

import schemas
import services
from errors import RecordNotFound
from tests.helpers import match_create, performance, solo_match, team
from validation import Filters, Validator


class TestSummonerStore:

    async def test_insert_then_get(self, db):
        created = await services.create_summoner(db, schemas.SummonerCreate(username="Faker", region="kr"))
        assert created.id >= 1

        fetched = await services.get_summoner(db, created.id)
        assert fetched.username == "Faker"
        assert fetched.region == "kr"
        assert fetched.count_of_played_games == 0
        assert fetched.win_rate == 0.0
        assert fetched.average_kda == {"kills": 0, "deaths": 0, "assists": 0}

    @pytest.mark.parametrize("bad_id", [0, -5, 424242])
    async def test_missing_ids(self, db, bad_id):
        with pytest.raises(RecordNotFound):
            await services.get_summoner(db, bad_id)
        with pytest.raises(RecordNotFound):
            await services.update_summoner(db, bad_id, schemas.SummonerCreate(username="x", region="kr"))
        with pytest.raises(RecordNotFound):
            await services.delete_summoner(db, bad_id)

    async def test_update_and_delete(self, db):
        s = await services.create_summoner(db, schemas.SummonerCreate(username="Faker", region="kr"))
        await services.update_summoner(db, s.id, schemas.SummonerCreate(username="Hide on bush", region="KR"))
        assert (await services.get_summoner(db, s.id)).username == "Hide on bush"

        await services.delete_summoner(db, s.id)
        with pytest.raises(RecordNotFound):
            await services.get_summoner(db, s.id)

    async def test_region_stored_canonical(self, db):
        s = await services.create_summoner(db, schemas.SummonerCreate(username="Faker", region=" KR "))
        assert (await services.get_summoner(db, s.id)).region == "kr"

        rows = await services.list_summoners(db, "", "kr", Filters(sort_safelist=services.SUMMONER_SORT_SAFELIST))
        assert [r.id for r in rows] == [s.id]

        await services.update_summoner(db, s.id, schemas.SummonerCreate(username="Faker", region="EUW1 "))
        assert (await services.get_summoner(db, s.id)).region == "euw1"

    async def test_list_filters_sort_and_pages(self, db):
        for name, region in [("alpha", "euw1"), ("bravo", "euw1"), ("bravo", "kr"), ("charlie", "na1")]:
            await services.create_summoner(db, schemas.SummonerCreate(username=name, region=region))

        f = Filters(sort="-username", sort_safelist=services.SUMMONER_SORT_SAFELIST)
        rows = await services.list_summoners(db, "", "", f)
        assert [(r.username, r.id) for r in rows] == [("charlie", 4), ("bravo", 2), ("bravo", 3), ("alpha", 1)]

        rows = await services.list_summoners(db, "BRAVO", "", Filters(sort_safelist=services.SUMMONER_SORT_SAFELIST))
        assert [r.id for r in rows] == [2, 3]

        rows = await services.list_summoners(db, "", "EUW1", Filters(sort_safelist=services.SUMMONER_SORT_SAFELIST))
        assert [r.username for r in rows] == ["alpha", "bravo"]

        page2 = Filters(page=2, page_size=3, sort_safelist=services.SUMMONER_SORT_SAFELIST)
        assert [r.id for r in await services.list_summoners(db, "", "", page2)] == [4]


class TestChampionStore:

    async def test_insert_normalizes_role(self, db):
        c = await services.create_champion(db, schemas.ChampionCreate(name="Garen", main_role="top"))
        fetched = await services.get_champion(db, c.id)
        assert fetched.main_role == "TOP"
        assert (fetched.popularity, fetched.win_rate, fetched.ban_rate) == (0.0, 0.0, 0.0)

    async def test_list_by_role(self, db):
        await services.create_champion(db, schemas.ChampionCreate(name="Garen", main_role="TOP"))
        await services.create_champion(db, schemas.ChampionCreate(name="Ahri", main_role="MIDDLE"))
        await services.create_champion(db, schemas.ChampionCreate(name="Darius", main_role="TOP"))

        f = Filters(sort="name", sort_safelist=services.CHAMPION_SORT_SAFELIST)
        rows = await services.list_champions(db, "", "top", f)
        assert [r.name for r in rows] == ["Darius", "Garen"]


class TestMatchStore:

    async def _players(self, db):
        s1 = await services.create_summoner(db, schemas.SummonerCreate(username="Faker", region="kr"))
        s2 = await services.create_summoner(db, schemas.SummonerCreate(username="Chovy", region="kr"))
        c1 = await services.create_champion(db, schemas.ChampionCreate(name="Ahri", main_role="MIDDLE"))
        c2 = await services.create_champion(db, schemas.ChampionCreate(name="Syndra", main_role="MIDDLE"))
        return s1, s2, c1, c2

    async def test_insert_then_get(self, db):
        s1, s2, c1, c2 = await self._players(db)
        data = match_create(
            team(performance(s1.id, c1.id, kills=8), towers=9, dragons=3, bans=[c2.id]),
            team(performance(s2.id, c2.id, kills=2)),
            result="blue",
        )
        created = await services.create_match(db, data)

        fetched = services.match_to_schema(await services.get_match(db, created.id))
        assert fetched.duration == 1800
        assert fetched.result == "blue"
        assert fetched.played_date == datetime(2024, 5, 1, 18, 30, tzinfo=timezone.utc)
        assert fetched.blue_team.turrets_destroyed == 9
        assert fetched.blue_team.dragons_killed == 3
        assert fetched.blue_team.banned_champions == [c2.id]
        assert fetched.blue_team.summoners == data.blue_team.summoners
        assert fetched.red_team.summoners == data.red_team.summoners
        # team totals are derived when the caller leaves them out
        assert fetched.blue_team.team_kda == schemas.KDA(kills=8, deaths=2, assists=7)

    async def test_snapshot_and_rows_agree_on_role(self, db):
        s1, s2, c1, c2 = await self._players(db)
        match = await services.create_match(db, match_create(
            team(performance(s1.id, c1.id, role="middle")),
            team(performance(s2.id, c2.id, role=" top")),
        ))

        snapshot = services.match_to_schema(await services.get_match(db, match.id))
        assert snapshot.blue_team.summoners[0].role == "MIDDLE"
        assert snapshot.red_team.summoners[0].role == "TOP"

        rows = await services.list_performances(db, match_id=match.id)
        assert [r.role for r in rows] == ["MIDDLE", "TOP"]

    async def test_performances_join(self, db):
        s1, s2, c1, c2 = await self._players(db)
        match = await services.create_match(db, match_create(
            team(performance(s1.id, c1.id, items=["Rabadon's Deathcap"])),
            team(performance(s2.id, c2.id)),
            result="red",
        ))

        rows = await services.list_performances(db, match_id=match.id)
        assert [(r.username, r.champion.name, r.team) for r in rows] == [
            ("Faker", "Ahri", "blue"),
            ("Chovy", "Syndra", "red"),
        ]
        assert rows[0].bought_items == ["Rabadon's Deathcap"]
        assert rows[0].match_result == "red"
        assert rows[0].match_duration == 1800

        history = await services.list_performances(db, summoner_id=s2.id)
        assert [r.match_id for r in history] == [match.id]

    async def test_admin_edit_keeps_aggregates(self, db):
        s1, s2, c1, c2 = await self._players(db)
        match = await services.create_match(db, solo_match(s1.id, c1.id, won=True))

        await services.update_match(db, match.id, match_create(
            team(performance(s1.id, c1.id)), team(), result="red", duration=2100))

        fetched = await services.get_match(db, match.id)
        assert fetched.result == "red"
        assert fetched.duration == 2100
        summoner = await services.get_summoner(db, s1.id)
        assert summoner.wins == 1
        assert summoner.count_of_played_games == 1

    async def test_delete_removes_performances(self, db):
        s1, s2, c1, c2 = await self._players(db)
        match = await services.create_match(db, solo_match(s1.id, c1.id, won=True))

        await services.delete_match(db, match.id)
        with pytest.raises(RecordNotFound):
            await services.get_match(db, match.id)
        assert await services.list_performances(db, summoner_id=s1.id) == []

    async def test_list_by_result(self, db):
        s1, s2, c1, c2 = await self._players(db)
        await services.create_match(db, solo_match(s1.id, c1.id, won=True))
        await services.create_match(db, solo_match(s1.id, c1.id, won=False))
        await services.create_match(db, solo_match(s1.id, c1.id, won=True))

        f = Filters(sort="-id", sort_safelist=services.MATCH_SORT_SAFELIST)
        rows = await services.list_matches(db, "BLUE", f)
        assert [m.id for m in rows] == [3, 1]

    async def test_reference_check(self, db):
        s1, s2, c1, c2 = await self._players(db)
        v = Validator()
        await services.check_match_references(db, v, match_create(
            team(performance(s1.id, 77)), team(performance(99, c2.id))))
        assert v.errors == {"summoners": "unknown ids: 99", "champions": "unknown ids: 77"}
