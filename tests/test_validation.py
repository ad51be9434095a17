# tests/test_validation.py

import pytest

import schemas
from tests.helpers import match_create, performance, team
from validation import (
    Filters,
    Validator,
    validate_champion,
    validate_filters,
    validate_match,
    validate_summoner,
    validate_token,
    validate_user,
    with_descending,
)


class TestValidator:

    def test_starts_valid(self):
        assert Validator().valid

    def test_first_message_per_field_wins(self):
        v = Validator()
        v.check(False, "name", "must be provided")
        v.check(False, "name", "something else")
        assert v.errors == {"name": "must be provided"}
        assert not v.valid


class TestSummonerValidation:

    def test_valid_summoner(self):
        v = Validator()
        validate_summoner(v, schemas.SummonerCreate(username="Faker", region="KR"))
        assert v.valid

    def test_missing_fields(self):
        v = Validator()
        validate_summoner(v, schemas.SummonerCreate())
        assert v.errors == {"username": "must be provided", "region": "must be provided"}

    def test_unknown_region(self):
        v = Validator()
        validate_summoner(v, schemas.SummonerCreate(username="Faker", region="mars1"))
        assert "region" in v.errors

    def test_does_not_mutate_input(self):
        data = schemas.SummonerCreate(username="Faker", region="KR")
        validate_summoner(Validator(), data)
        assert data.region == "KR"


class TestChampionValidation:

    def test_valid_champion(self):
        v = Validator()
        validate_champion(v, schemas.ChampionCreate(name="Ahri", main_role="middle"))
        assert v.valid

    def test_literal_champion_name_rejected(self):
        v = Validator()
        validate_champion(v, schemas.ChampionCreate(name="Champion", main_role="TOP"))
        assert v.errors["name"] == "must be different from the name of the champion"

    def test_unknown_role(self):
        v = Validator()
        validate_champion(v, schemas.ChampionCreate(name="Ahri", main_role="CARRY"))
        assert "main_role" in v.errors


class TestMatchValidation:

    def test_valid_match(self):
        v = Validator()
        validate_match(v, match_create(team(performance(1, 1)), team(performance(2, 2))))
        assert v.valid

    def test_missing_everything(self):
        v = Validator()
        validate_match(v, schemas.MatchCreate())
        assert set(v.errors) == {"result", "duration", "blue_team", "red_team"}

    def test_result_must_name_a_side(self):
        v = Validator()
        validate_match(v, match_create(team(), team(), result="draw"))
        assert v.errors == {"result": "must be either blue or red"}

    def test_bad_performance_fields(self):
        v = Validator()
        bad = performance(0, -1, role="CARRY", kills=-1)
        validate_match(v, match_create(team(bad), team()))
        assert set(v.errors) == {
            "blue_team.summoners.0.summoner_id",
            "blue_team.summoners.0.champion_id",
            "blue_team.summoners.0.role",
            "blue_team.summoners.0.kda",
        }

    def test_summoner_on_both_teams(self):
        v = Validator()
        validate_match(v, match_create(team(performance(1, 1)), team(performance(1, 2))))
        assert v.errors == {"summoners": "a summoner can appear only once per match"}


class TestFilters:

    def test_defaults_are_valid(self):
        v = Validator()
        validate_filters(v, Filters())
        assert v.valid

    @pytest.mark.parametrize("page,page_size,field", [
        (0, 20, "page"),
        (10_000_001, 20, "page"),
        (1, 0, "page_size"),
        (1, 101, "page_size"),
    ])
    def test_out_of_range(self, page, page_size, field):
        v = Validator()
        validate_filters(v, Filters(page=page, page_size=page_size))
        assert field in v.errors

    def test_sort_outside_safelist(self):
        v = Validator()
        validate_filters(v, Filters(sort="password", sort_safelist=["id"]))
        assert v.errors == {"sort": "invalid sort value"}

    def test_sort_direction_and_offset(self):
        f = Filters(page=3, page_size=10, sort="-username", sort_safelist=with_descending("id", "username"))
        assert f.sort_column == "username"
        assert f.descending
        assert f.offset == 20
        assert f.limit == 10

    def test_unsafe_sort_column_raises(self):
        with pytest.raises(ValueError):
            Filters(sort="id; DROP TABLE summoners", sort_safelist=["id"]).sort_column


class TestAccountValidation:

    def test_user(self):
        v = Validator()
        validate_user(v, schemas.UserCreate(name="Alice", email="not-an-email", password="short"))
        assert set(v.errors) == {"email", "password"}

    def test_token_length(self):
        v = Validator()
        validate_token(v, "ABC")
        assert v.errors == {"token": "must be 26 bytes long"}
