# tests/helpers.py

import schemas


def summoner_payload(username: str = "Faker", region: str = "kr") -> dict:
    return {"username": username, "region": region}


def champion_payload(name: str = "Ahri", main_role: str = "MIDDLE") -> dict:
    return {"name": name, "main_role": main_role}


def performance(summoner_id: int, champion_id: int, role: str = "MIDDLE",
                kills: int = 5, deaths: int = 2, assists: int = 7,
                net_worth: int = 12000, items=None) -> dict:
    return {
        "summoner_id": summoner_id,
        "champion_id": champion_id,
        "role": role,
        "net_worth": net_worth,
        "kda": {"kills": kills, "deaths": deaths, "assists": assists},
        "bought_items": items if items is not None else ["Luden's Companion", "Sorcerer's Shoes"],
    }


def team(*performances, towers: int = 0, dragons: int = 0, bans=()) -> dict:
    return {
        "turrets_destroyed": towers,
        "inhibitors_destroyed": 0,
        "rift_heralds_killed": 0,
        "dragons_killed": dragons,
        "baron_nashors_killed": 0,
        "summoners": list(performances),
        "banned_champions": list(bans),
    }


def match_payload(blue: dict, red: dict, result: str = "blue", duration: int = 1800,
                  played_date: str = "2024-05-01T18:30:00Z") -> dict:
    return {
        "duration": duration,
        "result": result,
        "played_date": played_date,
        "blue_team": blue,
        "red_team": red,
    }


def match_create(blue: dict, red: dict, **kwargs) -> schemas.MatchCreate:
    return schemas.MatchCreate.model_validate(match_payload(blue, red, **kwargs))


def solo_match(summoner_id: int, champion_id: int, won: bool, **perf_kwargs) -> schemas.MatchCreate:
    """A match where one summoner plays on blue; blue wins when ``won``."""
    return match_create(
        team(performance(summoner_id, champion_id, **perf_kwargs)),
        team(),
        result="blue" if won else "red",
    )
