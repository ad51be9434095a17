import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException

import accounts
import middleware
import schemas
import services
from config import settings
from db import Database, get_db
from errors import (
    DuplicateEmail,
    EditConflict,
    InvalidCredentials,
    RecordNotFound,
    ValidationFailed,
)
from middleware import error_response
from validation import (
    Filters,
    Validator,
    validate_champion,
    validate_email,
    validate_filters,
    validate_match,
    validate_password,
    validate_summoner,
    validate_token,
    validate_user,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    database = Database(settings.DATABASE_URL)
    if settings.DB_AUTO_CREATE:
        await database.create_tables()
    app.state.database = database
    logger.info("Server ready (env=%s)", settings.ENV)

    yield

    await database.close()


app = FastAPI(
    title="League of Graphs",
    version=settings.VERSION,
    lifespan=lifespan,
)
middleware.install(app)
if settings.CORS_TRUSTED_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_TRUSTED_ORIGINS,
        allow_methods=["OPTIONS", "GET", "POST", "PUT", "DELETE"],
        allow_headers=["Authorization", "Content-Type"],
    )


# -----------------------------
# Error responses
# -----------------------------
@app.exception_handler(RecordNotFound)
async def not_found_response(request: Request, exc: RecordNotFound):
    return error_response(404, "the requested resource could not be found")


@app.exception_handler(ValidationFailed)
async def failed_validation_response(request: Request, exc: ValidationFailed):
    return error_response(422, exc.errors)


@app.exception_handler(EditConflict)
async def edit_conflict_response(request: Request, exc: EditConflict):
    return error_response(409, "unable to update the record due to an edit conflict, please try again")


@app.exception_handler(DuplicateEmail)
async def duplicate_email_response(request: Request, exc: DuplicateEmail):
    return error_response(422, {"email": "a user with this email address already exists"})


@app.exception_handler(InvalidCredentials)
async def invalid_credentials_response(request: Request, exc: InvalidCredentials):
    return error_response(401, "invalid authentication credentials")


@app.exception_handler(RequestValidationError)
async def bad_request_response(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if any(e["loc"] and e["loc"][0] == "path" for e in errors):
        # a non-numeric id can never name a record
        return error_response(404, "the requested resource could not be found")
    for e in errors:
        if e["type"] == "json_invalid":
            return error_response(400, "body contains badly-formed JSON")
        if e["loc"] == ("body",) and e["type"] == "missing":
            return error_response(400, "body must not be empty")

    fields = {}
    for e in errors:
        key = ".".join(str(part) for part in e["loc"][1:]) or str(e["loc"][0])
        fields.setdefault(key, e["msg"])
    return error_response(422, fields)


@app.exception_handler(StarletteHTTPException)
async def http_error_response(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return error_response(404, "the requested resource could not be found")
    if exc.status_code == 405:
        return error_response(405, f"the {request.method} method is not supported for this resource")
    return error_response(exc.status_code, exc.detail)


@app.exception_handler(Exception)
async def server_error_response(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, "the server encountered a problem and could not process your request")


# -----------------------------
# Helpers
# -----------------------------
def _check(validate, value) -> None:
    v = Validator()
    validate(v, value)
    if not v.valid:
        raise ValidationFailed(v.errors)


def _filters(page: int, page_size: int, sort: str, safelist: list[str]) -> Filters:
    filters = Filters(page=page, page_size=page_size, sort=sort, sort_safelist=safelist)
    _check(validate_filters, filters)
    return filters


async def _check_match(db: AsyncSession, input: schemas.MatchCreate) -> None:
    v = Validator()
    validate_match(v, input)
    if v.valid:
        await services.check_match_references(db, v, input)
    if not v.valid:
        raise ValidationFailed(v.errors)


@app.get("/v1/healthcheck")
async def healthcheck(db: AsyncSession = Depends(get_db)):
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Healthcheck could not reach the database")
        return JSONResponse(status_code=503, content={"status": "unavailable", "database": "unreachable"})
    return {
        "status": "available",
        "database": "connected",
        "system_info": {"environment": settings.ENV, "version": settings.VERSION},
    }


# -----------------------------
# Summoners
# -----------------------------
@app.post("/v1/summoners", status_code=201)
async def create_summoner(input: schemas.SummonerCreate, response: Response, db: AsyncSession = Depends(get_db)):
    _check(validate_summoner, input)
    summoner = await services.create_summoner(db, input)
    response.headers["Location"] = f"/v1/summoners/{summoner.id}"
    return {"summoner": schemas.Summoner.model_validate(summoner)}


@app.get("/v1/summoners/{id}")
async def show_summoner(id: int, db: AsyncSession = Depends(get_db)):
    return {"summoner": await services.get_summoner_detail(db, id)}


@app.put("/v1/summoners/{id}")
async def update_summoner(id: int, input: schemas.SummonerCreate, db: AsyncSession = Depends(get_db)):
    await services.get_summoner(db, id)
    _check(validate_summoner, input)
    summoner = await services.update_summoner(db, id, input)
    return {"summoner": schemas.Summoner.model_validate(summoner)}


@app.delete("/v1/summoners/{id}")
async def delete_summoner(id: int, db: AsyncSession = Depends(get_db)):
    await services.delete_summoner(db, id)
    return {"message": "summoner successfully deleted"}


@app.get("/v1/summoners")
async def list_summoners(
    username: str = "",
    region: str = "",
    page: int = 1,
    page_size: int = 20,
    sort: str = "id",
    db: AsyncSession = Depends(get_db),
):
    filters = _filters(page, page_size, sort, services.SUMMONER_SORT_SAFELIST)
    summoners = await services.list_summoners(db, username, region, filters)
    return {"summoners": [schemas.Summoner.model_validate(s) for s in summoners]}


@app.get("/v1/summoners/{id}/matches")
async def list_summoner_matches(id: int, page: int = 1, page_size: int = 20, db: AsyncSession = Depends(get_db)):
    filters = _filters(page, page_size, "id", ["id"])
    await services.get_summoner(db, id)
    return {"matches": await services.list_performances(db, summoner_id=id, filters=filters)}


# -----------------------------
# Champions
# -----------------------------
@app.post("/v1/champions", status_code=201)
async def create_champion(input: schemas.ChampionCreate, response: Response, db: AsyncSession = Depends(get_db)):
    _check(validate_champion, input)
    champion = await services.create_champion(db, input)
    response.headers["Location"] = f"/v1/champions/{champion.id}"
    return {"champion": schemas.Champion.model_validate(champion)}


@app.get("/v1/champions/{id}")
async def show_champion(id: int, db: AsyncSession = Depends(get_db)):
    return {"champion": await services.get_champion_detail(db, id)}


@app.put("/v1/champions/{id}")
async def update_champion(id: int, input: schemas.ChampionCreate, db: AsyncSession = Depends(get_db)):
    await services.get_champion(db, id)
    _check(validate_champion, input)
    champion = await services.update_champion(db, id, input)
    return {"champion": schemas.Champion.model_validate(champion)}


@app.delete("/v1/champions/{id}")
async def delete_champion(id: int, db: AsyncSession = Depends(get_db)):
    await services.delete_champion(db, id)
    return {"message": "champion successfully deleted"}


@app.get("/v1/champions")
async def list_champions(
    name: str = "",
    main_role: str = "",
    page: int = 1,
    page_size: int = 20,
    sort: str = "id",
    db: AsyncSession = Depends(get_db),
):
    filters = _filters(page, page_size, sort, services.CHAMPION_SORT_SAFELIST)
    champions = await services.list_champions(db, name, main_role, filters)
    return {"champions": [schemas.Champion.model_validate(c) for c in champions]}


@app.get("/v1/champions/{id}/matches")
async def list_champion_matches(id: int, page: int = 1, page_size: int = 20, db: AsyncSession = Depends(get_db)):
    filters = _filters(page, page_size, "id", ["id"])
    await services.get_champion(db, id)
    return {"matches": await services.list_performances(db, champion_id=id, filters=filters)}


# -----------------------------
# Matches
# -----------------------------
@app.post("/v1/matches", status_code=201)
async def create_match(input: schemas.MatchCreate, response: Response, db: AsyncSession = Depends(get_db)):
    await _check_match(db, input)
    match = await services.create_match(db, input)
    response.headers["Location"] = f"/v1/matches/{match.id}"
    return {"match": services.match_to_schema(match)}


@app.get("/v1/matches/{id}")
async def show_match(id: int, db: AsyncSession = Depends(get_db)):
    match = await services.get_match(db, id)
    return {"match": services.match_to_schema(match)}


@app.put("/v1/matches/{id}")
async def update_match(id: int, input: schemas.MatchCreate, db: AsyncSession = Depends(get_db)):
    await services.get_match(db, id)
    await _check_match(db, input)
    match = await services.update_match(db, id, input)
    return {"match": services.match_to_schema(match)}


@app.delete("/v1/matches/{id}")
async def delete_match(id: int, db: AsyncSession = Depends(get_db)):
    await services.delete_match(db, id)
    return {"message": "match successfully deleted"}


@app.get("/v1/matches")
async def list_matches(
    result: str = "",
    page: int = 1,
    page_size: int = 20,
    sort: str = "id",
    db: AsyncSession = Depends(get_db),
):
    filters = _filters(page, page_size, sort, services.MATCH_SORT_SAFELIST)
    matches = await services.list_matches(db, result, filters)
    return {"matches": [services.match_to_schema(m) for m in matches]}


@app.get("/v1/matches/{id}/summoners")
async def list_match_summoners(id: int, db: AsyncSession = Depends(get_db)):
    await services.get_match(db, id)
    return {"summoners": await services.list_performances(db, match_id=id)}


# -----------------------------
# Users and tokens
# -----------------------------
@app.post("/v1/users", status_code=202)
async def register_user(input: schemas.UserCreate, db: AsyncSession = Depends(get_db)):
    _check(validate_user, input)
    user, token = await accounts.register_user(db, input)
    return {"user": schemas.User.model_validate(user), "activation_token": token}


@app.put("/v1/users/activated")
async def activate_user(input: schemas.ActivationRequest, db: AsyncSession = Depends(get_db)):
    _check(validate_token, input.token)
    user = await accounts.activate_user(db, input.token)
    return {"user": schemas.User.model_validate(user)}


@app.post("/v1/tokens/authentication", status_code=201)
async def create_authentication_token(input: schemas.Credentials, db: AsyncSession = Depends(get_db)):
    v = Validator()
    validate_email(v, input.email)
    validate_password(v, input.password)
    if not v.valid:
        raise ValidationFailed(v.errors)
    token = await accounts.create_authentication_token(db, input)
    return {"authentication_token": token}
