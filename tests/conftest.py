# tests/conftest.py

import os

# Must be set before config is imported
os.environ.setdefault("LIMITER_ENABLED", "false")
os.environ.setdefault("PASSWORD_HASH_ITERATIONS", "1000")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient

import main
from config import settings
from db import Database


@pytest.fixture
def database_url(tmp_path):
    """A fresh SQLite file per test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'league_of_graphs_test.db'}"


@pytest.fixture
async def database(database_url):
    database = Database(database_url)
    await database.create_tables()
    yield database
    await database.close()


@pytest.fixture
async def db(database):
    async with database.session() as session:
        yield session


@pytest.fixture
def client(monkeypatch, database_url):
    """HTTP client; the app's lifespan opens the database for us."""
    monkeypatch.setattr(settings, "DATABASE_URL", database_url)
    with TestClient(main.app, raise_server_exceptions=False) as client:
        yield client
