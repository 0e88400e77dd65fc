from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Iterator

from databases import Database
import pytest
import pytest_asyncio
from starlette.testclient import TestClient

import db
from app.app import create_app
from app.config import Config


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'presence.db'}"


@pytest_asyncio.fixture
async def database(db_url: str) -> AsyncIterator[Database]:
    database = Database(db_url)
    await database.connect()
    await db.create_db(database)
    yield database
    await database.disconnect()


@pytest.fixture
def repository(database: Database) -> db.PresenceRepository:
    return db.PresenceRepository(database)


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def config(db_url: str) -> Config:
    return Config(db_url=db_url, presence_cache_ttl_seconds=0)


@pytest.fixture
def client(config: Config) -> Iterator[TestClient]:
    with TestClient(create_app(config)) as client:
        yield client
