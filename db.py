import contextlib
from datetime import datetime, timezone
import logging
from typing import AsyncIterator

from databases import Database
from databases.interfaces import Record

from domain.errors import StorageError
from domain.models import PresenceRecord


logger = logging.getLogger(__name__)


CREATE_PRESENCE_TABLE = """
CREATE TABLE IF NOT EXISTS shopping_list_presence (
    presence_id VARCHAR(64) PRIMARY KEY,
    list_id VARCHAR(256) NOT NULL,
    user_id VARCHAR(256),
    display_name VARCHAR(256),
    last_seen DOUBLE PRECISION NOT NULL
)
"""


CREATE_PRESENCE_INDEX = """
CREATE INDEX IF NOT EXISTS shopping_list_presence_list_idx
ON shopping_list_presence (list_id, last_seen)
"""


INSERT_PRESENCE = """
INSERT INTO shopping_list_presence(presence_id, list_id, user_id, display_name, last_seen)
VALUES (:presence_id, :list_id, :user_id, :display_name, :last_seen)
"""


# Never rewinds: an older heartbeat leaves the row alone.
TOUCH_PRESENCE = """
UPDATE shopping_list_presence SET last_seen = :last_seen
WHERE presence_id = :presence_id AND last_seen < :last_seen
"""


GET_PRESENCE = "SELECT * FROM shopping_list_presence WHERE presence_id = :presence_id"


DELETE_PRESENCE = "DELETE FROM shopping_list_presence WHERE presence_id = :presence_id"


LIST_ACTIVE = """
SELECT * FROM shopping_list_presence WHERE list_id = :list_id AND last_seen > :cutoff
"""


COUNT_STALE = "SELECT COUNT(*) AS n FROM shopping_list_presence WHERE last_seen < :cutoff"


DELETE_STALE = "DELETE FROM shopping_list_presence WHERE last_seen < :cutoff"


async def create_db(db: Database) -> None:
    async with storage_errors("create the presence table"):
        await db.execute(  # pyright: ignore[reportUnknownMemberType]
            query=CREATE_PRESENCE_TABLE
        )
        await db.execute(  # pyright: ignore[reportUnknownMemberType]
            query=CREATE_PRESENCE_INDEX
        )


@contextlib.asynccontextmanager
async def storage_errors(action: str) -> AsyncIterator[None]:
    try:
        yield
    except Exception as e:
        logger.exception("Could not %s", action)
        raise StorageError(str(e) or type(e).__name__) from e


def to_timestamp(when: datetime) -> float:
    return when.timestamp()


def from_timestamp(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def to_record(row: Record) -> PresenceRecord:
    return PresenceRecord(
        list_id=row["list_id"],
        presence_id=row["presence_id"],
        user_id=row["user_id"],
        display_name=row["display_name"],
        last_seen=from_timestamp(row["last_seen"]),
    )


class PresenceRepository:
    """Shopping list presence repository."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def add(self, record: PresenceRecord) -> PresenceRecord:
        async with storage_errors("insert presence"):
            await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
                INSERT_PRESENCE,
                values={
                    "presence_id": record.presence_id,
                    "list_id": record.list_id,
                    "user_id": record.user_id,
                    "display_name": record.display_name,
                    "last_seen": to_timestamp(record.last_seen),
                },
            )
        return record

    async def get(self, presence_id: str) -> PresenceRecord | None:
        async with storage_errors("fetch presence"):
            row = await self.db.fetch_one(  # pyright: ignore[reportUnknownMemberType]
                GET_PRESENCE, values={"presence_id": presence_id}
            )
        return None if row is None else to_record(row)

    async def touch(self, presence_id: str, when: datetime) -> PresenceRecord | None:
        async with storage_errors("update presence"):
            await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
                TOUCH_PRESENCE,
                values={"presence_id": presence_id, "last_seen": to_timestamp(when)},
            )
        return await self.get(presence_id)

    async def delete(self, presence_id: str) -> PresenceRecord | None:
        async with storage_errors("delete presence"):
            async with self.db.transaction():
                row = await self.db.fetch_one(  # pyright: ignore[reportUnknownMemberType]
                    GET_PRESENCE, values={"presence_id": presence_id}
                )
                await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
                    DELETE_PRESENCE, values={"presence_id": presence_id}
                )
        return None if row is None else to_record(row)

    async def list_active(self, list_id: str, cutoff: datetime) -> list[PresenceRecord]:
        async with storage_errors("list presence"):
            rows = await self.db.fetch_all(  # pyright: ignore[reportUnknownMemberType]
                LIST_ACTIVE,
                values={"list_id": list_id, "cutoff": to_timestamp(cutoff)},
            )
        return [to_record(r) for r in rows]

    async def delete_stale(self, cutoff: datetime) -> int:
        values = {"cutoff": to_timestamp(cutoff)}
        async with storage_errors("purge stale presence"):
            async with self.db.transaction():
                row = await self.db.fetch_one(  # pyright: ignore[reportUnknownMemberType]
                    COUNT_STALE, values=values
                )
                await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
                    DELETE_STALE, values=values
                )
        return 0 if row is None else int(row["n"])
