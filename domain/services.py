from datetime import datetime, timedelta, timezone
import logging
from typing import Any
import uuid

from db import PresenceRepository
from domain.errors import PresenceNotFound, ValidationError
from domain.models import PresenceRecord


logger = logging.getLogger(__name__)


LIVENESS_WINDOW = timedelta(seconds=25)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def require(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Missing {field}")
    return value


def optional(value: Any, field: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"Invalid {field}")
    return value or None


async def join_list(
    list_id: Any,
    *,
    repository: PresenceRepository,
    user_id: Any = None,
    display_name: Any = None,
    now: datetime | None = None,
) -> str:
    """Record a new viewer on a shared list and return its presence id."""
    record = PresenceRecord(
        list_id=require(list_id, "listId"),
        presence_id=uuid.uuid4().hex,
        user_id=optional(user_id, "userId"),
        display_name=optional(display_name, "displayName"),
        last_seen=utcnow() if now is None else now,
    )
    await repository.add(record)
    logger.info("Presence %s joined list %s", record.presence_id, record.list_id)
    return record.presence_id


async def heartbeat(
    presence_id: Any,
    *,
    repository: PresenceRepository,
    now: datetime | None = None,
) -> PresenceRecord:
    presence_id = require(presence_id, "presenceId")
    record = await repository.touch(presence_id, utcnow() if now is None else now)
    if record is None:
        raise PresenceNotFound(f"Unknown presenceId: {presence_id}")
    logger.debug("Heartbeat from %s", presence_id)
    return record


async def leave_list(
    presence_id: Any,
    *,
    repository: PresenceRepository,
) -> PresenceRecord | None:
    """Remove a viewer. Leaving twice is fine; the second call returns None."""
    presence_id = require(presence_id, "presenceId")
    record = await repository.delete(presence_id)
    if record is not None:
        logger.info("Presence %s left list %s", presence_id, record.list_id)
    return record


async def list_active(
    list_id: Any,
    *,
    repository: PresenceRepository,
    window: timedelta = LIVENESS_WINDOW,
    now: datetime | None = None,
) -> list[PresenceRecord]:
    """Viewers of `list_id` whose last heartbeat is strictly inside the window.

    Stale rows are filtered out here, not deleted. Order is whatever the store
    returns.
    """
    list_id = require(list_id, "listId")
    now = utcnow() if now is None else now
    records = await repository.list_active(list_id, now - window)
    logger.debug("%d active on list %s", len(records), list_id)
    return records


async def purge_stale(
    *,
    repository: PresenceRepository,
    older_than: timedelta,
    now: datetime | None = None,
) -> int:
    now = utcnow() if now is None else now
    n = await repository.delete_stale(now - older_than)
    if n:
        logger.info("Purged %d stale presence rows", n)
    return n
