import asyncio
import contextlib
from datetime import timedelta
import functools
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, TypeAlias

from databases import Database
from starlette.applications import Starlette
from starlette.authentication import AuthenticationBackend
from starlette.middleware import Middleware
from starlette.middleware.authentication import AuthenticationMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

import db
from app import config
from app.cache import TTLCache
from app.identity import IdentityResolver, identity_resolver_factory
from domain import services
from domain.errors import PresenceNotFound, StorageError, ValidationError
from domain.models import PresenceRecord


logger = logging.getLogger(__name__)


Payload: TypeAlias = dict[str, Any]


def aJSONResponse(route: Callable[..., Awaitable[Payload | tuple[Payload, int]]]):
    @functools.wraps(route)
    async def wrapper(*args: Any, **kwargs: Any) -> JSONResponse:
        try:
            resp = await route(*args, **kwargs)
        except ValidationError as e:
            return JSONResponse({"error": str(e)}, status_code=400)
        except PresenceNotFound as e:
            return JSONResponse({"error": str(e)}, status_code=404)
        except StorageError as e:
            return JSONResponse({"error": str(e)}, status_code=500)
        if not isinstance(resp, tuple):
            payload, code = resp, 200
        else:
            payload, code = resp
        return JSONResponse(payload, status_code=code)

    return wrapper


async def read_body(request: Request) -> Payload:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError("Invalid JSON body") from e
    if not isinstance(body, dict):
        raise ValidationError("Invalid JSON body")
    return body


def cache_key(list_id: str) -> str:
    return f"presence:{list_id}"


def settings(request: Request) -> config.Config:
    return request.app.state.config


@aJSONResponse
async def healthz(request: Request) -> Payload:
    return {"ok": True}


@aJSONResponse
async def join(request: Request) -> Payload:
    body = await read_body(request)
    user_id = body.get("userId")
    if not user_id:
        identity: IdentityResolver = request.app.state.identity
        user = identity.resolve(request)
        user_id = None if user is None else user.id
    presence_id = await services.join_list(
        body.get("listId"),
        user_id=user_id,
        display_name=body.get("displayName"),
        repository=request.app.state.repo,
    )
    request.app.state.cache.delete(cache_key(body["listId"]))
    return {
        "ok": True,
        "presenceId": presence_id,
        "heartbeatInterval": settings(request).heartbeat_interval_seconds,
    }


@aJSONResponse
async def heartbeat(request: Request) -> Payload:
    body = await read_body(request)
    record = await services.heartbeat(
        body.get("presenceId"), repository=request.app.state.repo
    )
    request.app.state.cache.delete(cache_key(record.list_id))
    return {"ok": True, "lastSeen": record.last_seen.isoformat()}


@aJSONResponse
async def leave(request: Request) -> Payload:
    body = await read_body(request)
    record = await services.leave_list(
        body.get("presenceId"), repository=request.app.state.repo
    )
    if record is not None:
        request.app.state.cache.delete(cache_key(record.list_id))
    return {"ok": True}


@aJSONResponse
async def presence(request: Request) -> Payload:
    list_id = request.query_params.get("listId")
    cache: TTLCache = request.app.state.cache
    cfg = settings(request)
    window = timedelta(seconds=cfg.liveness_window_seconds)

    cached: list[PresenceRecord] | None = None
    if list_id:
        cached = cache.get(cache_key(list_id))
    if cached is not None:
        # Viewers go stale while the entry is alive, so check them again.
        now = services.utcnow()
        records = [r for r in cached if r.is_active(now=now, window=window)]
    else:
        records = await services.list_active(
            list_id, repository=request.app.state.repo, window=window
        )
        cache.set(cache_key(list_id), records, ttl=cfg.presence_cache_ttl_seconds)
    return {"ok": True, "presence": [r.to_dict() for r in records]}


async def purge_periodically(
    repository: db.PresenceRepository,
    *,
    interval: float,
    older_than: timedelta,
) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await services.purge_stale(repository=repository, older_than=older_than)
        except StorageError:
            logger.warning("Purge failed, trying again in %ss", interval)


def create_app(
    cfg: config.Config | None = None,
    *,
    auth_backend: AuthenticationBackend | None = None,
) -> Starlette:
    """Build the presence app.

    The session identity strategy only sees users when `auth_backend` is given;
    without it every request is anonymous unless the body carries a `userId`.
    """
    cfg = config.Config() if cfg is None else cfg
    database = Database(cfg.db_url)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        await database.connect()
        await db.create_db(database)
        app.state.cache.open()
        purge: asyncio.Task[None] | None = None
        if cfg.purge_interval_seconds > 0:
            purge = asyncio.create_task(
                purge_periodically(
                    app.state.repo,
                    interval=cfg.purge_interval_seconds,
                    older_than=timedelta(seconds=cfg.purge_after_seconds),
                )
            )
        logger.info("Presence service up (%s)", cfg.env.value)
        try:
            yield
        finally:
            try:
                if purge is not None:
                    purge.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await purge
            finally:
                try:
                    app.state.cache.close()
                finally:
                    await database.disconnect()

    middleware: list[Middleware] = []
    if auth_backend is not None:
        middleware.append(Middleware(AuthenticationMiddleware, backend=auth_backend))

    app = Starlette(
        debug=True if cfg.env == config.Env.local else False,
        middleware=middleware,
        routes=[
            Route("/healthz", healthz),
            Route("/api/shopping-lists/presence", presence, methods=["GET"]),
            Route("/api/shopping-lists/presence/join", join, methods=["POST"]),
            Route("/api/shopping-lists/presence/heartbeat", heartbeat, methods=["POST"]),
            Route("/api/shopping-lists/presence/leave", leave, methods=["POST"]),
        ],
        lifespan=lifespan,
    )

    app.state.config = cfg
    app.state.repo = db.PresenceRepository(database)
    app.state.cache = TTLCache()
    app.state.identity = identity_resolver_factory(cfg)
    return app
