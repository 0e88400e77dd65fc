from starlette.authentication import AuthCredentials, AuthenticationBackend, BaseUser
from starlette.requests import HTTPConnection, Request
from starlette.testclient import TestClient

from app.app import create_app
from app.config import Config, IdentityStrategy
from app.identity import (
    AuthenticatedUser,
    MockIdentityResolver,
    MockUser,
    SessionIdentityResolver,
    identity_resolver_factory,
)


DEFAULT_ID = "a0000000-0000-0000-0000-000000000001"
JOIN = "/api/shopping-lists/presence/join"
PRESENCE = "/api/shopping-lists/presence"


class Chef(BaseUser):
    @property
    def is_authenticated(self) -> bool:
        return True

    @property
    def display_name(self) -> str:
        return "Chef Anna"

    @property
    def identity(self) -> str:
        return "chef-anna"


class HeaderBackend(AuthenticationBackend):
    async def authenticate(self, conn: HTTPConnection):
        if conn.headers.get("authorization") == "Bearer anna":
            return AuthCredentials(["authenticated"]), Chef()
        return None


def request(headers: dict[str, str] | None = None, **scope) -> Request:
    raw = [(k.encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "headers": raw, **scope})


def test_mock_resolver_uuid() -> None:
    user_id = "b1111111-1111-1111-1111-111111111111"
    user = MockIdentityResolver(DEFAULT_ID).resolve(request({"x-mock-user-id": user_id}))
    assert isinstance(user, MockUser)
    assert user.id == user_id
    assert user.email == "mock@local"


def test_mock_resolver_normalizes_non_uuid() -> None:
    user = MockIdentityResolver(DEFAULT_ID).resolve(request({"x-mock-user-id": "anna"}))
    assert user is not None
    assert user.id == DEFAULT_ID


def test_mock_resolver_anonymous() -> None:
    resolver = MockIdentityResolver(DEFAULT_ID)
    assert resolver.resolve(request()) is None
    assert resolver.resolve(request({"x-mock-user-id": "anonymous"})) is None


def test_session_resolver_without_middleware() -> None:
    assert SessionIdentityResolver().resolve(request()) is None


def test_session_resolver_authenticated() -> None:
    user = SessionIdentityResolver().resolve(request(user=Chef()))
    assert isinstance(user, AuthenticatedUser)
    assert user.id == "chef-anna"


def test_session_resolver_ignores_mock_header() -> None:
    got = SessionIdentityResolver().resolve(request({"x-mock-user-id": DEFAULT_ID}))
    assert got is None


def test_factory_picks_strategy(db_url: str) -> None:
    session = identity_resolver_factory(Config(db_url=db_url))
    mock = identity_resolver_factory(Config(db_url=db_url, identity=IdentityStrategy.mock))
    assert isinstance(session, SessionIdentityResolver)
    assert isinstance(mock, MockIdentityResolver)


def test_join_records_mock_user(db_url: str) -> None:
    config = Config(db_url=db_url, identity=IdentityStrategy.mock)
    with TestClient(create_app(config)) as client:
        client.post(JOIN, json={"listId": "L1"}, headers={"x-mock-user-id": "anna"})
        presence = client.get(PRESENCE, params={"listId": "L1"}).json()["presence"]
    assert presence[0]["userId"] == DEFAULT_ID


def test_join_records_session_user(db_url: str) -> None:
    app = create_app(
        Config(db_url=db_url, presence_cache_ttl_seconds=0),
        auth_backend=HeaderBackend(),
    )
    with TestClient(app) as client:
        client.post(JOIN, json={"listId": "L1"}, headers={"authorization": "Bearer anna"})
        client.post(JOIN, json={"listId": "L1", "userId": "explicit"})
        presence = client.get(PRESENCE, params={"listId": "L1"}).json()["presence"]
    assert {p["userId"] for p in presence} == {"chef-anna", "explicit"}


def test_session_without_auth_backend_is_anonymous(db_url: str) -> None:
    with TestClient(create_app(Config(db_url=db_url))) as client:
        client.post(JOIN, json={"listId": "L1"}, headers={"authorization": "Bearer anna"})
        presence = client.get(PRESENCE, params={"listId": "L1"}).json()["presence"]
    assert presence[0]["userId"] is None
