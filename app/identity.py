"""Who is making the request.

Two resolvers, picked once from config. Production resolves the session user
put on the request by Starlette's `AuthenticationMiddleware`, which
`create_app(auth_backend=...)` installs. Local development
trusts an `x-mock-user-id` header instead. There is no fallback from one to the
other.
"""

import re
from typing import Protocol, TypeAlias

from starlette.requests import Request

from app.config import Config, IdentityStrategy


MOCK_USER_HEADER = "x-mock-user-id"
UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


class AuthenticatedUser:
    def __init__(self, *, id: str, email: str = "") -> None:
        self.id = id
        self.email = email

    def __repr__(self) -> str:
        return f"<AuthenticatedUser(id={self.id})>"


class MockUser:
    def __init__(self, *, id: str, email: str = "mock@local") -> None:
        self.id = id
        self.email = email

    def __repr__(self) -> str:
        return f"<MockUser(id={self.id})>"


RequestUser: TypeAlias = AuthenticatedUser | MockUser


class IdentityResolver(Protocol):
    def resolve(self, request: Request) -> RequestUser | None: ...


class SessionIdentityResolver:
    def resolve(self, request: Request) -> AuthenticatedUser | None:
        # request.user asserts the middleware is installed, the scope does not.
        user = request.scope.get("user")
        if user is None or not user.is_authenticated:
            return None
        return AuthenticatedUser(id=user.identity, email=getattr(user, "email", ""))


class MockIdentityResolver:
    def __init__(self, default_id: str) -> None:
        self.default_id = default_id

    def resolve(self, request: Request) -> MockUser | None:
        mock_id = request.headers.get(MOCK_USER_HEADER)
        if not mock_id or mock_id == "anonymous":
            return None
        return MockUser(id=mock_id if UUID_RE.match(mock_id) else self.default_id)


def identity_resolver_factory(config: Config) -> IdentityResolver:
    match config.identity:
        case IdentityStrategy.session:
            return SessionIdentityResolver()
        case IdentityStrategy.mock:
            return MockIdentityResolver(config.mock_user_id)
