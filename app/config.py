from enum import Enum

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Env(Enum):
    local = "local"
    dev = "dev"
    prod = "prod"


class IdentityStrategy(Enum):
    session = "session"
    mock = "mock"


class Config(BaseSettings):
    env: Env = Env.local
    db_url: str = "sqlite+aiosqlite:///presence.db"
    liveness_window_seconds: float = 25
    heartbeat_interval_seconds: float = 10
    presence_cache_ttl_seconds: float = 2
    purge_interval_seconds: float = 0
    purge_after_seconds: float = 60 * 60
    identity: IdentityStrategy = IdentityStrategy.session
    mock_user_id: str = "a0000000-0000-0000-0000-000000000001"
    log_level: str = "INFO"

    @model_validator(mode="after")
    def check_timings(self) -> "Config":
        if self.heartbeat_interval_seconds >= self.liveness_window_seconds:
            raise ValueError("heartbeat_interval_seconds must be below the liveness window")
        if self.purge_after_seconds <= self.liveness_window_seconds:
            raise ValueError("purge_after_seconds must exceed the liveness window")
        return self
