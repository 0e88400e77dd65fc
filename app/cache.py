import time
from typing import Any, Callable


class TTLCache:
    """Key-value store that lives as long as the app does.

    `open` at startup and `close` at shutdown. Entries expire on read.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.clock = clock
        self._store: dict[str, tuple[Any, float | None]] | None = None

    @property
    def is_open(self) -> bool:
        return self._store is not None

    def open(self) -> None:
        if self._store is None:
            self._store = {}

    def close(self) -> None:
        self._store = None

    def _entries(self) -> dict[str, tuple[Any, float | None]]:
        if self._store is None:
            raise RuntimeError("Cache is not open.")
        return self._store

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store `value`. No `ttl` keeps it until deleted; `ttl <= 0` stores nothing."""
        entries = self._entries()
        if ttl is not None and ttl <= 0:
            entries.pop(key, None)
            return
        entries[key] = (value, None if ttl is None else self.clock() + ttl)

    def get(self, key: str) -> Any:
        entries = self._entries()
        if key not in entries:
            return None
        value, expires_at = entries[key]
        if expires_at is not None and self.clock() > expires_at:
            del entries[key]
            return None
        return value

    def delete(self, key: str) -> None:
        self._entries().pop(key, None)

    def clear(self) -> None:
        self._entries().clear()
