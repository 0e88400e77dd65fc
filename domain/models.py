from datetime import datetime, timedelta


class PresenceRecord:
    def __init__(
        self,
        *,
        list_id: str,
        presence_id: str,
        user_id: str | None,
        display_name: str | None,
        last_seen: datetime,
    ) -> None:
        self.list_id = list_id
        self.presence_id = presence_id
        self.user_id = user_id
        self.display_name = display_name
        self.last_seen = last_seen

    def __repr__(self) -> str:
        return f"<PresenceRecord(list_id={self.list_id}, presence_id={self.presence_id})>"

    def is_active(self, *, now: datetime, window: timedelta) -> bool:
        # A record seen exactly at the cutoff is already stale.
        return self.last_seen > now - window

    def to_dict(self) -> dict[str, str | None]:
        return {
            "listId": self.list_id,
            "presenceId": self.presence_id,
            "userId": self.user_id,
            "displayName": self.display_name,
            "lastSeen": self.last_seen.isoformat(),
        }
