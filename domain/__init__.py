"""Describes shared shopping list presence. Centres around the `PresenceRecord`.

Who is looking at this list right now?

- A viewer joins and gets a throwaway presence id.
- The viewer heartbeats while the list is open and leaves when it closes.
- Active is a question asked at read time. Nothing goes stale on write.

Presence is a hint for the UI. If it is a little wrong nobody gets hurt.
"""
