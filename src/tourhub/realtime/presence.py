"""Process-local registry of connected users."""
from __future__ import annotations

# Sent by clients that connect before their session has loaded.
PLACEHOLDER_USER_ID = "undefined"


def is_addressable(user_id: str | None) -> bool:
    """Return True if ``user_id`` can be registered for presence."""
    return bool(user_id) and user_id != PLACEHOLDER_USER_ID


class PresenceRegistry:
    """Bidirectional ``user_id <-> sid`` map for one server process.

    Only the gateway's connection handlers mutate the registry. The process
    runs a single event loop, so no locking is needed.
    """

    def __init__(self) -> None:
        self._sid_by_user: dict[str, str] = {}
        self._user_by_sid: dict[str, str] = {}

    def register(self, user_id: str | None, sid: str) -> bool:
        """Map ``user_id`` to ``sid``; returns False for unaddressable identities."""
        if user_id is None or not is_addressable(user_id):
            return False

        previous_sid = self._sid_by_user.get(user_id)
        if previous_sid is not None and previous_sid != sid:
            self._user_by_sid.pop(previous_sid, None)

        previous_user = self._user_by_sid.get(sid)
        if previous_user is not None and previous_user != user_id:
            self._sid_by_user.pop(previous_user, None)

        self._sid_by_user[user_id] = sid
        self._user_by_sid[sid] = user_id
        return True

    def unregister(self, sid: str) -> str | None:
        """Remove the entry held by ``sid`` and return the user that went offline."""
        user_id = self._user_by_sid.pop(sid, None)
        if user_id is None:
            return None
        if self._sid_by_user.get(user_id) == sid:
            del self._sid_by_user[user_id]
        return user_id

    def lookup(self, user_id: str) -> str | None:
        """Return the connection handle for ``user_id`` on this process."""
        return self._sid_by_user.get(user_id)

    def is_online(self, user_id: str) -> bool:
        return user_id in self._sid_by_user

    def list_all(self) -> set[str]:
        """Return the identities currently connected to this process."""
        return set(self._sid_by_user)

    def clear(self) -> None:
        self._sid_by_user.clear()
        self._user_by_sid.clear()

    def __len__(self) -> int:
        return len(self._sid_by_user)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._sid_by_user
