"""
Session registry: which live connection holds which display name.

Names are compared verbatim (case-sensitive, no trimming). Iteration order is
join order, so ``snapshot()`` doubles as the participant list shown to
clients. The registry does no locking of its own; ``ChatHub`` serializes
every call.
"""

from __future__ import annotations

from typing import Optional

from .errors import NameTakenError


class SessionRegistry:
    def __init__(self):
        self._names: dict[str, str] = {}   # connection_id -> name, join order
        self._owners: dict[str, str] = {}  # name -> connection_id

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._names

    def name_of(self, connection_id: str) -> Optional[str]:
        return self._names.get(connection_id)

    def try_join(self, connection_id: str, requested_name: str) -> Optional[str]:
        """
        Claim ``requested_name`` for ``connection_id``.

        Raises NameTakenError if another connection holds the name; nothing
        changes in that case. A connection that already holds a name gives it
        up on success. Returns that previous name, or None.
        """
        owner = self._owners.get(requested_name)
        if owner is not None and owner != connection_id:
            raise NameTakenError(
                f"Username '{requested_name}' is already taken",
                name=requested_name,
            )

        previous = self.remove(connection_id)
        self._names[connection_id] = requested_name
        self._owners[requested_name] = connection_id
        return previous

    def remove(self, connection_id: str) -> Optional[str]:
        name = self._names.pop(connection_id, None)
        if name is not None:
            del self._owners[name]
        return name

    def snapshot(self) -> list[str]:
        return list(self._names.values())

    def clear(self):
        self._names.clear()
        self._owners.clear()
