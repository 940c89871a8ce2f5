"""Injected access to the guild roster with change notification."""

from __future__ import annotations

import logging
from collections.abc import Callable

from ..adapters.base import RosterAdapter
from ..core.records import GuildMember, normalize_name
from ..data.store import call_collaborator

logger = logging.getLogger(__name__)

RosterListener = Callable[[list[GuildMember]], None]


class RosterAccess:
    """Hold the current roster snapshot and notify subscribers when it changes.

    Each instance is independent; views that need their own roster state
    create their own ``RosterAccess`` over the same collaborator.
    """

    def __init__(self, adapter: RosterAdapter) -> None:
        self.adapter = adapter
        self._members: list[GuildMember] = []
        self._listeners: list[RosterListener] = []

    # ------------------------------------------------------------------
    def members(self) -> list[GuildMember]:
        return list(self._members)

    def by_name(self) -> dict[str, GuildMember]:
        """Map normalized name to member; the first member wins on collisions."""
        index: dict[str, GuildMember] = {}
        for member in self._members:
            index.setdefault(normalize_name(member.name), member)
        return index

    def get(self, member_id: int | str) -> GuildMember | None:
        for member in self._members:
            if str(member.id) == str(member_id):
                return member
        return None

    # ------------------------------------------------------------------
    def subscribe(self, listener: RosterListener) -> Callable[[], None]:
        """Register ``listener`` and return a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        snapshot = self.members()
        for listener in list(self._listeners):
            listener(snapshot)

    # ------------------------------------------------------------------
    async def refresh(self) -> list[GuildMember]:
        payloads = await call_collaborator("list roster members", self.adapter.list_members())
        self._members = [GuildMember.model_validate(p) for p in payloads]
        logger.info("Loaded %d roster member(s)", len(self._members))
        self._publish()
        return self.members()

    async def rename(self, member_id: int | str, new_name: str) -> GuildMember:
        """Rename a roster member through the collaborator, then update locally."""
        current = self.get(member_id)
        if current is None:
            raise KeyError(f"No roster member with id {member_id}")
        new_name = new_name.strip()
        await call_collaborator(
            f"rename member {member_id}", self.adapter.rename_member(member_id, new_name)
        )
        renamed = current.model_copy(update={"name": new_name})
        self._members = [renamed if m is current else m for m in self._members]
        logger.info("Renamed member %s: %r -> %r", member_id, current.name, new_name)
        self._publish()
        return renamed
