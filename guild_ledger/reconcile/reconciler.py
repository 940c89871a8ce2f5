"""Classify record names against the roster and derive the other side."""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Iterable
from typing import Any

from ..core.records import EventRecord, GuildMember, normalize_name
from ..data.models import Issue, MatchedMember, ReconciledView
from ..errors import ErrorKind
from .roster import RosterAccess
from .writes import WritePort

logger = logging.getLogger(__name__)

PARTICIPATION_WINDOW = 5


class RosterReconciler:
    """Match extracted names to roster members.

    Matching is exact on the normalized name; nothing is guessed. The
    derived side of a record is recomputed on every :meth:`view` call from
    the members eligible on the record's date.
    """

    def __init__(self, roster: RosterAccess, write_port: WritePort | None = None) -> None:
        self.roster = roster
        self.write_port = write_port
        self._index: dict[str, GuildMember] = roster.by_name()
        self._unsubscribe = roster.subscribe(self._on_roster_change)

    def _on_roster_change(self, members: list[GuildMember]) -> None:
        self._index = self.roster.by_name()
        logger.debug("Roster index rebuilt with %d member(s)", len(members))

    def close(self) -> None:
        """Stop listening to roster changes."""
        self._unsubscribe()

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------
    def match(self, name: str) -> MatchedMember:
        return MatchedMember(source_name=name, matched_member=self._index.get(normalize_name(name)))

    def eligible_members(self, date: dt.date) -> list[GuildMember]:
        return [m for m in self.roster.members() if m.eligible_on(date)]

    def view(self, record: EventRecord) -> ReconciledView:
        """Build the participant/non-participant view of ``record``."""
        stored = [self.match(entry.name) for entry in record.stored_entries()]
        listed = {normalize_name(m.source_name) for m in stored}
        derived = [
            m for m in self.eligible_members(record.date) if normalize_name(m.name) not in listed
        ]
        recorded: list[MatchedMember] = []
        if record.module == "gvg":
            recorded = [self.match(entry.name) for entry in record.participants]

        issues = [
            Issue(
                kind=ErrorKind.UNMATCHED_NAME,
                field=field,
                message=f"'{m.source_name}' does not match any roster member",
            )
            for field, entries in ((record.stored_field, stored), ("participants", recorded))
            for m in entries
            if not m.matched
        ]
        if issues:
            logger.info(
                "%s record for %s has %d unmatched name(s)", record.module, record.date, len(issues)
            )
        return ReconciledView(
            module=record.module,
            date=record.date,
            stores_participants=record.stores_participants,
            stored=stored,
            derived=derived,
            recorded=recorded,
            issues=issues,
        )

    # ------------------------------------------------------------------
    # Corrections
    # ------------------------------------------------------------------
    async def correct_entry_name(
        self, record: EventRecord, index: int, new_name: str
    ) -> tuple[EventRecord, ReconciledView]:
        """Rename one stored entry of ``record`` and write the record through.

        Returns the updated record together with its re-derived view. The
        caller's ``record`` is left untouched.
        """
        if self.write_port is None:
            raise RuntimeError("RosterReconciler has no write port for corrections")
        entries = record.stored_entries()
        if not 0 <= index < len(entries):
            raise IndexError(f"{record.stored_field} has no entry #{index}")
        entries[index] = entries[index].model_copy(update={"name": new_name.strip()})
        updated = record.with_stored_entries(entries)
        await self.write_port.submit(updated)
        logger.info(
            "Corrected %s entry #%d for %s to %r",
            record.stored_field,
            index,
            record.date,
            new_name.strip(),
        )
        return updated, self.view(updated)

    async def rename_member(self, member_id: int | str, new_name: str) -> GuildMember:
        """Correct a derived entry by renaming the roster member it came from."""
        return await self.roster.rename(member_id, new_name)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    def participation(
        self, records: Iterable[EventRecord], limit: int = PARTICIPATION_WINDOW
    ) -> dict[str, dict[dt.date, bool]]:
        """Return per-member attendance over the ``limit`` most recent records.

        Members are keyed by display name. Roster members not yet eligible on a
        date are omitted for that date. Names found in records but absent from
        the roster are included with the dates they appear on.
        """
        recent = sorted(records, key=lambda r: r.date)[-limit:] if limit else []
        history: dict[str, dict[dt.date, bool]] = {}
        for record in recent:
            view = self.view(record)
            attended: list[Any] = view.participants
            absent: list[Any] = view.non_participants
            for entry in attended:
                history.setdefault(_display_name(entry), {})[record.date] = True
            for entry in absent:
                history.setdefault(_display_name(entry), {})[record.date] = False
        return history


def _display_name(entry: GuildMember | MatchedMember) -> str:
    if isinstance(entry, MatchedMember):
        return entry.matched_member.name if entry.matched_member else entry.source_name.strip()
    return entry.name
