"""Single-file JSON backend for the roster and the event records."""

from __future__ import annotations

import json
import os
from typing import Any

from .base import PersistenceAdapter, RosterAdapter


class JSONFileBackend(RosterAdapter, PersistenceAdapter):
    """Simple JSON based persistence layer.

    The whole state lives in memory and is written to ``path`` on every
    mutation, so each upsert is one atomic file replacement.
    """

    def __init__(self, path: str = "guild_ledger_data.json") -> None:
        self.path = path
        self.members: list[dict[str, Any]] = []
        self.records: dict[str, dict[str, dict[str, Any]]] = {}
        self._load()

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------
    def _load(self) -> None:
        """Load store contents from ``self.path`` if it exists."""
        if not os.path.exists(self.path):
            return

        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)

        self.members = list(data.get("members", []))
        # records are keyed module -> ISO date -> payload
        self.records = {
            module: dict(by_date) for module, by_date in data.get("records", {}).items()
        }

    def _to_dict(self) -> dict:
        """Serialise the current state to a JSON-serialisable dict."""
        return {
            "members": self.members,
            "records": {
                module: dict(sorted(by_date.items()))
                for module, by_date in sorted(self.records.items())
            },
        }

    def save(self) -> None:
        """Persist the current state atomically."""
        tmp = self.path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(self._to_dict(), f, indent=2, ensure_ascii=False)
        os.replace(tmp, self.path)

    # ------------------------------------------------------------------
    # Roster operations
    # ------------------------------------------------------------------
    def add_member(self, member: dict[str, Any]) -> dict[str, Any]:
        """Append ``member`` assigning the next integer id when it has none."""
        payload = dict(member)
        if payload.get("id") is None:
            ids = [m["id"] for m in self.members if isinstance(m.get("id"), int)]
            payload["id"] = max(ids, default=0) + 1
        self.members.append(payload)
        self.save()
        return payload

    async def list_members(self) -> list[dict[str, Any]]:
        return [dict(m) for m in self.members]

    async def rename_member(self, member_id: int | str, new_name: str) -> None:
        for member in self.members:
            if str(member.get("id")) == str(member_id):
                member["name"] = new_name
                self.save()
                return
        raise KeyError(f"No roster member with id {member_id}")

    # ------------------------------------------------------------------
    # Record operations
    # ------------------------------------------------------------------
    async def get_dates(self, module: str) -> list[str]:
        return sorted(self.records.get(module, {}))

    async def get_by_date(self, module: str, date: str) -> dict[str, Any] | None:
        record = self.records.get(module, {}).get(date)
        return dict(record) if record is not None else None

    async def upsert(self, module: str, record: dict[str, Any]) -> None:
        self.records.setdefault(module, {})[str(record["date"])] = record
        self.save()

    async def delete(self, module: str, date: str) -> bool:
        by_date = self.records.get(module, {})
        if date not in by_date:
            return False
        del by_date[date]
        self.save()
        return True
