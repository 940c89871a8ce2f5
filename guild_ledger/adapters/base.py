"""Collaborator interfaces the engine depends on.

Payloads crossing these interfaces are plain JSON-compatible dicts using the
dashboard's wire field names; validation into models happens on the engine
side. Implementations raise their own transport errors; callers wrap them in
:class:`~guild_ledger.errors.StoreUnavailableError`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..data.models import RecognizedText


class RecognitionAdapter(ABC):
    """Turns screenshots into recognized text. The engine never retries it."""

    @abstractmethod
    async def recognize(self, image: bytes, module: str) -> RecognizedText:
        """Return the recognized lines for ``image``."""


class RosterAdapter(ABC):
    """Source of truth for roster membership."""

    @abstractmethod
    async def list_members(self) -> list[dict[str, Any]]:
        """Return every roster member payload."""

    @abstractmethod
    async def rename_member(self, member_id: int | str, new_name: str) -> None:
        """Change the canonical name of ``member_id``."""


class PersistenceAdapter(ABC):
    """Date-keyed storage of event records, one record per module and date."""

    @abstractmethod
    async def get_dates(self, module: str) -> list[str]:
        """Return the ISO dates holding a record for ``module``."""

    @abstractmethod
    async def get_by_date(self, module: str, date: str) -> dict[str, Any] | None:
        """Return the record payload for ``date`` or ``None``."""

    @abstractmethod
    async def upsert(self, module: str, record: dict[str, Any]) -> None:
        """Store ``record`` in full, replacing any record for its date."""

    @abstractmethod
    async def delete(self, module: str, date: str) -> bool:
        """Remove the record for ``date``; return whether one existed."""
