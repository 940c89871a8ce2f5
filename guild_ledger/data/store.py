"""Date-keyed record store for one event module."""

from __future__ import annotations

import datetime as dt
import json
import logging
from collections.abc import Awaitable, Iterable
from typing import Any, TypeVar

import httpx
from pydantic import ValidationError

from ..adapters.base import PersistenceAdapter
from ..core.records import EventRecord, record_type
from ..errors import ErrorKind, LedgerError, StoreUnavailableError, ValidationFailedError
from .models import ImportOutcome, RecordStatistics

logger = logging.getLogger(__name__)

T = TypeVar("T")

# failures of a collaborator call, as opposed to defects in our own code
COLLABORATOR_ERRORS = (httpx.HTTPError, OSError, json.JSONDecodeError)


def _as_date(value: dt.date | str) -> dt.date:
    return value if isinstance(value, dt.date) else dt.date.fromisoformat(str(value))


async def call_collaborator(operation: str, call: Awaitable[T]) -> T:
    """Await ``call``, re-raising collaborator failures as ``StoreUnavailableError``."""
    try:
        return await call
    except COLLABORATOR_ERRORS as exc:
        logger.error("%s failed: %s", operation, exc)
        raise StoreUnavailableError(operation, str(exc) or type(exc).__name__) from exc


class RecordStore:
    """Persist event records of ``module`` keyed by calendar day.

    ``upsert`` always replaces the whole record for a date; there is no
    field-level merge. Statistics are recomputed from the collaborator on every
    call so they always reflect the latest upserts and deletes.
    """

    def __init__(self, adapter: PersistenceAdapter, module: str) -> None:
        self.adapter = adapter
        self.module = module
        self.record_cls = record_type(module)

    # ------------------------------------------------------------------
    def parse(self, record: EventRecord | dict[str, Any]) -> EventRecord:
        """Validate ``record`` as this store's record type."""
        if isinstance(record, self.record_cls):
            return record
        if isinstance(record, dict):
            return self.record_cls.model_validate(record)
        raise ValidationFailedError(
            "record", "module", f"{type(record).__name__} is not a {self.module} record"
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def upsert(self, record: EventRecord | dict[str, Any]) -> EventRecord:
        parsed = self.parse(record)
        await call_collaborator(
            f"upsert {self.module} {parsed.date}",
            self.adapter.upsert(self.module, parsed.to_payload()),
        )
        logger.info("Stored %s record for %s", self.module, parsed.date)
        return parsed

    async def bulk_import(
        self, records: Iterable[EventRecord | dict[str, Any]]
    ) -> list[ImportOutcome]:
        """Upsert each record independently, in the given order.

        One record failing validation or storage does not stop the others;
        the outcome list reports each record's result by position.
        """
        outcomes: list[ImportOutcome] = []
        for index, item in enumerate(records):
            outcome = ImportOutcome(index=index)
            try:
                stored = await self.upsert(item)
                outcome.date = stored.date
            except ValidationError as exc:
                outcome.ok = False
                outcome.error_kind = ErrorKind.VALIDATION_FAILED
                outcome.message = str(exc)
            except LedgerError as exc:
                outcome.ok = False
                outcome.error_kind = exc.kind
                outcome.message = exc.message
            if not outcome.ok:
                logger.warning("Import of %s record #%d failed: %s", self.module, index, outcome.message)
            outcomes.append(outcome)
        imported = sum(1 for o in outcomes if o.ok)
        logger.info("Imported %d/%d %s record(s)", imported, len(outcomes), self.module)
        return outcomes

    async def delete(self, date: dt.date | str) -> bool:
        key = _as_date(date).isoformat()
        deleted = await call_collaborator(
            f"delete {self.module} {key}", self.adapter.delete(self.module, key)
        )
        if deleted:
            logger.info("Deleted %s record for %s", self.module, key)
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def dates(self) -> list[dt.date]:
        raw = await call_collaborator(
            f"list {self.module} dates", self.adapter.get_dates(self.module)
        )
        return sorted({_as_date(d) for d in raw})

    async def get(self, date: dt.date | str) -> EventRecord | None:
        key = _as_date(date).isoformat()
        payload = await call_collaborator(
            f"read {self.module} {key}", self.adapter.get_by_date(self.module, key)
        )
        return self.parse(payload) if payload is not None else None

    async def records(self) -> list[EventRecord]:
        found = [await self.get(d) for d in await self.dates()]
        return [r for r in found if r is not None]

    async def range(self, start: dt.date | str, end: dt.date | str) -> list[EventRecord]:
        """Return records dated within ``start``..``end`` inclusive, in date order."""
        low, high = sorted((_as_date(start), _as_date(end)))
        found = [await self.get(d) for d in await self.dates() if low <= d <= high]
        return [r for r in found if r is not None]

    async def statistics(self) -> RecordStatistics:
        records = await self.records()
        if not records:
            return RecordStatistics()
        participants = sum(r.participant_count() for r in records)
        return RecordStatistics(
            total_records=len(records),
            total_participants=participants,
            total_non_participants=sum(r.non_participant_count() for r in records),
            average_participants=round(participants / len(records), 2),
            date_range=(records[0].date, records[-1].date),
        )

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------
    async def export_text(self) -> str:
        """Serialise every record as a JSON array in date order."""
        payloads = [r.to_payload() for r in await self.records()]
        return json.dumps(payloads, indent=2, ensure_ascii=False)

    async def import_text(self, text: str) -> list[ImportOutcome]:
        try:
            payloads = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValidationFailedError("document", "format", f"not valid JSON: {exc}") from exc
        if not isinstance(payloads, list):
            raise ValidationFailedError("document", "format", "expected a JSON array of records")
        return await self.bulk_import(payloads)
