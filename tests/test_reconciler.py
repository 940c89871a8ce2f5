"""Tests for roster access, reconciliation and ordered write-through."""

import asyncio
import datetime as dt
from typing import Any

import httpx
import pytest

from guild_ledger.adapters.base import PersistenceAdapter, RosterAdapter
from guild_ledger.adapters.json_file import JSONFileBackend
from guild_ledger.core.records import AARecord, GVGRecord, KVMRecord
from guild_ledger.data.store import RecordStore
from guild_ledger.errors import ErrorKind, StoreUnavailableError, ValidationFailedError
from guild_ledger.reconcile.reconciler import RosterReconciler
from guild_ledger.reconcile.roster import RosterAccess
from guild_ledger.reconcile.writes import WritePort

MARCH_1 = dt.date(2024, 3, 1)


def run(coro: Any) -> Any:
    """Run an async coroutine synchronously for tests."""
    return asyncio.run(coro)


class FakeRoster(RosterAdapter):
    def __init__(self, members):
        self.members = [dict(m) for m in members]
        self.renamed = []

    async def list_members(self):
        return [dict(m) for m in self.members]

    async def rename_member(self, member_id, new_name):
        for member in self.members:
            if member["id"] == member_id:
                member["name"] = new_name
        self.renamed.append((member_id, new_name))


def _reconciler(members, write_port=None) -> RosterReconciler:
    access = RosterAccess(FakeRoster(members))
    run(access.refresh())
    return RosterReconciler(access, write_port)


def _names(entries) -> list[str]:
    return [getattr(e, "source_name", None) or e.name for e in entries]


def test_derived_participants_respect_join_date() -> None:
    reconciler = _reconciler(
        [
            {"id": 1, "name": "A", "createdAt": "2024-01-01"},
            {"id": 2, "name": "B", "createdAt": "2024-06-01"},
        ]
    )
    record = KVMRecord(date="2024-03-01", non_participants=[{"name": "A"}])
    view = reconciler.view(record)
    assert view.participants == []
    assert _names(view.non_participants) == ["A"]
    assert view.issues == []


def test_matching_is_exact_after_normalisation() -> None:
    reconciler = _reconciler(
        [
            {"id": 1, "name": "Alice", "class": "Paladin"},
            {"id": 2, "name": "Bob", "class": "Sniper"},
            {"id": 3, "name": "Carol"},
        ]
    )
    record = GVGRecord(
        date=MARCH_1,
        participants=[{"name": "carol"}],
        non_participants=[{"name": "  ALICE "}, {"name": "Bobb"}],
    )
    view = reconciler.view(record)

    alice, bobb = view.stored
    assert alice.matched and alice.member_id == 1 and alice.member_class == "Paladin"
    assert not bobb.matched and bobb.member_class is None
    assert view.unmatched == ["Bobb"]
    assert [i.kind for i in view.issues] == [ErrorKind.UNMATCHED_NAME]
    # Bob is not listed by his exact name, so he stays on the derived side
    assert _names(view.participants) == ["Bob", "Carol"]
    assert view.recorded[0].member_id == 3


def test_correcting_non_participant_writes_through(tmp_path) -> None:
    store = RecordStore(JSONFileBackend(str(tmp_path / "ledger.json")), "kvm")
    port = WritePort({"kvm": store})
    reconciler = _reconciler([{"id": 1, "name": "Alice"}, {"id": 2, "name": "Bob"}], port)
    record = KVMRecord(date=MARCH_1, non_participants=[{"rank": 4, "name": "Alcie"}])
    run(store.upsert(record))

    before = reconciler.view(record)
    assert before.unmatched == ["Alcie"]
    assert _names(before.participants) == ["Alice", "Bob"]

    updated, view = run(reconciler.correct_entry_name(record, 0, " Alice "))
    assert updated.non_participants[0].name == "Alice"
    assert updated.non_participants[0].rank == 4
    assert record.non_participants[0].name == "Alcie"
    assert view.unmatched == []
    assert _names(view.participants) == ["Bob"]
    assert run(store.get(MARCH_1)).non_participants[0].name == "Alice"

    with pytest.raises(IndexError):
        run(reconciler.correct_entry_name(record, 5, "x"))


def test_correcting_derived_entry_renames_roster_member() -> None:
    adapter = FakeRoster([{"id": 1, "name": "Alice"}, {"id": 2, "name": "Bobb"}])
    access = RosterAccess(adapter)
    run(access.refresh())
    reconciler = RosterReconciler(access)
    record = AARecord(date=MARCH_1, participants=[{"name": "Bob"}])

    assert reconciler.view(record).unmatched == ["Bob"]
    assert _names(reconciler.view(record).non_participants) == ["Alice", "Bobb"]

    run(reconciler.rename_member(2, "Bob"))
    assert adapter.renamed == [(2, "Bob")]
    view = reconciler.view(record)
    assert view.unmatched == []
    assert view.stored[0].member_id == 2
    assert _names(view.non_participants) == ["Alice"]


def test_roster_subscription() -> None:
    access = RosterAccess(FakeRoster([{"id": 1, "name": "Alice"}]))
    seen: list[list[str]] = []
    unsubscribe = access.subscribe(lambda members: seen.append([m.name for m in members]))

    run(access.refresh())
    run(access.rename(1, "Alicia"))
    unsubscribe()
    run(access.refresh())

    assert seen == [["Alice"], ["Alicia"]]
    with pytest.raises(KeyError):
        run(access.rename(9, "Nobody"))


def test_independent_reconcilers_do_not_share_state() -> None:
    first = _reconciler([{"id": 1, "name": "Alice"}])
    second = _reconciler([{"id": 1, "name": "Zed"}])
    assert first.match("alice").matched
    assert not second.match("alice").matched


def test_roster_failure_is_store_unavailable() -> None:
    class DownRoster(FakeRoster):
        async def list_members(self):
            raise httpx.ConnectError("refused")

    with pytest.raises(StoreUnavailableError):
        run(RosterAccess(DownRoster([])).refresh())


def test_participation_history() -> None:
    reconciler = _reconciler(
        [
            {"id": 1, "name": "Alice", "createdAt": "2024-01-01"},
            {"id": 2, "name": "Bob", "createdAt": "2024-03-05"},
        ]
    )
    records = [
        GVGRecord(date=dt.date(2024, 3, day), non_participants=absent)
        for day, absent in (
            (1, [{"name": "Alice"}]),
            (8, []),
            (15, [{"name": "Ghost"}]),
        )
    ]
    history = reconciler.participation(records, limit=2)
    assert history == {
        "Alice": {dt.date(2024, 3, 8): True, dt.date(2024, 3, 15): True},
        "Bob": {dt.date(2024, 3, 8): True, dt.date(2024, 3, 15): True},
        "Ghost": {dt.date(2024, 3, 15): False},
    }
    assert reconciler.participation(records)["Alice"][dt.date(2024, 3, 1)] is False
    assert "Bob" not in reconciler.participation(records[:1])


class SlowStore(PersistenceAdapter):
    """Upserts finish faster the later they are submitted."""

    def __init__(self):
        self.delays = [0.03, 0.02, 0.01]
        self.completed: list[int] = []
        self.current: dict[str, Any] = {}

    async def get_dates(self, module):
        return [self.current["date"]] if self.current else []

    async def get_by_date(self, module, date):
        return self.current or None

    async def upsert(self, module, record):
        await asyncio.sleep(self.delays.pop(0))
        self.current = record
        self.completed.append(record["total_participants"])

    async def delete(self, module, date):
        return False


def test_write_port_keeps_submission_order() -> None:
    adapter = SlowStore()
    port = WritePort({"kvm": RecordStore(adapter, "kvm")})

    async def submit_all():
        await asyncio.gather(
            *(port.submit(KVMRecord(date=MARCH_1, total_participants=n)) for n in (1, 2, 3))
        )

    run(submit_all())
    assert adapter.completed == [1, 2, 3]
    assert adapter.current["total_participants"] == 3
    assert port._locks == {}


def test_unmatched_recorded_participants_are_labelled_participants() -> None:
    reconciler = _reconciler([{"id": 1, "name": "Alice"}])
    record = GVGRecord(
        date=MARCH_1,
        participants=[{"name": "Zed"}],
        non_participants=[{"name": "Yan"}],
    )
    issues = reconciler.view(record).issues
    assert [(i.field, i.message) for i in issues] == [
        ("non_participants", "'Yan' does not match any roster member"),
        ("participants", "'Zed' does not match any roster member"),
    ]


def test_correction_overlapping_gvg_participant_fails_validation(tmp_path) -> None:
    store = RecordStore(JSONFileBackend(str(tmp_path / "ledger.json")), "gvg")
    port = WritePort({"gvg": store})
    reconciler = _reconciler([{"id": 1, "name": "Alice"}], port)
    record = GVGRecord(
        date=MARCH_1,
        participants=[{"name": "Alice"}],
        non_participants=[{"name": "Alcie"}],
    )
    run(store.upsert(record))

    with pytest.raises(ValidationFailedError) as info:
        run(reconciler.correct_entry_name(record, 0, "alice"))
    assert info.value.kind == ErrorKind.VALIDATION_FAILED
    assert info.value.rule == "record"
    assert run(store.get(MARCH_1)).non_participants[0].name == "Alcie"
