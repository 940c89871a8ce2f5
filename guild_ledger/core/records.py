"""Roster members and the date-keyed event records (KVM, GVG, AA).

Each event module persists exactly one authoritative member list; the other
side is derived from the roster at read time by the reconciler:

* KVM and GVG store ``non_participants``; participants are derived.
* AA stores ``participants``; non-participants are derived.

GVG additionally carries an explicit ``participants`` list for wire
compatibility. It is kept verbatim but must be disjoint from
``non_participants`` by normalized name.
"""

from __future__ import annotations

import datetime as dt
from abc import abstractmethod
from typing import Any, ClassVar, Union

from pydantic import Field, ValidationError, model_validator

from ..errors import ValidationFailedError
from .models import WireModel


def normalize_name(name: str | None) -> str:
    """Return the comparison key for a member name (trimmed, case-folded)."""
    return (name or "").strip().casefold()


def validation_failure(exc: ValidationError, fallback: str) -> ValidationFailedError:
    """Report the first error of a record model's ``ValidationError``."""
    first = exc.errors()[0]
    loc = ".".join(str(part) for part in first.get("loc", ())) or fallback
    return ValidationFailedError(loc, "record", first.get("msg", str(exc)))


def day_of(value: dt.date | dt.datetime) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    return value


class PartyEntry(WireModel):
    party_id: str = Field(alias="partyId")
    is_party_leader: bool = Field(default=False, alias="isPartyLeader")


class GuildMember(WireModel):
    """Represents a roster member.

    ``created_at`` marks when the member joined the roster; members without it
    are eligible for every event date.
    """

    id: int | str | None = None
    name: str
    level: int | None = None
    member_class: str | None = Field(default=None, alias="class")
    party_dic: dict[str, PartyEntry] | None = Field(default=None, alias="partyDic")
    created_at: dt.datetime | dt.date | None = Field(default=None, alias="createdAt")
    sort: int | None = None

    def eligible_on(self, date: dt.date) -> bool:
        return self.created_at is None or day_of(self.created_at) <= date

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ----------------------------------------------------------------------
# Member rows
# ----------------------------------------------------------------------
class KVMMemberData(WireModel):
    rank: int = 0
    name: str
    position: str = ""
    points: int = 0


class GVGMemberData(WireModel):
    name: str


class AAMemberData(WireModel):
    name: str


# ----------------------------------------------------------------------
# Event records
# ----------------------------------------------------------------------
MODULE_TAGS: tuple[str, ...] = ("event_type", "activity")


class _EventRecord(WireModel):
    module: ClassVar[str]
    stored_field: ClassVar[str]
    member_type: ClassVar[type[WireModel]]
    tag_field: ClassVar[str]

    @model_validator(mode="before")
    @classmethod
    def _tagged_for_module(cls, data: Any) -> Any:
        """Reject payloads whose event tag names another module."""
        if not isinstance(data, dict):
            return data
        expected = cls.model_fields[cls.tag_field].default
        for key in MODULE_TAGS:
            if key in data and (key != cls.tag_field or data[key] != expected):
                raise ValueError(
                    f"{key}={data[key]!r} does not belong to {cls.module} records"
                )
        return data

    @property
    def stores_participants(self) -> bool:
        return self.stored_field == "participants"

    def stored_entries(self) -> list[Any]:
        return list(getattr(self, self.stored_field))

    def with_stored_entries(self, entries: list[Any]) -> _EventRecord:
        """Return a validated copy whose stored list is replaced by ``entries``."""
        payload = self.to_payload()
        payload[self.stored_field] = [
            e.model_dump(mode="json", by_alias=True) if isinstance(e, WireModel) else e
            for e in entries
        ]
        try:
            return type(self).model_validate(payload)
        except ValidationError as exc:
            raise validation_failure(exc, self.stored_field) from exc

    @abstractmethod
    def participant_count(self) -> int:
        """Number of members who took part."""

    @abstractmethod
    def non_participant_count(self) -> int:
        """Number of members recorded as absent."""

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class KVMRecord(_EventRecord):
    module: ClassVar[str] = "kvm"
    stored_field: ClassVar[str] = "non_participants"
    member_type: ClassVar[type[WireModel]] = KVMMemberData
    tag_field: ClassVar[str] = "event_type"

    event_type: str = "KVM"
    date: dt.date
    total_participants: int = 0
    non_participants: list[KVMMemberData] = Field(default_factory=list)

    def participant_count(self) -> int:
        return self.total_participants

    def non_participant_count(self) -> int:
        return len(self.non_participants)


class GVGRecord(_EventRecord):
    module: ClassVar[str] = "gvg"
    stored_field: ClassVar[str] = "non_participants"
    member_type: ClassVar[type[WireModel]] = GVGMemberData
    tag_field: ClassVar[str] = "event_type"

    date: dt.date
    event_type: str = "GVG"
    participants: list[GVGMemberData] = Field(default_factory=list)
    non_participants: list[GVGMemberData] = Field(default_factory=list)

    @model_validator(mode="after")
    def _lists_disjoint(self) -> GVGRecord:
        absent = {normalize_name(m.name) for m in self.non_participants}
        overlap = sorted(
            {m.name.strip() for m in self.participants if normalize_name(m.name) in absent}
        )
        if overlap:
            raise ValueError(
                "participants and non_participants overlap: " + ", ".join(overlap)
            )
        return self

    def participant_count(self) -> int:
        return len(self.participants)

    def non_participant_count(self) -> int:
        return len(self.non_participants)


class AARecord(_EventRecord):
    module: ClassVar[str] = "aa"
    stored_field: ClassVar[str] = "participants"
    member_type: ClassVar[type[WireModel]] = AAMemberData
    tag_field: ClassVar[str] = "activity"

    activity: str = "AA"
    date: dt.date
    total_participants: int = 0
    participants: list[AAMemberData] = Field(default_factory=list)

    def participant_count(self) -> int:
        return len(self.participants)

    def non_participant_count(self) -> int:
        return 0


EventRecord = Union[KVMRecord, GVGRecord, AARecord]

RECORD_TYPES: dict[str, type[_EventRecord]] = {
    "kvm": KVMRecord,
    "gvg": GVGRecord,
    "aa": AARecord,
}


def record_type(module: str) -> type[_EventRecord]:
    try:
        return RECORD_TYPES[module]
    except KeyError:
        raise ValueError(f"'{module}' is not an event module") from None
