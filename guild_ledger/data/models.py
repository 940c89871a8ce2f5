from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Optional

from ..core.records import GuildMember
from ..errors import ErrorKind

IMAGE_SEPARATOR = "---image separator---"


@dataclass
class TextRegion:
    text: str
    left: float = 0.0
    top: float = 0.0
    width: float = 0.0
    height: float = 0.0


@dataclass
class RecognizedText:
    """Output of the recognition collaborator: ordered lines and/or regions."""

    lines: list[str] = field(default_factory=list)
    regions: list[TextRegion] = field(default_factory=list)

    @classmethod
    def from_text(cls, text: str) -> RecognizedText:
        return cls(lines=text.splitlines())

    @classmethod
    def combine(cls, parts: list[RecognizedText]) -> RecognizedText:
        """Merge multi-screenshot output, separated the way the uploader does."""
        lines: list[str] = []
        for i, part in enumerate(parts):
            if i:
                lines.append(IMAGE_SEPARATOR)
            lines.extend(part.ordered_lines())
        return cls(lines=lines)

    def ordered_lines(self) -> list[str]:
        if self.lines:
            return list(self.lines)
        # regions are read top-to-bottom, then left-to-right
        ordered = sorted(self.regions, key=lambda r: (r.top, r.left))
        return [r.text for r in ordered]

    @property
    def text(self) -> str:
        return "\n".join(self.ordered_lines())


@dataclass
class Issue:
    """A non-fatal condition reported alongside a result."""

    kind: ErrorKind | str
    field: str
    message: str


@dataclass
class ExtractionResult:
    fields: dict[str, str] = field(default_factory=dict)
    rows: list[dict[str, str]] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)
    warnings: list[Issue] = field(default_factory=list)


@dataclass
class CoercedFields:
    fields: dict[str, Any] = field(default_factory=dict)
    rows: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[Issue] = field(default_factory=list)


@dataclass
class MatchedMember:
    source_name: str
    matched_member: Optional[GuildMember] = None

    @property
    def matched(self) -> bool:
        return self.matched_member is not None

    @property
    def member_id(self) -> int | str | None:
        return self.matched_member.id if self.matched_member else None

    @property
    def member_class(self) -> str | None:
        return self.matched_member.member_class if self.matched_member else None


@dataclass
class ReconciledView:
    """Participant/non-participant view of one record against the roster.

    ``stored`` pairs each entry of the record's authoritative list with its
    roster match; ``derived`` is the other side, recomputed from the members
    eligible on ``date``. ``recorded`` holds the explicit GVG participant list.
    """

    module: str
    date: dt.date
    stores_participants: bool
    stored: list[MatchedMember] = field(default_factory=list)
    derived: list[GuildMember] = field(default_factory=list)
    recorded: list[MatchedMember] = field(default_factory=list)
    issues: list[Issue] = field(default_factory=list)

    @property
    def participants(self) -> list[Any]:
        return self.stored if self.stores_participants else self.derived

    @property
    def non_participants(self) -> list[Any]:
        return self.derived if self.stores_participants else self.stored

    @property
    def unmatched(self) -> list[str]:
        return [m.source_name for m in self.stored + self.recorded if not m.matched]


@dataclass
class ImportOutcome:
    index: int
    date: Optional[dt.date] = None
    ok: bool = True
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    warnings: list[Issue] = field(default_factory=list)


@dataclass
class RecordStatistics:
    total_records: int = 0
    total_participants: int = 0
    total_non_participants: int = 0
    average_participants: float = 0.0
    date_range: Optional[tuple[dt.date, dt.date]] = None


@dataclass
class AssembledRecord:
    """A record produced from recognized text with its non-fatal warnings."""

    record: Any
    template_id: str
    warnings: list[Issue] = field(default_factory=list)
