import datetime as dt

import pytest

from guild_ledger.core.models import Template
from guild_ledger.core.records import AARecord, GuildMember, KVMRecord
from guild_ledger.data.models import CoercedFields
from guild_ledger.errors import (
    AssemblyCardinalityError,
    InvalidTemplateError,
    UnresolvedRequiredFieldError,
    ValidationFailedError,
)
from guild_ledger.extraction.assembler import RecordAssembler

MARCH_1 = dt.date(2024, 3, 1)


def _template(module, mapping, structure=None):
    return Template.from_payload(
        {
            "name": f"{module} test",
            "module": module,
            "fieldMapping": mapping,
            "outputFormat": {"type": module, "structure": structure or {}},
        }
    )


def test_kvm_rows_become_member_data(kvm_template):
    coerced = CoercedFields(
        fields={"date": MARCH_1, "total_participants": 30},
        rows=[
            {"rank": 1, "name": "Alice", "position": "Member", "points": 1200},
            {"rank": 2, "name": "Dave", "points": 900},
            {"rank": 3, "name": " alice", "points": 5},
        ],
    )
    record = RecordAssembler().assemble(coerced, kvm_template)
    assert isinstance(record, KVMRecord)
    assert record.date == MARCH_1
    assert record.total_participants == 30
    # duplicates by normalized name keep the first entry
    assert [(m.rank, m.name, m.position) for m in record.non_participants] == [
        (1, "Alice", "Member"),
        (2, "Dave", ""),
    ]


def test_missing_required_item_field_rejects_record(kvm_template):
    coerced = CoercedFields(
        fields={"date": MARCH_1},
        rows=[{"rank": 1, "name": "Alice"}, {"name": "Dave"}],
    )
    with pytest.raises(UnresolvedRequiredFieldError) as info:
        RecordAssembler().assemble(coerced, kvm_template)
    assert info.value.field == "rank"
    assert info.value.row == 2


def test_required_item_field_with_no_rows_rejects_record(kvm_template):
    coerced = CoercedFields(fields={"date": MARCH_1, "total_participants": 30})
    with pytest.raises(UnresolvedRequiredFieldError) as info:
        RecordAssembler().assemble(coerced, kvm_template)
    assert info.value.field == "rank"
    assert info.value.row is None


def test_event_records_need_a_date():
    template = _template("aa", {"name": {"name": "Name", "type": "string"}})
    with pytest.raises(UnresolvedRequiredFieldError) as info:
        RecordAssembler().assemble(CoercedFields(rows=[{"name": "Alice"}]), template)
    assert info.value.field == "date"


def test_aa_counts_participants():
    template = _template("aa", {"date": {"name": "Date", "type": "date", "required": True}})
    coerced = CoercedFields(fields={"date": MARCH_1}, rows=[{"name": "Alice"}, {"name": "Bob"}])
    record = RecordAssembler().assemble(coerced, template)
    assert isinstance(record, AARecord)
    assert record.total_participants == 2
    assert [m.name for m in record.participants] == ["Alice", "Bob"]


def test_cardinality_bounds():
    template = _template(
        "gvg",
        {"date": {"name": "Date", "type": "date"}},
        structure={"minItems": 1, "maxItems": 2},
    )
    assembler = RecordAssembler()
    with pytest.raises(AssemblyCardinalityError) as info:
        assembler.assemble(CoercedFields(fields={"date": MARCH_1}), template)
    assert info.value.count == 0
    rows = [{"name": n} for n in ("A", "B", "C")]
    with pytest.raises(AssemblyCardinalityError):
        assembler.assemble(CoercedFields(fields={"date": MARCH_1}, rows=rows), template)
    record = assembler.assemble(CoercedFields(fields={"date": MARCH_1}, rows=rows[:2]), template)
    assert len(record.non_participants) == 2


def test_unknown_list_field_is_invalid_template():
    template = _template("aa", {}, structure={"listField": "members"})
    with pytest.raises(InvalidTemplateError):
        RecordAssembler().assemble(CoercedFields(fields={"date": MARCH_1}), template)


def test_record_level_validation_failure():
    template = _template("kvm", {"date": {"name": "Date", "type": "date"}})
    coerced = CoercedFields(fields={"date": MARCH_1}, rows=[{"name": "Alice", "points": "lots"}])
    with pytest.raises(ValidationFailedError) as info:
        RecordAssembler().assemble(coerced, template)
    assert info.value.rule == "record"
    assert "points" in info.value.field


def test_guild_template_yields_members():
    template = _template(
        "guild",
        {
            "name": {"name": "Name", "type": "string", "required": True},
            "level": {"name": "Level", "type": "number"},
        },
    )
    coerced = CoercedFields(rows=[{"name": "Alice", "level": 85, "class": "Paladin"}])
    members = RecordAssembler().assemble(coerced, template)
    assert members == [GuildMember(name="Alice", level=85, member_class="Paladin")]
