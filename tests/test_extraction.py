"""Tests for the rule-based field extraction engine."""

import pytest

from guild_ledger.core.models import Template
from guild_ledger.data.models import IMAGE_SEPARATOR, RecognizedText, TextRegion
from guild_ledger.errors import InvalidTemplateError, RuleExecutionError
from guild_ledger.extraction.engine import TRANSFORM_FAILED, FieldExtractor
from guild_ledger.extraction.transforms import TransformError, clean_name, normalize_date, numeric


def _template(rules, mapping=None, module="gvg"):
    return Template.from_payload(
        {
            "name": "test",
            "module": module,
            "fieldMapping": mapping
            or {
                "date": {"name": "Date", "type": "date"},
                "title": {"name": "Title", "type": "string"},
                "name": {"name": "Name", "type": "string"},
            },
            "parseRules": rules,
            "outputFormat": {"type": module},
        }
    )


def _extract(text, rules, **kwargs):
    return FieldExtractor().extract(RecognizedText.from_text(text), _template(rules, **kwargs))


REGEX_TITLE = {
    "name": "strict title",
    "type": "regex",
    "config": {"pattern": r"Event (?P<title>[A-Z]\w+)"},
}
KEYWORD_TITLE = {
    "name": "loose title",
    "type": "keyword_extraction",
    "config": {"keywords": ["Title"], "fields": ["title"]},
}


def test_later_applicable_rule_wins() -> None:
    result = _extract("Title: Siege", [REGEX_TITLE, KEYWORD_TITLE])
    assert result.fields["title"] == "Siege"

    # both apply: the later rule overwrites the earlier one
    result = _extract("Event Alpha\nTitle = Siege", [REGEX_TITLE, KEYWORD_TITLE])
    assert result.fields["title"] == "Siege"

    # a later rule that does not apply leaves the earlier value alone
    result = _extract("Event Alpha", [REGEX_TITLE, KEYWORD_TITLE])
    assert result.fields["title"] == "Alpha"


def test_unresolved_lists_missing_record_fields() -> None:
    result = _extract("nothing useful", [KEYWORD_TITLE])
    assert result.fields == {}
    assert result.unresolved == ["date", "title"]


def test_skip_conditions_and_repeat_rows() -> None:
    rules = [
        {
            "name": "noise",
            "type": "line_pattern",
            "config": {"skipConditions": ["Guild Ranking", "re:^\\d+/\\d+$"]},
        },
        {
            "name": "names",
            "type": "line_pattern",
            "config": {"pattern": r"^(?P<name>\S+)$", "repeat": True},
        },
    ]
    text = "Guild Ranking\n  Alice  \n\n1/2\nBob\n"
    result = _extract(text, rules)
    assert result.rows == [{"name": "Alice"}, {"name": "Bob"}]


def test_image_separator_is_never_data() -> None:
    combined = RecognizedText.combine(
        [RecognizedText.from_text("Alice"), RecognizedText(regions=[TextRegion("Bob", top=2), TextRegion("Carl", top=1)])]
    )
    assert combined.lines == ["Alice", IMAGE_SEPARATOR, "Carl", "Bob"]
    rules = [
        {
            "name": "names",
            "type": "line_pattern",
            "config": {"pattern": r"^(?P<name>.+)$", "repeat": True},
        }
    ]
    result = FieldExtractor().extract(combined, _template(rules))
    assert [row["name"] for row in result.rows] == ["Alice", "Carl", "Bob"]


def test_later_repeating_rule_replaces_rows() -> None:
    rules = [
        {
            "name": "all words",
            "type": "regex",
            "config": {"pattern": r"(?P<name>[A-Z]\w+)", "repeat": True},
        },
        {
            "name": "marked",
            "type": "line_pattern",
            "config": {"pattern": r"^\* (\w+)$", "fields": ["name"], "repeat": True},
        },
    ]
    result = _extract("Alice\n* Bob", rules)
    assert result.rows == [{"name": "Bob"}]


def test_position_based_window_and_column() -> None:
    text = "Members\nAlice 10\nBob 20\nFooter"
    rows = _extract(
        text,
        [
            {
                "name": "first column",
                "type": "position_based",
                "config": {
                    "position": {"startLine": 2, "endLine": 3, "column": 1},
                    "fields": ["name"],
                    "repeat": True,
                },
            }
        ],
    ).rows
    assert rows == [{"name": "Alice"}, {"name": "Bob"}]

    fields = _extract(
        text,
        [
            {
                "name": "heading",
                "type": "position_based",
                "config": {"position": {"startLine": 1, "endLine": 1}, "fields": ["title"]},
            }
        ],
    ).fields
    assert fields == {"title": "Members"}


def test_position_based_delimiter_cells() -> None:
    rows = _extract(
        "Alice | 10 | Paladin",
        [
            {
                "name": "cells",
                "type": "position_based",
                "config": {"delimiter": "|", "fields": ["name", "level"], "repeat": True},
            }
        ],
        mapping={
            "name": {"name": "Name", "type": "string"},
            "level": {"name": "Level", "type": "number"},
        },
        module="guild",
    ).rows
    assert rows == [{"name": "Alice", "level": "10 | Paladin"}]


def test_transform_failure_keeps_raw_value() -> None:
    rules = [
        {
            "name": "title",
            "type": "keyword_extraction",
            "config": {"keywords": ["Title"], "fields": ["title"], "transform": "numeric"},
        }
    ]
    result = _extract("Title: n/a", rules)
    assert result.fields["title"] == "n/a"
    assert [w.kind for w in result.warnings] == [TRANSFORM_FAILED]


def test_unknown_transform_invalidates_template() -> None:
    rules = [dict(KEYWORD_TITLE, config={"keywords": ["Title"], "fields": ["title"], "transform": "reverse"})]
    with pytest.raises(InvalidTemplateError, match="reverse"):
        _extract("Title: x", rules)


def test_bad_regex_aborts_before_any_field() -> None:
    rules = [KEYWORD_TITLE, {"name": "bad", "type": "regex", "config": {"pattern": "(", "fields": ["title"]}}]
    with pytest.raises(RuleExecutionError):
        _extract("Title: x", rules)


def test_keyword_count_must_match_fields() -> None:
    rules = [
        {
            "name": "pair",
            "type": "keyword_extraction",
            "config": {"keywords": ["Title", "Date"], "fields": ["title"]},
        }
    ]
    with pytest.raises(RuleExecutionError):
        _extract("Title: x", rules)


def test_transforms() -> None:
    assert numeric("l,2O0 pts") == "1200"
    assert clean_name("  ~Alice the Brave!! ") == "Alice the Brave"
    assert normalize_date("Event date 2024/03/01 (Fri)") == "2024-03-01"
    with pytest.raises(TransformError):
        normalize_date("yesterday")
    with pytest.raises(TransformError):
        numeric("n/a")


def test_keyword_matches_whole_words_only() -> None:
    rules = [
        {
            "name": "date",
            "type": "keyword_extraction",
            "config": {"keywords": ["Date"], "fields": ["date"]},
        }
    ]
    result = _extract("Updated 2024-02-28\nDate: 2024-03-01", rules)
    assert result.fields["date"] == "2024-03-01"


def test_ambiguous_date_is_a_transform_failure() -> None:
    formats = ("%d/%m/%Y", "%m/%d/%Y")
    assert normalize_date("Held on 13/04/2024", formats) == "2024-04-13"
    assert normalize_date("04/04/2024", formats) == "2024-04-04"
    with pytest.raises(TransformError, match="ambiguous"):
        normalize_date("03/04/2024", formats)
