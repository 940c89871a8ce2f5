"""Test configuration for ensuring package imports and shared fixtures."""

import os
import sys

import pytest

# Add the repository root (the directory containing this file) to ``sys.path``
# if it is not already present.
ROOT_DIR = os.path.abspath(os.path.dirname(__file__))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from guild_ledger.adapters.json_file import JSONFileBackend  # noqa: E402
from guild_ledger.core.models import Template  # noqa: E402


@pytest.fixture
def backend(tmp_path):
    """JSON file backend seeded with a small roster."""
    store = JSONFileBackend(path=str(tmp_path / "ledger.json"))
    store.add_member({"name": "Alice", "class": "Paladin", "createdAt": "2024-01-01"})
    store.add_member({"name": "Bob", "class": "Sniper", "createdAt": "2024-06-01"})
    store.add_member({"name": "Carol", "class": "High Priest"})
    return store


@pytest.fixture
def kvm_template():
    """KVM template with one strict and one loose ranking row rule."""
    return Template.from_payload(
        {
            "name": "KVM test",
            "module": "kvm",
            "fieldMapping": {
                "date": {"name": "Date", "type": "date", "required": True},
                "total_participants": {"name": "Total", "type": "number", "defaultValue": 0},
                "rank": {"name": "Rank", "type": "number", "required": True},
                "name": {"name": "Name", "type": "string", "required": True},
                "position": {"name": "Position", "type": "string"},
                "points": {"name": "Points", "type": "number", "defaultValue": 0},
            },
            "parseRules": [
                {
                    "name": "header",
                    "type": "line_pattern",
                    "config": {"skipConditions": ["Ranking Board"]},
                },
                {
                    "name": "date",
                    "type": "keyword_extraction",
                    "config": {"keywords": ["Date"], "fields": ["date"], "transform": "date"},
                },
                {
                    "name": "total",
                    "type": "keyword_extraction",
                    "config": {
                        "keywords": ["Participants"],
                        "fields": ["total_participants"],
                        "transform": "numeric",
                    },
                },
                {
                    "name": "rows",
                    "type": "line_pattern",
                    "config": {
                        "pattern": r"^(?P<rank>\d+)\s+(?P<name>.+?)\s+(?P<position>\S+)\s+(?P<points>[\d,]+)$",
                        "repeat": True,
                    },
                },
            ],
            "outputFormat": {"type": "kvm"},
        }
    )


KVM_TEXT = """Ranking Board
Date: 2024-03-01
Participants: 3O
1 Alice Member 1,200
2 Dave Officer 900
"""


@pytest.fixture
def kvm_text():
    return KVM_TEXT
