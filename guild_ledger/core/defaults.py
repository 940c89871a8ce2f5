"""Built-in templates installed into an empty template storage."""

from __future__ import annotations

import logging
from typing import Any

from .models import Template
from .storage import TemplateStorage

logger = logging.getLogger(__name__)

_DATE_RULE: dict[str, Any] = {
    "name": "event date",
    "type": "keyword_extraction",
    "config": {"keywords": ["Date"], "fields": ["date"], "transform": "date"},
}

_HEADER_RULE: dict[str, Any] = {
    "name": "skip headers",
    "type": "line_pattern",
    "config": {
        "skipConditions": [
            "re:(?i)^(?:rank|name|members?|level|class|position|points)"
            "(?:\\s+(?:rank|name|members?|level|class|position|points))*$",
        ]
    },
}


def _field(name: str, type_: str, required: bool = False, **extra: Any) -> dict[str, Any]:
    return {"name": name, "type": type_, "required": required, **extra}


DEFAULT_TEMPLATES: list[dict[str, Any]] = [
    {
        "name": "KVM ranking",
        "module": "kvm",
        "description": "Ranking screenshot listing members who missed the event.",
        "fieldMapping": {
            "date": _field("Event date", "date", required=True),
            "total_participants": _field("Total participants", "number", defaultValue=0),
            "rank": _field("Rank", "number", required=True, validation={"min": 1}),
            "name": _field("Name", "string", required=True),
            "position": _field("Position", "string"),
            "points": _field("Points", "number", defaultValue=0),
        },
        "parseRules": [
            _HEADER_RULE,
            _DATE_RULE,
            {
                "name": "participant total",
                "type": "keyword_extraction",
                "config": {
                    "keywords": ["Participants"],
                    "fields": ["total_participants"],
                    "transform": "numeric",
                },
            },
            {
                "name": "ranking rows",
                "type": "line_pattern",
                "config": {
                    "pattern": r"^(?P<rank>\d+)\s+(?P<name>.+?)\s+(?P<position>\S+)\s+(?P<points>[\d,]+)$",
                    "repeat": True,
                },
            },
        ],
        "outputFormat": {"type": "kvm"},
    },
    {
        "name": "GVG absentees",
        "module": "gvg",
        "description": "One absent member name per line.",
        "fieldMapping": {
            "date": _field("Event date", "date", required=True),
            "name": _field("Name", "string", required=True),
        },
        "parseRules": [
            _HEADER_RULE,
            _DATE_RULE,
            {
                "name": "absent names",
                "type": "line_pattern",
                "config": {
                    "pattern": r"^(?P<name>[^:：]+)$",
                    "repeat": True,
                    "transform": "clean_name",
                },
            },
        ],
        "outputFormat": {"type": "gvg"},
    },
    {
        "name": "AA attendance",
        "module": "aa",
        "description": "One attending member name per line.",
        "fieldMapping": {
            "date": _field("Event date", "date", required=True),
            "name": _field("Name", "string", required=True),
        },
        "parseRules": [
            _HEADER_RULE,
            _DATE_RULE,
            {
                "name": "attendee names",
                "type": "line_pattern",
                "config": {
                    "pattern": r"^(?P<name>[^:：]+)$",
                    "repeat": True,
                    "transform": "clean_name",
                },
            },
        ],
        "outputFormat": {"type": "aa"},
    },
    {
        "name": "Guild member list",
        "module": "guild",
        "description": "Member list rows of name, level and class.",
        "fieldMapping": {
            "name": _field("Name", "string", required=True),
            "level": _field("Level", "number", validation={"min": 1}),
            "class": _field("Class", "string"),
        },
        "parseRules": [
            _HEADER_RULE,
            {
                "name": "member rows",
                "type": "line_pattern",
                "config": {
                    "pattern": r"^(?P<name>.+?)\s+(?P<level>\d{1,3})\s+(?P<class>[A-Za-z][A-Za-z ]*)$",
                    "repeat": True,
                },
            },
        ],
        "outputFormat": {"type": "guild"},
    },
]


def install_default_templates(storage: TemplateStorage) -> list[Template]:
    """Seed one default template per module when ``storage`` is empty.

    Returns the templates that were added; nothing is added to a storage that
    already holds templates.
    """
    if storage.list():
        return []
    installed = [
        storage.add(Template.from_payload({**payload, "isDefault": True}))
        for payload in DEFAULT_TEMPLATES
    ]
    logger.info("Installed %d default template(s)", len(installed))
    return installed
