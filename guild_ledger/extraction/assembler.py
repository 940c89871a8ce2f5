"""Assemble coerced fields into module-specific record shapes."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from ..core.models import Template
from ..core.records import (
    EventRecord,
    GuildMember,
    normalize_name,
    record_type,
    validation_failure,
)
from ..data.models import CoercedFields
from ..errors import (
    AssemblyCardinalityError,
    InvalidTemplateError,
    UnresolvedRequiredFieldError,
)

logger = logging.getLogger(__name__)

LIST_FIELDS: dict[str, tuple[str, ...]] = {
    "kvm": ("non_participants",),
    "gvg": ("non_participants", "participants"),
    "aa": ("participants",),
    "guild": ("members",),
}


def _dedupe(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    seen: set[str] = set()
    unique = []
    for row in rows:
        key = normalize_name(str(row["name"]))
        if key in seen:
            logger.debug("Dropping duplicate entry %r", row["name"])
            continue
        seen.add(key)
        unique.append(row)
    return unique


class RecordAssembler:
    def assemble(
        self, coerced: CoercedFields, template: Template
    ) -> EventRecord | list[GuildMember]:
        """Build the record described by ``template.output_format``.

        Returns a dated event record for ``kvm``/``gvg``/``aa`` templates and a
        list of roster members for ``guild`` templates. Nothing is returned
        partially: any failure raises before a record exists.
        """
        structure = template.output_format.resolved_structure()
        module = template.module
        list_field = structure.list_field or ""
        item_fields = structure.item_fields or []
        if list_field not in LIST_FIELDS[module]:
            raise InvalidTemplateError(
                template.name, f"'{list_field}' is not a member list of {module} records"
            )

        for key, config in template.field_mapping.items():
            if key in item_fields:
                continue
            if config.required and key not in coerced.fields:
                raise UnresolvedRequiredFieldError(key)

        required_items = {
            key
            for key in item_fields
            if key in template.field_mapping and template.field_mapping[key].required
        }
        if required_items and not coerced.rows:
            first = next(k for k in item_fields if k in required_items)
            raise UnresolvedRequiredFieldError(first)
        required_items.add("name")
        for index, row in enumerate(coerced.rows, start=1):
            for key in sorted(required_items):
                if key not in row:
                    raise UnresolvedRequiredFieldError(key, row=index)

        rows = _dedupe(coerced.rows)
        count = len(rows)
        if structure.min_items is not None and count < structure.min_items:
            raise AssemblyCardinalityError(
                list_field, count, f"at least {structure.min_items} required"
            )
        if structure.max_items is not None and count > structure.max_items:
            raise AssemblyCardinalityError(
                list_field, count, f"at most {structure.max_items} allowed"
            )

        if module == "guild":
            try:
                return [GuildMember.model_validate(row) for row in rows]
            except ValidationError as exc:
                raise validation_failure(exc, list_field) from exc

        if "date" not in coerced.fields:
            raise UnresolvedRequiredFieldError("date")
        record_cls = record_type(module)
        payload = {k: v for k, v in coerced.fields.items() if k in record_cls.model_fields}
        payload[list_field] = [
            {k: v for k, v in row.items() if k in item_fields} for row in rows
        ]
        if module == "aa":
            payload.setdefault("total_participants", count)
        try:
            record = record_cls.model_validate(payload)
        except ValidationError as exc:
            raise validation_failure(exc, list_field) from exc
        logger.debug("Assembled %s record for %s with %d entries", module, record.date, count)
        return record
