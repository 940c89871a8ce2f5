"""Type coercion and validation of raw extracted values.

Coercion converts each resolved raw value to its declared :class:`FieldConfig`
type; validation then checks every constraint of the field's
:class:`ValidationRule`. Failures on required fields raise. Failures on
optional fields clear the value to its default and add a warning.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from typing import Any

from ..config import DEFAULT_DATE_FORMATS
from ..core.models import FieldConfig, Template, compile_pattern
from ..data.models import CoercedFields, ExtractionResult, Issue
from ..errors import TypeCoercionError, ValidationFailedError
from .transforms import TransformError, parse_calendar_date

logger = logging.getLogger(__name__)

TRUTHY = frozenset({"true", "yes", "y", "1", "on"})
FALSY = frozenset({"false", "no", "n", "0", "off"})

_NUMBER = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)")
_GROUPING = re.compile(r"[,_\s]")


class FieldCoercer:
    def __init__(self, date_formats: Sequence[str] = DEFAULT_DATE_FORMATS) -> None:
        self.date_formats = tuple(date_formats)

    # ------------------------------------------------------------------
    # Single values
    # ------------------------------------------------------------------
    def coerce(self, key: str, raw: Any, field_type: str) -> Any:
        """Convert ``raw`` to ``field_type`` or raise :class:`TypeCoercionError`."""
        if field_type == "string":
            return raw if isinstance(raw, str) else str(raw)
        if field_type == "number":
            return self._number(key, raw)
        if field_type == "boolean":
            return self._boolean(key, raw)
        if field_type == "date":
            return self._date(key, raw)
        raise TypeCoercionError(key, raw, field_type)

    def _number(self, key: str, raw: Any) -> int | float:
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            if isinstance(raw, float) and not math.isfinite(raw):
                raise TypeCoercionError(key, raw, "number")
            return raw
        text = _GROUPING.sub("", str(raw))
        if not _NUMBER.fullmatch(text):
            raise TypeCoercionError(key, raw, "number")
        return float(text) if "." in text else int(text)

    def _boolean(self, key: str, raw: Any) -> bool:
        if isinstance(raw, bool):
            return raw
        token = str(raw).strip().lower()
        if token in TRUTHY:
            return True
        if token in FALSY:
            return False
        raise TypeCoercionError(key, raw, "boolean")

    def _date(self, key: str, raw: Any) -> date:
        if isinstance(raw, datetime):
            return raw.date()
        if isinstance(raw, date):
            return raw
        try:
            return parse_calendar_date(str(raw).strip(), self.date_formats)
        except TransformError as exc:
            raise TypeCoercionError(key, raw, "date") from exc

    def validate(self, key: str, value: Any, config: FieldConfig) -> None:
        """Check every constraint present on ``config.validation``."""
        rule = config.validation
        if rule is None:
            return
        measure: float | None = None
        if config.type == "number":
            measure = value
        elif config.type == "string":
            measure = len(value)
        if measure is not None:
            if rule.min is not None and measure < rule.min:
                raise ValidationFailedError(key, "min", f"{measure} is below {rule.min:g}")
            if rule.max is not None and measure > rule.max:
                raise ValidationFailedError(key, "max", f"{measure} is above {rule.max:g}")
        if rule.pattern is not None and isinstance(value, str):
            if not compile_pattern(f"validation:{key}", rule.pattern).fullmatch(value):
                raise ValidationFailedError(
                    key, "pattern", f"{value!r} does not match {rule.pattern!r}"
                )
        if rule.enum is not None and str(value) not in rule.enum:
            raise ValidationFailedError(
                key, "enum", f"{value!r} is not one of {', '.join(rule.enum)}"
            )

    def _checked(
        self, key: str, raw: Any, config: FieldConfig, warnings: list[Issue]
    ) -> tuple[bool, Any]:
        try:
            value = self.coerce(key, raw, config.type)
            self.validate(key, value, config)
        except (TypeCoercionError, ValidationFailedError) as exc:
            if config.required:
                raise
            logger.warning("Clearing optional field %s: %s", key, exc)
            warnings.append(Issue(exc.kind, key, exc.message))
            return config.default_value is not None, config.default_value
        return True, value

    # ------------------------------------------------------------------
    # Whole extraction results
    # ------------------------------------------------------------------
    def coerce_fields(
        self,
        extraction: ExtractionResult,
        template: Template,
        overrides: Mapping[str, Any] | None = None,
    ) -> CoercedFields:
        """Coerce record-level fields and every repeated row.

        ``overrides`` supply values the caller knows better than the
        recognition output, such as the event date chosen by the operator.
        Required fields that stay unresolved are left out; the assembler
        rejects the record for them.
        """
        mapping = template.field_mapping
        item_fields = template.output_format.resolved_structure().item_fields or []
        raw_fields: dict[str, Any] = {**extraction.fields, **(overrides or {})}
        result = CoercedFields(warnings=list(extraction.warnings))

        for key, config in mapping.items():
            if key in item_fields:
                continue
            if key in raw_fields:
                present, value = self._checked(key, raw_fields[key], config, result.warnings)
            else:
                present, value = config.default_value is not None, config.default_value
            if present:
                result.fields[key] = value

        for row in extraction.rows:
            coerced: dict[str, Any] = {}
            for key in item_fields:
                config = mapping.get(key)
                if config is None:
                    if key in row:
                        coerced[key] = row[key]
                    continue
                if key in row:
                    present, value = self._checked(key, row[key], config, result.warnings)
                else:
                    present, value = config.default_value is not None, config.default_value
                if present:
                    coerced[key] = value
            result.rows.append(coerced)
        return result
