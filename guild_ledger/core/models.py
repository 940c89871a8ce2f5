"""Template model describing how recognized text maps onto record fields.

The models are implemented using :mod:`pydantic` so that templates coming
from the settings screens (camelCase JSON) and templates built in code
(snake_case keyword arguments) validate the same way. Parse rules form a
tagged union on ``type``; each variant carries only the configuration its
extraction strategy needs.

The model itself has no extraction behaviour. :meth:`Template.check_well_formed`
performs the structural checks that must pass before any rule executes.
"""

from __future__ import annotations

import re
import uuid
from datetime import UTC, datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import InvalidTemplateError, RuleExecutionError

Module = Literal["kvm", "gvg", "aa", "guild"]
FieldType = Literal["string", "number", "date", "boolean"]

EVENT_MODULES: tuple[str, ...] = ("kvm", "gvg", "aa")
REGEX_SKIP_PREFIX = "re:"


def _now() -> datetime:
    return datetime.now(tz=UTC)


class WireModel(BaseModel):
    """Base model accepting both wire (camelCase) and attribute names."""

    model_config = ConfigDict(populate_by_name=True)


class ValidationRule(WireModel):
    min: float | None = None
    max: float | None = None
    pattern: str | None = None
    enum: list[str] | None = None


class FieldConfig(WireModel):
    name: str
    type: FieldType
    required: bool = False
    default_value: Any = Field(default=None, alias="defaultValue")
    validation: ValidationRule | None = None


# ----------------------------------------------------------------------
# Parse rules
# ----------------------------------------------------------------------
class Position(WireModel):
    """1-based inclusive line window plus optional 1-based column."""

    start_line: int | None = Field(default=None, alias="startLine", ge=1)
    end_line: int | None = Field(default=None, alias="endLine", ge=1)
    column: int | None = Field(default=None, ge=1)


class RuleConfig(WireModel):
    skip_conditions: list[str] = Field(default_factory=list, alias="skipConditions")
    transform: str | None = None
    fields: list[str] = Field(default_factory=list)


class LinePatternConfig(RuleConfig):
    pattern: str | None = None
    repeat: bool = False


class KeywordExtractionConfig(RuleConfig):
    keywords: list[str] = Field(min_length=1)


class PositionBasedConfig(RuleConfig):
    position: Position = Field(default_factory=Position)
    delimiter: str | None = None
    repeat: bool = False


class RegexConfig(RuleConfig):
    pattern: str
    repeat: bool = False


def compile_pattern(rule: str, pattern: str) -> re.Pattern[str]:
    """Compile ``pattern`` or raise :class:`RuleExecutionError` naming ``rule``."""
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise RuleExecutionError(rule, f"pattern {pattern!r} does not compile: {exc}") from exc


def _group_fields(rule: str, pattern: str, fields: list[str]) -> list[str]:
    compiled = compile_pattern(rule, pattern)
    named = list(compiled.groupindex)
    unnamed = compiled.groups - len(named)
    if unnamed > len(fields):
        raise RuleExecutionError(
            rule, f"{unnamed} unnamed group(s) but only {len(fields)} field(s) listed"
        )
    if compiled.groups == 0 and not fields:
        raise RuleExecutionError(rule, "pattern has no groups and no target field")
    return named + fields


class LinePatternRule(WireModel):
    name: str
    type: Literal["line_pattern"] = "line_pattern"
    config: LinePatternConfig = Field(default_factory=LinePatternConfig)

    def referenced_fields(self) -> list[str]:
        if self.config.pattern is None:
            return []  # skip-condition carrier only
        return _group_fields(self.name, self.config.pattern, self.config.fields)


class KeywordExtractionRule(WireModel):
    name: str
    type: Literal["keyword_extraction"] = "keyword_extraction"
    config: KeywordExtractionConfig

    def targets(self) -> list[tuple[str, str]]:
        """Return ``(keyword, field_key)`` pairs in declaration order."""
        if self.config.fields and len(self.config.fields) != len(self.config.keywords):
            raise RuleExecutionError(
                self.name,
                f"{len(self.config.keywords)} keyword(s) but "
                f"{len(self.config.fields)} field(s)",
            )
        fields = self.config.fields or self.config.keywords
        return list(zip(self.config.keywords, fields))

    def referenced_fields(self) -> list[str]:
        return [key for _, key in self.targets()]


class PositionBasedRule(WireModel):
    name: str
    type: Literal["position_based"] = "position_based"
    config: PositionBasedConfig

    def referenced_fields(self) -> list[str]:
        if not self.config.fields:
            raise RuleExecutionError(self.name, "no target field listed")
        pos = self.config.position
        if pos.start_line and pos.end_line and pos.end_line < pos.start_line:
            raise RuleExecutionError(
                self.name, f"endLine {pos.end_line} precedes startLine {pos.start_line}"
            )
        if pos.column is not None and len(self.config.fields) != 1:
            raise RuleExecutionError(self.name, "a column window maps onto exactly one field")
        return list(self.config.fields)


class RegexRule(WireModel):
    name: str
    type: Literal["regex"] = "regex"
    config: RegexConfig

    def referenced_fields(self) -> list[str]:
        return _group_fields(self.name, self.config.pattern, self.config.fields)


ParseRule = Annotated[
    Union[LinePatternRule, KeywordExtractionRule, PositionBasedRule, RegexRule],
    Field(discriminator="type"),
]


# ----------------------------------------------------------------------
# Output format
# ----------------------------------------------------------------------
class OutputStructure(WireModel):
    """Shape of the repeated member group inside the assembled record.

    Every attribute is optional; unset attributes fall back to the module
    defaults in :data:`DEFAULT_STRUCTURES`. Unknown keys from older payloads
    (``{"type": "object", "properties": "KVMInfo"}``) are ignored.
    """

    list_field: str | None = Field(default=None, alias="listField")
    item_fields: list[str] | None = Field(default=None, alias="itemFields")
    min_items: int | None = Field(default=None, alias="minItems", ge=0)
    max_items: int | None = Field(default=None, alias="maxItems", ge=0)


DEFAULT_STRUCTURES: dict[str, OutputStructure] = {
    "kvm": OutputStructure(
        list_field="non_participants",
        item_fields=["rank", "name", "position", "points"],
    ),
    "gvg": OutputStructure(list_field="non_participants", item_fields=["name"]),
    "aa": OutputStructure(list_field="participants", item_fields=["name"]),
    "guild": OutputStructure(list_field="members", item_fields=["name", "level", "class"]),
}


class OutputFormat(WireModel):
    type: Module
    structure: OutputStructure = Field(default_factory=OutputStructure)

    def resolved_structure(self) -> OutputStructure:
        defaults = DEFAULT_STRUCTURES[self.type]
        explicit = self.structure.model_dump(exclude_none=True)
        return defaults.model_copy(update=explicit)


# ----------------------------------------------------------------------
# Template
# ----------------------------------------------------------------------
class Template(WireModel):
    """Configuration describing how to extract one record for a module.

    Attributes
    ----------
    field_mapping:
        Field key to :class:`FieldConfig`; keys are unique within a template.
    parse_rules:
        Ordered rules; later rules overwrite fields set by earlier ones.
    output_format:
        Record shape to assemble; ``type`` must equal ``module``.
    is_default:
        At most one template per module carries this flag.

    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str
    module: Module
    description: str = ""
    field_mapping: dict[str, FieldConfig] = Field(alias="fieldMapping")
    parse_rules: list[ParseRule] = Field(default_factory=list, alias="parseRules")
    output_format: OutputFormat = Field(alias="outputFormat")
    is_default: bool = Field(default=False, alias="isDefault")
    created_at: datetime = Field(default_factory=_now, alias="createdAt")
    updated_at: datetime = Field(default_factory=_now, alias="updatedAt")

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> Template:
        """Validate a stored or submitted template payload.

        Accepts the flat layout as well as the nested
        ``{"template": {"fieldMapping": ..., "parseRules": ..., "outputFormat": ...}}``
        layout used by the dashboard. Pydantic errors become
        :class:`InvalidTemplateError`.
        """
        payload = dict(data)
        nested = payload.pop("template", None)
        if isinstance(nested, dict):
            payload.update(nested)
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            label = str(payload.get("name") or payload.get("id") or "<unnamed>")
            raise InvalidTemplateError(label, str(exc)) from exc

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def skip_conditions(self) -> list[str]:
        """Template-wide skip set, the union of every rule's conditions."""
        seen: list[str] = []
        for rule in self.parse_rules:
            for condition in rule.config.skip_conditions:
                if condition not in seen:
                    seen.append(condition)
        return seen

    def check_well_formed(self) -> None:
        """Raise if the template cannot drive an extraction.

        Raises
        ------
        InvalidTemplateError
            If ``output_format.type`` differs from ``module`` or a rule
            references a field missing from ``field_mapping``.
        RuleExecutionError
            If a rule's configuration is inconsistent, e.g. a pattern that
            does not compile.

        """
        if self.output_format.type != self.module:
            raise InvalidTemplateError(
                self.name,
                f"output format '{self.output_format.type}' does not match "
                f"module '{self.module}'",
            )
        for rule in self.parse_rules:
            for condition in rule.config.skip_conditions:
                if condition.startswith(REGEX_SKIP_PREFIX):
                    compile_pattern(rule.name, condition[len(REGEX_SKIP_PREFIX):])
            missing = [k for k in rule.referenced_fields() if k not in self.field_mapping]
            if missing:
                raise InvalidTemplateError(
                    self.name,
                    f"rule '{rule.name}' references unknown field(s): {', '.join(missing)}",
                )
