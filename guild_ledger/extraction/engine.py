"""Rule-based field extraction from recognized text.

Rules run in template order against the recognized lines. Each rule yields
scalar field values and, when configured with ``repeat``, one row per
matching line (or match) feeding the record's repeated member group. A later
rule overwrites scalar fields set by an earlier one and replaces earlier rows
when it produces any, so fallback chains are declared by ordering rules from
strictest to loosest.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from ..config import DEFAULT_DATE_FORMATS
from ..core.models import (
    REGEX_SKIP_PREFIX,
    KeywordExtractionRule,
    LinePatternRule,
    PositionBasedRule,
    RegexRule,
    Template,
    compile_pattern,
)
from ..data.models import IMAGE_SEPARATOR, ExtractionResult, Issue, RecognizedText
from ..errors import InvalidTemplateError, RuleExecutionError
from .transforms import TRANSFORMS, TransformError, get_transform

logger = logging.getLogger(__name__)

_KEYWORD_SEPARATORS = " \t:：-="
TRANSFORM_FAILED = "TransformFailed"


@dataclass
class _Line:
    number: int  # 1-based among non-empty lines
    text: str
    skipped: bool


@dataclass
class _RuleOutput:
    fields: dict[str, str] = field(default_factory=dict)
    rows: list[dict[str, str]] = field(default_factory=list)


def _clean(values: dict[str, str | None]) -> dict[str, str]:
    return {k: v.strip() for k, v in values.items() if v is not None and v.strip()}


def _match_fields(match: re.Match[str], fields: list[str]) -> dict[str, str]:
    pattern = match.re
    if pattern.groups == 0:
        return _clean({fields[0]: match.group(0)})
    values: dict[str, str | None] = dict(match.groupdict())
    named = set(pattern.groupindex.values())
    unnamed = [i for i in range(1, pattern.groups + 1) if i not in named]
    for key, index in zip(fields, unnamed):
        values[key] = match.group(index)
    return _clean(values)


class FieldExtractor:
    """Execute a template's parse rules against recognized text."""

    def __init__(self, date_formats: Sequence[str] = DEFAULT_DATE_FORMATS) -> None:
        self.date_formats = tuple(date_formats)

    # ------------------------------------------------------------------
    # Template checks
    # ------------------------------------------------------------------
    def validate(self, template: Template) -> None:
        """Fail eagerly if ``template`` cannot drive an extraction."""
        template.check_well_formed()
        for rule in template.parse_rules:
            name = rule.config.transform
            if name is not None and name not in TRANSFORMS:
                raise InvalidTemplateError(
                    template.name, f"rule '{rule.name}' uses unknown transform '{name}'"
                )

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------
    def extract(self, text: RecognizedText, template: Template) -> ExtractionResult:
        self.validate(template)
        lines = self._prepare_lines(text, template.skip_conditions())
        blob = "\n".join(line.text for line in lines if line.text != IMAGE_SEPARATOR)
        result = ExtractionResult()

        for rule in template.parse_rules:
            if isinstance(rule, LinePatternRule):
                output = self._line_pattern(rule, lines)
            elif isinstance(rule, KeywordExtractionRule):
                output = self._keyword_extraction(rule, lines)
            elif isinstance(rule, PositionBasedRule):
                output = self._position_based(rule, lines)
            elif isinstance(rule, RegexRule):
                output = self._regex(rule, blob)
            else:  # pragma: no cover - the union is closed
                raise RuleExecutionError(getattr(rule, "name", "?"), "unsupported rule type")

            if rule.config.transform:
                self._apply_transform(rule.name, rule.config.transform, output, result)

            if output.fields:
                logger.debug("Rule %s set %s", rule.name, sorted(output.fields))
                result.fields.update(output.fields)
            if output.rows:
                logger.debug("Rule %s produced %d row(s)", rule.name, len(output.rows))
                result.rows = output.rows

        item_fields = set(template.output_format.resolved_structure().item_fields or [])
        result.unresolved = [
            key
            for key in template.field_mapping
            if key not in item_fields and key not in result.fields
        ]
        return result

    def _prepare_lines(self, text: RecognizedText, conditions: list[str]) -> list[_Line]:
        substrings: list[str] = []
        patterns: list[re.Pattern[str]] = []
        for condition in conditions:
            if condition.startswith(REGEX_SKIP_PREFIX):
                patterns.append(compile_pattern("skipConditions", condition[len(REGEX_SKIP_PREFIX):]))
            else:
                substrings.append(condition)

        prepared: list[_Line] = []
        for raw in text.ordered_lines():
            line = raw.strip()
            if not line:
                continue
            skipped = (
                line == IMAGE_SEPARATOR
                or any(s in line for s in substrings)
                or any(p.search(line) for p in patterns)
            )
            if skipped:
                logger.debug("Skipping line %d: %r", len(prepared) + 1, line)
            prepared.append(_Line(number=len(prepared) + 1, text=line, skipped=skipped))
        return prepared

    def _apply_transform(
        self, rule: str, name: str, output: _RuleOutput, result: ExtractionResult
    ) -> None:
        fn = get_transform(name, self.date_formats)

        def run(values: dict[str, str]) -> None:
            for key, value in values.items():
                try:
                    values[key] = fn(value)
                except TransformError as exc:
                    logger.warning("Transform %s failed in rule %s: %s", name, rule, exc)
                    result.warnings.append(
                        Issue(TRANSFORM_FAILED, key, f"transform '{name}' failed: {exc}")
                    )

        run(output.fields)
        for row in output.rows:
            run(row)

    # ------------------------------------------------------------------
    # Rule strategies
    # ------------------------------------------------------------------
    def _line_pattern(self, rule: LinePatternRule, lines: list[_Line]) -> _RuleOutput:
        output = _RuleOutput()
        if rule.config.pattern is None:
            return output
        pattern = compile_pattern(rule.name, rule.config.pattern)
        for line in lines:
            if line.skipped:
                continue
            match = pattern.search(line.text)
            if not match:
                continue
            values = _match_fields(match, rule.config.fields)
            if not values:
                continue
            if not rule.config.repeat:
                output.fields = values
                return output
            output.rows.append(values)
        return output

    def _keyword_extraction(
        self, rule: KeywordExtractionRule, lines: list[_Line]
    ) -> _RuleOutput:
        output = _RuleOutput()
        for keyword, key in rule.targets():
            # whole-word match: "Date" must not hit "Updated"
            finder = re.compile(rf"(?<!\w){re.escape(keyword)}(?!\w)", re.IGNORECASE)
            for line in lines:
                if line.skipped:
                    continue
                match = finder.search(line.text)
                if not match:
                    continue
                remainder = line.text[match.end():].lstrip(_KEYWORD_SEPARATORS).strip()
                if remainder:
                    output.fields[key] = remainder
                    break
        return output

    def _position_based(self, rule: PositionBasedRule, lines: list[_Line]) -> _RuleOutput:
        config = rule.config
        pos = config.position
        start = pos.start_line or 1
        end = pos.end_line or len(lines)
        output = _RuleOutput()
        collected: dict[str, list[str]] = {}

        for line in lines:
            if line.skipped or not start <= line.number <= end:
                continue
            if pos.column is not None:
                cells = line.text.split(config.delimiter)
                if len(cells) < pos.column:
                    continue
                values = _clean({config.fields[0]: cells[pos.column - 1]})
            else:
                cells = line.text.split(config.delimiter, len(config.fields) - 1)
                values = _clean(dict(zip(config.fields, cells)))
            if not values:
                continue
            if config.repeat:
                output.rows.append(values)
            else:
                for key, value in values.items():
                    collected.setdefault(key, []).append(value)

        output.fields = {key: " ".join(parts) for key, parts in collected.items()}
        return output

    def _regex(self, rule: RegexRule, blob: str) -> _RuleOutput:
        output = _RuleOutput()
        pattern = compile_pattern(rule.name, rule.config.pattern)
        if rule.config.repeat:
            for match in pattern.finditer(blob):
                values = _match_fields(match, rule.config.fields)
                if values:
                    output.rows.append(values)
            return output
        match = pattern.search(blob)
        if match:
            output.fields = _match_fields(match, rule.config.fields)
        return output
