"""Error taxonomy for the extraction and reconciliation engine.

Template and rule errors are configuration defects and abort extraction of a
whole record before any field is produced. Field-level errors abort assembly
of one record only. ``UnmatchedName`` is informational and never raised; it
travels with the reconciled view instead.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    INVALID_TEMPLATE = "InvalidTemplate"
    RULE_EXECUTION_FAILURE = "RuleExecutionFailure"
    UNRESOLVED_REQUIRED_FIELD = "UnresolvedRequiredField"
    TYPE_COERCION = "TypeCoercion"
    VALIDATION_FAILED = "ValidationFailed"
    ASSEMBLY_CARDINALITY_MISMATCH = "AssemblyCardinalityMismatch"
    STORE_UNAVAILABLE = "StoreUnavailable"
    UNMATCHED_NAME = "UnmatchedName"


class LedgerError(Exception):
    """Base class for every error raised by :mod:`guild_ledger`."""

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidTemplateError(LedgerError):
    """Raised when a template is structurally malformed.

    Args:
        template: Name or id of the offending template.
        reason: Human-readable explanation.
    """

    kind = ErrorKind.INVALID_TEMPLATE

    def __init__(self, template: str, reason: str) -> None:
        self.template = template
        self.reason = reason
        super().__init__(f"Invalid template '{template}': {reason}")


class RuleExecutionError(LedgerError):
    """Raised when a parse rule's configuration cannot be executed.

    Args:
        rule: The name of the rule.
        reason: Human-readable explanation, e.g. a regex compile error.
    """

    kind = ErrorKind.RULE_EXECUTION_FAILURE

    def __init__(self, rule: str, reason: str) -> None:
        self.rule = rule
        self.reason = reason
        super().__init__(f"Rule '{rule}' cannot execute: {reason}")


class FieldError(LedgerError):
    """Base class for problems tied to a single field of one record."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(message)


class UnresolvedRequiredFieldError(FieldError):
    kind = ErrorKind.UNRESOLVED_REQUIRED_FIELD

    def __init__(self, field: str, row: int | None = None) -> None:
        self.row = row
        where = f" in row {row}" if row is not None else ""
        super().__init__(field, f"Required field '{field}' is unresolved{where}")


class TypeCoercionError(FieldError):
    """Raised when a raw value cannot be converted to its declared type.

    Args:
        field: The field key.
        value: The raw value that failed.
        expected: The declared field type.
    """

    kind = ErrorKind.TYPE_COERCION

    def __init__(self, field: str, value: Any, expected: str) -> None:
        self.value = value
        self.expected = expected
        super().__init__(
            field, f"Cannot coerce '{value}' to {expected} for field '{field}'"
        )


class ValidationFailedError(FieldError):
    """Raised when a coerced value violates a validation constraint.

    Args:
        field: The field key.
        rule: The violated constraint (``min``, ``max``, ``pattern``, ``enum``
            or ``record`` for whole-record checks).
        reason: Human-readable explanation.
    """

    kind = ErrorKind.VALIDATION_FAILED

    def __init__(self, field: str, rule: str, reason: str) -> None:
        self.rule = rule
        self.reason = reason
        super().__init__(field, f"Field '{field}' failed '{rule}': {reason}")


class AssemblyCardinalityError(LedgerError):
    kind = ErrorKind.ASSEMBLY_CARDINALITY_MISMATCH

    def __init__(self, list_field: str, count: int, reason: str) -> None:
        self.list_field = list_field
        self.count = count
        super().__init__(
            f"Cannot assemble '{list_field}' from {count} item(s): {reason}"
        )


class StoreUnavailableError(LedgerError):
    """Raised when a persistence, roster or recognition collaborator fails.

    The original exception is chained as ``__cause__``. No retry is attempted.
    """

    kind = ErrorKind.STORE_UNAVAILABLE

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation} failed: {reason}")
