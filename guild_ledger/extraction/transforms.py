"""Named post-processing steps a parse rule may apply to its values.

A transform either returns the new value or raises :class:`TransformError`;
the engine keeps the untransformed value in that case and records a warning.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from datetime import date, datetime

from ..config import DEFAULT_DATE_FORMATS

# OCR commonly confuses letters with digits in numeric regions
_DIGIT_CORRECTIONS = str.maketrans({"O": "0", "o": "0", "l": "1", "I": "1"})
_NON_NUMERIC = re.compile(r"[^0-9.+-]")
_LEADING_JUNK = re.compile(r"^[^\w]+")
_TRAILING_JUNK = re.compile(r"[^\w.\-&+*#=]+$")
_DATE_IN_TEXT = re.compile(r"\d{4}[-/.]\d{1,2}[-/.]\d{1,2}|\d{1,2}[-/.]\d{1,2}[-/.]\d{4}")


class TransformError(ValueError):
    pass


def numeric(value: str) -> str:
    corrected = value.translate(_DIGIT_CORRECTIONS)
    digits = _NON_NUMERIC.sub("", corrected)
    if not any(ch.isdigit() for ch in digits):
        raise TransformError(f"no digits in {value!r}")
    return digits


def clean_name(value: str) -> str:
    cleaned = _TRAILING_JUNK.sub("", _LEADING_JUNK.sub("", value.strip()))
    cleaned = " ".join(cleaned.split())
    if not cleaned:
        raise TransformError(f"nothing left of {value!r} after cleaning")
    return cleaned


def parse_calendar_date(text: str, formats: Sequence[str] = DEFAULT_DATE_FORMATS) -> date:
    """Parse ``text`` against every format in ``formats``.

    Raises :class:`TransformError` when no format matches, or when two formats
    read the text as different days.
    """
    days: set[date] = set()
    for fmt in formats:
        try:
            days.add(datetime.strptime(text, fmt).date())
        except ValueError:
            continue
    if not days:
        raise TransformError(f"{text!r} matches none of {', '.join(formats)}")
    if len(days) > 1:
        readings = ", ".join(sorted(d.isoformat() for d in days))
        raise TransformError(f"{text!r} is ambiguous: {readings}")
    return days.pop()


def normalize_date(value: str, formats: Sequence[str] = DEFAULT_DATE_FORMATS) -> str:
    match = _DATE_IN_TEXT.search(value)
    candidate = match.group(0) if match else value.strip()
    return parse_calendar_date(candidate, formats).isoformat()


TRANSFORMS: dict[str, Callable[[str], str]] = {
    "trim": str.strip,
    "uppercase": str.upper,
    "lowercase": str.lower,
    "numeric": numeric,
    "clean_name": clean_name,
    "date": normalize_date,
}


def get_transform(
    name: str, date_formats: Sequence[str] = DEFAULT_DATE_FORMATS
) -> Callable[[str], str]:
    if name == "date":
        return lambda value: normalize_date(value, date_formats)
    return TRANSFORMS[name]
