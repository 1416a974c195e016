"""
Field validation shared by the registration and edit forms.

Validators return ``FieldErrors``: an insertion-ordered mapping of field
name to message. Templates highlight every listed field and autofocus the
first one.
"""
from __future__ import annotations

import re

FieldErrors = dict[str, str]

_FULL_WIDTH_DIGITS = str.maketrans("０１２３４５６７８９", "0123456789")
_HYPHENS = re.compile(r"[-‐‑‒–—―−ー－]")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_MIN_DIGITS = 10
PHONE_MAX_DIGITS = 15


def to_half_width_digits(value: str) -> str:
    return (value or "").translate(_FULL_WIDTH_DIGITS)


def normalize_phone(value: str | None) -> str:
    """Full-width digits to half-width, hyphens and spaces removed."""
    cleaned = _HYPHENS.sub("", value or "")
    cleaned = "".join(cleaned.split())
    return to_half_width_digits(cleaned)


def is_valid_phone(value: str | None) -> bool:
    digits = normalize_phone(value)
    return digits.isascii() and digits.isdigit() and PHONE_MIN_DIGITS <= len(digits) <= PHONE_MAX_DIGITS


def is_valid_email(value: str | None) -> bool:
    return bool(EMAIL_RE.match((value or "").strip()))


def parse_age(value: object) -> int | None:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    raw = to_half_width_digits(str(value)).strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def is_valid_age(value: object, *, max_age: int = 100) -> bool:
    age = parse_age(value)
    return age is not None and 0 <= age <= max_age


def first_error_field(errors: FieldErrors) -> str | None:
    return next(iter(errors), None)


def clean_text(value: object) -> str:
    return str(value or "").strip()
