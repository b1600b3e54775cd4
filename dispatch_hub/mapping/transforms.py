"""
Named, pure normalizers applied to a single mapped value.

Every transform is total: None or empty input gives "" and nothing raises.
Unknown transform names pass the value through untouched so the mapping
table can carry names we do not implement yet.
"""
from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from typing import Any


_NON_DIGITS = re.compile(r"\D+")

_FIRST_NAME_KEYS = ("firstName", "first_name", "firstname", "givenName")
_LAST_NAME_KEYS = ("lastName", "last_name", "lastname", "familyName")
_ADDRESS_PARTS = (
    ("street", "address", "line1"),
    ("city",),
    ("state", "region"),
    ("zipCode", "zip_code", "zip", "postalCode", "postal_code"),
    ("country",),
)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _first(mapping: Mapping[str, Any], keys: tuple[str, ...]) -> str:
    for k in keys:
        v = _text(mapping.get(k)).strip()
        if v:
            return v
    return ""


def uppercase(value: Any) -> str:
    return _text(value).upper()


def lowercase(value: Any) -> str:
    return _text(value).lower()


def trim(value: Any) -> str:
    return _text(value).strip()


def phone_digits(value: Any) -> str:
    return _NON_DIGITS.sub("", _text(value))


def phone_last10(value: Any) -> str:
    return phone_digits(value)[-10:]


def full_name(value: Any) -> str:
    if isinstance(value, Mapping):
        parts = [_first(value, _FIRST_NAME_KEYS), _first(value, _LAST_NAME_KEYS)]
    else:
        parts = _text(value).split()
    return " ".join(p for p in parts if p)


def format_address(value: Any) -> str:
    if isinstance(value, Mapping):
        parts = [_first(value, keys) for keys in _ADDRESS_PARTS]
        return ", ".join(p for p in parts if p)
    return trim(value)


TRANSFORMS: dict[str, Callable[[Any], str]] = {
    "uppercase": uppercase,
    "lowercase": lowercase,
    "trim": trim,
    "phone_digits": phone_digits,
    "phone_last10": phone_last10,
    "full_name": full_name,
    "format_address": format_address,
}


def supported_transforms() -> list[str]:
    return sorted(TRANSFORMS.keys())


def apply_transform(name: str | None, value: Any) -> Any:
    if not name:
        return value
    fn = TRANSFORMS.get(name.strip().lower())
    if fn is None:
        return value
    return fn(value)
