"""
Per-target value policies used by the mapping validator.

Configured on a company as settings.field_policies:
    {"customer_phone": {"type": "phone", "min_digits": 10},
     "email": {"type": "email"},
     "ref": {"type": "pattern", "pattern": "^[A-Z0-9-]+$"},
     "notes": {"type": "max_length", "max_length": 200},
     "tel_ext": {"type": "none"}}

Targets without an explicit policy fall back to a name heuristic:
phone-like names must carry at least 7 digits.
"""
from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from dispatch_hub.mapping.transforms import phone_digits


DEFAULT_PHONE_MIN_DIGITS = 7
_PHONE_HINTS = ("phone", "mobile", "tel")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class ValuePolicy(Protocol):
    name: str

    def check(self, value: Any) -> str | None:
        """Return a reason string when the value is invalid, else None."""
        ...


@dataclass(frozen=True)
class PhonePolicy:
    min_digits: int = DEFAULT_PHONE_MIN_DIGITS
    max_digits: int | None = None
    name: str = "phone"

    def check(self, value: Any) -> str | None:
        digits = phone_digits(value)
        if len(digits) < self.min_digits:
            return f"expected at least {self.min_digits} digits, got {len(digits)}"
        if self.max_digits is not None and len(digits) > self.max_digits:
            return f"expected at most {self.max_digits} digits, got {len(digits)}"
        return None


@dataclass(frozen=True)
class EmailPolicy:
    name: str = "email"

    def check(self, value: Any) -> str | None:
        if not _EMAIL_RE.match(str(value).strip()):
            return "not a valid email address"
        return None


@dataclass(frozen=True)
class PatternPolicy:
    pattern: re.Pattern[str]
    name: str = "pattern"

    def check(self, value: Any) -> str | None:
        if not self.pattern.fullmatch(str(value)):
            return f"does not match pattern {self.pattern.pattern}"
        return None


@dataclass(frozen=True)
class MaxLengthPolicy:
    max_length: int
    name: str = "max_length"

    def check(self, value: Any) -> str | None:
        if len(str(value)) > self.max_length:
            return f"longer than {self.max_length} characters"
        return None


def _looks_like_phone(target_field: str) -> bool:
    t = target_field.lower()
    return any(h in t for h in _PHONE_HINTS)


def build_policy(config: Mapping[str, Any]) -> ValuePolicy | None:
    kind = str(config.get("type") or "").strip().lower()
    if kind in ("", "none"):
        return None
    if kind == "phone":
        max_digits = config.get("max_digits")
        return PhonePolicy(
            min_digits=int(config.get("min_digits", DEFAULT_PHONE_MIN_DIGITS)),
            max_digits=int(max_digits) if max_digits is not None else None,
        )
    if kind == "email":
        return EmailPolicy()
    if kind == "pattern":
        try:
            return PatternPolicy(pattern=re.compile(str(config["pattern"])))
        except re.error as e:
            raise ValueError(f"Invalid pattern for value policy: {e}") from e
    if kind == "max_length":
        return MaxLengthPolicy(max_length=int(config["max_length"]))
    raise ValueError(f"Unknown value policy type: {kind}")


def resolve_policies(
    target_fields: list[str],
    configured: Mapping[str, Mapping[str, Any]] | None = None,
) -> dict[str, ValuePolicy]:
    configured = configured or {}
    out: dict[str, ValuePolicy] = {}
    for target in target_fields:
        if target in configured:
            policy = build_policy(configured[target])
        elif _looks_like_phone(target):
            policy = PhonePolicy()
        else:
            policy = None
        if policy is not None:
            out[target] = policy
    return out
