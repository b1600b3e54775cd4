from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from dispatch_hub.mapping.engine import FieldDiagnostic
from dispatch_hub.mapping.policies import resolve_policies


@dataclass(frozen=True)
class MissingField:
    source_field: str
    target_field: str
    has_default_value: bool
    description: str
    default_value: Any = None
    # False when the default fills the gap and dispatch may proceed
    blocking: bool = True


@dataclass(frozen=True)
class InvalidField:
    source_field: str
    target_field: str
    value: Any
    reason: str


@dataclass(frozen=True)
class MappingValidationResult:
    is_valid: bool
    missing_fields: list[MissingField] = field(default_factory=list)
    invalid_fields: list[InvalidField] = field(default_factory=list)

    def error_messages(self) -> list[str]:
        return [m.description for m in self.missing_fields if m.blocking] + [
            f"Invalid value for '{i.target_field}' (from '{i.source_field}'): {i.reason}"
            for i in self.invalid_fields
        ]


def validate_mapping(
    diagnostics: Sequence[FieldDiagnostic],
    *,
    field_policies: Mapping[str, Mapping[str, Any]] | None = None,
) -> MappingValidationResult:
    """
    Decides send-eligibility from the engine diagnostics.
    Pure: same diagnostics + policies always give the same result.
    """
    policies = resolve_policies([d.target_field for d in diagnostics], field_policies)

    missing: list[MissingField] = []
    invalid: list[InvalidField] = []

    for d in diagnostics:
        if d.required and not d.included:
            missing.append(MissingField(
                source_field=d.source_field,
                target_field=d.target_field,
                has_default_value=d.has_default_value,
                description=(
                    f"Required field '{d.target_field}' has no value: source '{d.source_field}' is empty"
                    + (" and the default is empty" if d.has_default_value else " and no default is configured")
                ),
            ))
            continue

        if d.required and d.resolved_from_default and not d.overridden_by_custom_field:
            missing.append(MissingField(
                source_field=d.source_field,
                target_field=d.target_field,
                has_default_value=True,
                description=f"Required field '{d.target_field}' is filled by its default value",
                default_value=d.final_value,
                blocking=False,
            ))

        # Only values that came from the order are shape-checked
        if not d.resolved_from_source or d.resolved_from_default or d.overridden_by_custom_field:
            continue

        policy = policies.get(d.target_field)
        if policy is None:
            continue
        reason = policy.check(d.final_value)
        if reason:
            invalid.append(InvalidField(
                source_field=d.source_field,
                target_field=d.target_field,
                value=d.final_value,
                reason=reason,
            ))

    return MappingValidationResult(
        is_valid=not any(m.blocking for m in missing) and not invalid,
        missing_fields=missing,
        invalid_fields=invalid,
    )
