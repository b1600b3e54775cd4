from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from dispatch_hub.mapping.transforms import apply_transform
from dispatch_hub.schemas.field_mapping import FieldMapping


_MISSING = object()


@dataclass(frozen=True)
class FieldDiagnostic:
    source_field: str
    target_field: str
    required: bool
    resolved_from_source: bool
    resolved_from_default: bool
    has_default_value: bool
    transform: str | None
    final_value: Any
    # False when the value was empty and the target was dropped from the payload
    included: bool
    overridden_by_custom_field: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "sourceField": self.source_field,
            "targetField": self.target_field,
            "required": self.required,
            "resolvedFromSource": self.resolved_from_source,
            "resolvedFromDefault": self.resolved_from_default,
            "hasDefaultValue": self.has_default_value,
            "transform": self.transform,
            "finalValue": self.final_value,
            "included": self.included,
            "overriddenByCustomField": self.overridden_by_custom_field,
        }


@dataclass(frozen=True)
class MappingOutcome:
    payload: dict[str, Any]
    diagnostics: list[FieldDiagnostic] = field(default_factory=list)


def resolve_path(data: Any, path: str) -> Any:
    """
    Sequential key traversal: "shippingAddress.city", "items.0.name".
    Returns None on any missing step, never raises.
    """
    if not path:
        return None

    cur: Any = data
    for part in path.split("."):
        if isinstance(cur, Mapping):
            cur = cur.get(part, _MISSING)
        elif isinstance(cur, Sequence) and not isinstance(cur, (str, bytes)):
            try:
                cur = cur[int(part)]
            except (ValueError, IndexError):
                cur = _MISSING
        else:
            cur = _MISSING

        if cur is _MISSING or cur is None:
            return None
    return cur


def is_present(value: Any) -> bool:
    return value is not None and value != ""


def apply_field_mappings(
    snapshot: Mapping[str, Any],
    rules: Sequence[FieldMapping],
    custom_fields: Mapping[str, Any] | None = None,
) -> MappingOutcome:
    payload: dict[str, Any] = {}
    staged: list[dict[str, Any]] = []

    for rule in rules:
        if not rule.enabled:
            continue

        from_source = False
        from_default = False
        value: Any = None

        if rule.default_value_priority and rule.has_default:
            value, from_default = rule.default_value, True
        else:
            raw = resolve_path(snapshot, rule.source_field)
            if is_present(raw):
                value, from_source = apply_transform(rule.transform, raw), True
            if not is_present(value) and rule.has_default:
                # Defaults are used verbatim, never transformed
                value, from_default = rule.default_value, True

        included = is_present(value)
        if included:
            payload[rule.target_field] = value

        staged.append({
            "source_field": rule.source_field,
            "target_field": rule.target_field,
            "required": rule.required,
            "resolved_from_source": from_source,
            "resolved_from_default": from_default,
            "has_default_value": rule.has_default,
            "transform": rule.transform,
            "final_value": value if included else None,
            "included": included,
        })

    # Operator overrides win over mapped values; empty ones are never sent
    custom = {k: v for k, v in (custom_fields or {}).items() if is_present(v)}
    payload.update(custom)

    diagnostics = [
        FieldDiagnostic(
            **{**d, "included": d["included"] or d["target_field"] in custom,
               "final_value": custom.get(d["target_field"], d["final_value"])},
            overridden_by_custom_field=d["target_field"] in custom,
        )
        for d in staged
    ]
    return MappingOutcome(payload=payload, diagnostics=diagnostics)
