from __future__ import annotations

from typing import Any

from pydantic import Field, model_validator

from dispatch_hub.schemas.common import ApiModel


DefaultValue = str | int | float | bool


class FieldMapping(ApiModel):
    source_field: str = Field(min_length=1, max_length=300)  # dot path into the order snapshot
    target_field: str = Field(min_length=1, max_length=200)  # carrier API key
    required: bool = False
    enabled: bool = True
    transform: str | None = None
    default_value: DefaultValue | None = None
    # If set, the default overrides the source value instead of only filling gaps
    default_value_priority: bool = False

    @property
    def has_default(self) -> bool:
        return self.default_value is not None and self.default_value != ""


class FieldMappingConfig(ApiModel):
    field_mappings: list[FieldMapping] = Field(default_factory=list)
    custom_fields: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def unique_enabled_targets(self) -> "FieldMappingConfig":
        ensure_unique_targets(self.field_mappings)
        return self


def ensure_unique_targets(rules: list[FieldMapping]) -> None:
    seen: set[str] = set()
    dupes: list[str] = []
    for r in rules:
        if not r.enabled:
            continue
        if r.target_field in seen:
            dupes.append(r.target_field)
        seen.add(r.target_field)
    if dupes:
        raise ValueError(f"Duplicate target fields among enabled mappings: {sorted(set(dupes))}")


def load_field_mappings(raw: list[dict] | None) -> list[FieldMapping]:
    return [FieldMapping.model_validate(r) for r in (raw or [])]


def dump_field_mappings(rules: list[FieldMapping]) -> list[dict]:
    return [r.model_dump(mode="json") for r in rules]
