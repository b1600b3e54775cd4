from __future__ import annotations

from typing import Any, Literal

from pydantic import Field, field_validator

from dispatch_hub.carriers.formats import ApiFormat
from dispatch_hub.schemas.common import ApiModel
from dispatch_hub.schemas.field_mapping import FieldMapping, ensure_unique_targets


class CompanySettings(ApiModel):
    price_calculation: Literal["fixed", "weight", "distance"] = "fixed"
    base_price: float = Field(default=0.0, ge=0)
    supported_regions: list[str] = Field(default_factory=list)

    # {"<target field>": {"type": "phone", "min_digits": 10}}
    field_policies: dict[str, dict[str, Any]] = Field(default_factory=dict)

    # Adapter options
    jsonrpc_method: str | None = None
    graphql_mutation: str | None = None
    soap_namespace: str | None = None
    soap_operation: str | None = None
    soap_action: str | None = None
    extra_headers: dict[str, str] = Field(default_factory=dict)


class CredentialsIn(ApiModel):
    """
    Absent field: keep the stored secret. Explicit null: clear it.
    """
    api_key: str | None = None
    login: str | None = None
    password: str | None = None
    database: str | None = None

    def changes(self) -> dict[str, str | None]:
        return {name: getattr(self, name) for name in self.model_fields_set}


def _parse_format(v: Any) -> Any:
    if isinstance(v, str):
        return ApiFormat.parse(v)
    return v


class DeliveryCompanyCreate(ApiModel):
    name: str = Field(min_length=1, max_length=200)
    code: str | None = Field(default=None, max_length=60)
    api_url: str | None = Field(default=None, max_length=500)
    api_format: ApiFormat
    is_active: bool = True
    settings: CompanySettings = Field(default_factory=CompanySettings)
    field_mappings: list[FieldMapping] = Field(default_factory=list)
    custom_fields: dict[str, Any] = Field(default_factory=dict)
    credentials: CredentialsIn = Field(default_factory=CredentialsIn)

    @field_validator("api_format", mode="before")
    @classmethod
    def parse_api_format(cls, v: Any) -> Any:
        return _parse_format(v)

    @field_validator("field_mappings")
    @classmethod
    def unique_targets(cls, v: list[FieldMapping]) -> list[FieldMapping]:
        ensure_unique_targets(v)
        return v


class DeliveryCompanyUpdate(ApiModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    code: str | None = Field(default=None, max_length=60)
    api_url: str | None = Field(default=None, max_length=500)
    api_format: ApiFormat | None = None
    is_active: bool | None = None
    settings: CompanySettings | None = None
    credentials: CredentialsIn | None = None

    @field_validator("api_format", mode="before")
    @classmethod
    def parse_api_format(cls, v: Any) -> Any:
        return _parse_format(v)


class DeliveryCompanyOut(ApiModel):
    id: str
    name: str
    code: str | None
    api_url: str | None
    api_format: str
    is_active: bool
    settings: dict[str, Any]
    field_mappings: list[FieldMapping]
    custom_fields: dict[str, Any]
    # Which secrets are configured, never their values
    credentials_configured: dict[str, bool]
    created_at: str
    updated_at: str


class ConfigIssue(ApiModel):
    code: str
    message: str
    field: str | None = None
    severity: Literal["error", "warning"] = "error"


class CompanyConfigCheckOut(ApiModel):
    company_id: str
    is_valid: bool
    issues: list[ConfigIssue]
