from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field

from dispatch_hub.mapping.validator import MappingValidationResult
from dispatch_hub.schemas.common import ApiModel
from dispatch_hub.schemas.field_mapping import FieldMapping, FieldMappingConfig
from dispatch_hub.services.delivery_status import DeliveryStatus


class SendToDeliveryRequest(ApiModel):
    order_id: str = Field(min_length=1, max_length=120)
    company_id: str = Field(min_length=1)
    delivery_fee: float | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=1000)
    # Omitted: inferred from whether the order was already sent to this carrier
    is_resend: bool | None = None


class ValidateFieldMappingsRequest(ApiModel):
    order_id: str = Field(min_length=1, max_length=120)
    company_id: str = Field(min_length=1)


class PreviewMappingRequest(FieldMappingConfig):
    company_id: str = Field(min_length=1)
    order_id: str | None = None


class DeliveryStatusUpdate(ApiModel):
    status: DeliveryStatus
    external_status: str | None = Field(default=None, max_length=120)
    notes: str | None = Field(default=None, max_length=1000)


class CalculateFeeRequest(ApiModel):
    company_id: str = Field(min_length=1)
    weight: float | None = Field(default=None, ge=0)
    distance_km: float | None = Field(default=None, ge=0)
    region: str | None = None


class FeeQuoteOut(ApiModel):
    fee: float
    calculation: str
    region: str | None = None


class MissingFieldOut(ApiModel):
    source_field: str
    target_field: str
    has_default_value: bool
    description: str
    default_value: Any = None


class InvalidFieldOut(ApiModel):
    source_field: str
    target_field: str
    value: Any = None
    reason: str


class MappingValidationOut(ApiModel):
    is_valid: bool
    missing_fields: list[MissingFieldOut]
    invalid_fields: list[InvalidFieldOut]
    payload_preview: dict[str, Any] | None = None

    @classmethod
    def from_result(cls, res: MappingValidationResult, *, payload: dict[str, Any] | None = None) -> "MappingValidationOut":
        return cls(
            is_valid=res.is_valid,
            missing_fields=[MissingFieldOut.model_validate(m, from_attributes=True) for m in res.missing_fields],
            invalid_fields=[InvalidFieldOut.model_validate(i, from_attributes=True) for i in res.invalid_fields],
            payload_preview=payload,
        )


class ValidateFieldMappingsOut(ApiModel):
    success: bool = True
    data: MappingValidationOut


class PreviewMappingData(ApiModel):
    preview_data: dict[str, Any]
    sample_order: str
    diagnostics: list[dict[str, Any]]
    validation: MappingValidationOut


class PreviewMappingOut(ApiModel):
    success: bool = True
    data: PreviewMappingData


class DispatchData(ApiModel):
    delivery_order_id: str | None = None
    tracking_number: str | None = None
    status: str | None = None
    external_status: str | None = None
    external_order_id: str | None = None
    is_resend: bool
    resend_attempts: int
    last_resend_at: datetime | None = None
    delivery_company_response: dict[str, Any] = Field(default_factory=dict)


class DispatchError(ApiModel):
    code: str
    message: str | None = None
    attempt_number: int | None = None


class SendToDeliveryOut(ApiModel):
    success: bool
    data: DispatchData | None = None
    # Caller stopped waiting; the attempt keeps running and is still recorded
    pending: bool = False
    error: DispatchError | None = None


class ResendHistoryEntryOut(ApiModel):
    attempt_number: int
    timestamp: str
    status: str
    external_status: str | None = None
    raw_response: dict[str, Any] = Field(default_factory=dict)
    error_code: str | None = None
    notes: str | None = None


class DeliveryOrderOut(ApiModel):
    id: str
    order_id: str
    company_id: str
    tracking_number: str
    status: str
    external_status: str | None
    external_order_id: str | None
    delivery_fee: float | None
    resend_attempts: int
    last_resend_at: str | None
    resend_history: list[ResendHistoryEntryOut]
    last_response: dict[str, Any]
    last_error_code: str | None
    last_error: str | None
    created_at: str
    updated_at: str


class FieldMappingsUpdateOut(ApiModel):
    company_id: str
    field_mappings: list[FieldMapping]
    custom_fields: dict[str, Any]
