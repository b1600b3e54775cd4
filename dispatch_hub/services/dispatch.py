from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dispatch_hub.carriers.base import CarrierResult
from dispatch_hub.carriers.formats import ApiFormat
from dispatch_hub.carriers.registry import CarrierAdapterRegistry
from dispatch_hub.core.errors import CompanyNotFoundError, ConfigurationError, ResendNotAllowedError
from dispatch_hub.core.ids import gen_local_tracking_number
from dispatch_hub.core.telemetry import get_tracer
from dispatch_hub.mapping.engine import MappingOutcome, apply_field_mappings
from dispatch_hub.mapping.validator import MappingValidationResult, validate_mapping
from dispatch_hub.models.delivery_company import DeliveryCompany
from dispatch_hub.models.delivery_order import DeliveryOrder
from dispatch_hub.schemas.company import CompanySettings
from dispatch_hub.schemas.field_mapping import FieldMapping, load_field_mappings
from dispatch_hub.services.company_config import ensure_dispatchable
from dispatch_hub.services.credential_vault import CredentialVault
from dispatch_hub.services.delivery_status import DeliveryStatus, advance, is_resendable
from dispatch_hub.services.dispatch_locks import DispatchLocks, pair_key
from dispatch_hub.services.order_lookup import OrderLookup
from dispatch_hub.services.pricing import quote_delivery_fee
from dispatch_hub.services.redaction import redact_payload


log = logging.getLogger(__name__)
tracer = get_tracer(__name__)


@dataclass(frozen=True)
class MappingEvaluation:
    mapping: MappingOutcome
    validation: MappingValidationResult


@dataclass(frozen=True)
class DispatchOutcome:
    success: bool
    is_resend: bool = False
    validation: MappingValidationResult | None = None

    delivery_order_id: str | None = None
    tracking_number: str | None = None
    status: str | None = None
    external_status: str | None = None
    external_order_id: str | None = None
    resend_attempts: int = 0
    last_resend_at: datetime | None = None
    attempt_number: int | None = None
    carrier_response: dict[str, Any] = field(default_factory=dict)

    error_code: str | None = None
    error_message: str | None = None


def company_settings(company: DeliveryCompany) -> CompanySettings:
    return CompanySettings.model_validate(company.settings or {})


def evaluate_mapping(
    snapshot: dict[str, Any],
    *,
    rules: list[FieldMapping],
    custom_fields: dict[str, Any] | None,
    settings: CompanySettings,
) -> MappingEvaluation:
    """Mapping + validation without side effects (validate/preview endpoints use it too)."""
    mapping = apply_field_mappings(snapshot, rules, custom_fields)
    try:
        validation = validate_mapping(mapping.diagnostics, field_policies=settings.field_policies)
    except (KeyError, ValueError) as e:
        raise ConfigurationError(
            f"Invalid field policy: {e}",
            issues=[{"code": "INVALID_SETTINGS", "field": "settings"}],
        )
    return MappingEvaluation(mapping=mapping, validation=validation)


async def load_company(db: AsyncSession, company_id: str) -> DeliveryCompany:
    company = (await db.execute(select(DeliveryCompany).where(DeliveryCompany.id == company_id))).scalar_one_or_none()
    if not company:
        raise CompanyNotFoundError(f"Delivery company {company_id} not found", detail={"company_id": company_id})
    return company


async def find_delivery_order(db: AsyncSession, *, order_id: str, company_id: str) -> DeliveryOrder | None:
    return (await db.execute(select(DeliveryOrder).where(
        DeliveryOrder.order_id == order_id,
        DeliveryOrder.company_id == company_id,
    ))).scalar_one_or_none()


def _adapter_options(settings: CompanySettings) -> dict[str, Any]:
    return settings.model_dump(include={
        "jsonrpc_method", "graphql_mutation", "soap_namespace", "soap_operation", "soap_action", "extra_headers",
    })


class DispatchOrchestrator:
    """
    mapping -> validation -> carrier call -> DeliveryOrder record.

    Attempts for one (order, carrier) pair are serialized by `locks`.
    Every attempt that reaches a carrier is recorded, failed ones included.
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        orders: OrderLookup,
        vault: CredentialVault,
        adapters: CarrierAdapterRegistry,
        locks: DispatchLocks,
    ):
        self._session_factory = session_factory
        self._orders = orders
        self._vault = vault
        self._adapters = adapters
        self._locks = locks

    async def fetch_order(self, order_id: str) -> dict[str, Any]:
        return await self._orders.get_order(order_id)

    async def validate(self, *, order_id: str, company_id: str) -> MappingEvaluation:
        async with self._session_factory() as db:
            company = await load_company(db, company_id)
        snapshot = await self._orders.get_order(order_id)
        return evaluate_mapping(
            snapshot,
            rules=load_field_mappings(company.field_mappings),
            custom_fields=company.custom_fields,
            settings=company_settings(company),
        )

    async def dispatch(
        self,
        *,
        order_id: str,
        company_id: str,
        is_resend: bool | None = None,
        delivery_fee: float | None = None,
        notes: str | None = None,
    ) -> DispatchOutcome:
        """
        is_resend=None detects a resend from the existing DeliveryOrder.
        Raises ConfigurationError / CompanyNotFoundError / OrderNotFoundError /
        DispatchInProgressError / ResendNotAllowedError before any carrier call.
        """
        with tracer.start_as_current_span("dispatch") as span:
            span.set_attribute("dispatch.order_id", order_id)
            span.set_attribute("dispatch.company_id", company_id)

            async with self._locks.hold(pair_key(order_id, company_id)):
                async with self._session_factory() as db:
                    outcome = await self._dispatch_locked(
                        db,
                        order_id=order_id,
                        company_id=company_id,
                        is_resend=is_resend,
                        delivery_fee=delivery_fee,
                        notes=notes,
                    )

            span.set_attribute("dispatch.success", outcome.success)
            span.set_attribute("dispatch.is_resend", outcome.is_resend)
            if outcome.error_code:
                span.set_attribute("dispatch.error_code", outcome.error_code)
            return outcome

    async def _dispatch_locked(
        self,
        db: AsyncSession,
        *,
        order_id: str,
        company_id: str,
        is_resend: bool | None,
        delivery_fee: float | None,
        notes: str | None,
    ) -> DispatchOutcome:
        company = await load_company(db, company_id)
        credentials = ensure_dispatchable(company, self._vault)
        settings = company_settings(company)

        existing = await find_delivery_order(db, order_id=order_id, company_id=company_id)
        resend = self._decide_resend(existing, is_resend, order_id=order_id, company_id=company_id)

        snapshot = await self._orders.get_order(order_id)
        if delivery_fee is None:
            delivery_fee = existing.delivery_fee if existing else None
        if delivery_fee is None and settings.price_calculation == "fixed":
            delivery_fee = quote_delivery_fee(settings, company_id=company.id).fee
        if delivery_fee is not None:
            snapshot = {**snapshot, "deliveryFee": delivery_fee}

        evaluation = evaluate_mapping(
            snapshot,
            rules=load_field_mappings(company.field_mappings),
            custom_fields=company.custom_fields,
            settings=settings,
        )
        if not evaluation.validation.is_valid:
            log.info(
                "dispatch blocked by mapping validation order=%s company=%s missing=%d invalid=%d",
                order_id, company_id,
                len(evaluation.validation.missing_fields), len(evaluation.validation.invalid_fields),
            )
            return DispatchOutcome(
                success=False,
                is_resend=resend,
                validation=evaluation.validation,
                error_code="VALIDATION_ERROR",
                error_message="Mapped payload is missing required fields or has invalid values",
            )

        payload = evaluation.mapping.payload
        api_format = ApiFormat(company.api_format)
        adapter = self._adapters.get(api_format)
        trace.get_current_span().set_attribute("dispatch.api_format", api_format.value)

        log.info("dispatching order=%s company=%s format=%s resend=%s", order_id, company_id, api_format.value, resend)
        result = await adapter.send(
            payload=payload,
            credentials=credentials,
            base_url=company.api_url,
            options=_adapter_options(settings),
        )

        if existing is None:
            record = self._record_first_attempt(
                order_id=order_id, company_id=company_id, payload=payload, result=result, delivery_fee=delivery_fee,
            )
            db.add(record)
        else:
            record = existing
            self._record_resend(record, payload=payload, result=result, delivery_fee=delivery_fee, notes=notes)

        await db.commit()

        if result.ok:
            log.info("dispatch succeeded order=%s company=%s tracking=%s", order_id, company_id, record.tracking_number)
        else:
            log.warning(
                "dispatch failed order=%s company=%s code=%s attempt=%d",
                order_id, company_id, result.error_code, record.resend_attempts,
            )

        return DispatchOutcome(
            success=result.ok,
            is_resend=resend,
            validation=evaluation.validation,
            delivery_order_id=record.id,
            tracking_number=record.tracking_number,
            status=record.status,
            external_status=record.external_status,
            external_order_id=record.external_order_id,
            resend_attempts=record.resend_attempts,
            last_resend_at=record.last_resend_at,
            attempt_number=record.resend_attempts,
            carrier_response=record.last_response,
            error_code=result.error_code,
            error_message=result.error_message,
        )

    @staticmethod
    def _decide_resend(existing: DeliveryOrder | None, is_resend: bool | None, *, order_id: str, company_id: str) -> bool:
        detail = {"order_id": order_id, "company_id": company_id}
        if is_resend is None:
            is_resend = existing is not None

        if is_resend and existing is None:
            raise ResendNotAllowedError("Nothing to resend: this order was never sent to this carrier", detail=detail)
        if not is_resend and existing is not None:
            raise ResendNotAllowedError("Order already sent to this carrier; use resend", detail=detail)
        if is_resend and not is_resendable(existing.status):
            raise ResendNotAllowedError(
                f"Delivery in status '{existing.status}' cannot be resent",
                detail={**detail, "status": existing.status},
            )
        return is_resend

    @staticmethod
    def _outcome_status(sent: DeliveryStatus, result: CarrierResult) -> DeliveryStatus:
        # Timeouts and ambiguous answers end as rejected, never left in "sent"
        return advance(sent, DeliveryStatus.ACKNOWLEDGED if result.ok else DeliveryStatus.REJECTED)

    def _record_first_attempt(
        self,
        *,
        order_id: str,
        company_id: str,
        payload: dict[str, Any],
        result: CarrierResult,
        delivery_fee: float | None,
    ) -> DeliveryOrder:
        sent = advance(DeliveryStatus.PENDING, DeliveryStatus.SENT)
        return DeliveryOrder(
            order_id=order_id,
            company_id=company_id,
            tracking_number=result.tracking_number or result.external_order_id or gen_local_tracking_number(),
            status=self._outcome_status(sent, result).value,
            external_status=result.external_status,
            external_order_id=result.external_order_id,
            delivery_fee=delivery_fee,
            resend_attempts=0,
            resend_history=[],
            request_payload=payload,
            last_response=redact_payload(result.raw_response),
            last_error_code=result.error_code,
            last_error=result.error_message,
        )

    def _record_resend(
        self,
        record: DeliveryOrder,
        *,
        payload: dict[str, Any],
        result: CarrierResult,
        delivery_fee: float | None,
        notes: str | None,
    ) -> None:
        now = datetime.now(timezone.utc)
        sent = advance(record.status, DeliveryStatus.SENT)
        status = self._outcome_status(sent, result)

        attempt_number = record.resend_attempts + 1
        raw = redact_payload(result.raw_response)
        entry = {
            "attempt_number": attempt_number,
            "timestamp": now.isoformat(),
            "status": status.value,
            "external_status": result.external_status,
            "raw_response": raw,
            "error_code": result.error_code,
            "notes": notes or result.error_message,
        }

        # Reassign (not append) so the JSON column is flagged dirty
        record.resend_history = [*(record.resend_history or []), entry]
        record.resend_attempts = attempt_number
        record.last_resend_at = now

        record.status = status.value
        if result.ok:
            record.tracking_number = result.tracking_number or result.external_order_id or record.tracking_number
            record.external_order_id = result.external_order_id or record.external_order_id
        if result.external_status:
            record.external_status = result.external_status
        if delivery_fee is not None:
            record.delivery_fee = delivery_fee
        record.request_payload = payload
        record.last_response = raw
        record.last_error_code = result.error_code
        record.last_error = result.error_message
