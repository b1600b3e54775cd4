import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_hub.api.deps import get_orchestrator
from dispatch_hub.core.config import settings
from dispatch_hub.core.db import get_db
from dispatch_hub.core.errors import (
    CompanyNotFoundError,
    ConfigurationError,
    DispatchHubError,
    DispatchInProgressError,
    InvalidStatusTransitionError,
    OrderLookupError,
    OrderNotFoundError,
    ResendNotAllowedError,
)
from dispatch_hub.models.delivery_order import DeliveryOrder
from dispatch_hub.schemas.delivery import (
    CalculateFeeRequest,
    DeliveryOrderOut,
    DeliveryStatusUpdate,
    DispatchData,
    DispatchError,
    FeeQuoteOut,
    MappingValidationOut,
    PreviewMappingData,
    PreviewMappingOut,
    PreviewMappingRequest,
    ResendHistoryEntryOut,
    SendToDeliveryOut,
    SendToDeliveryRequest,
    ValidateFieldMappingsOut,
    ValidateFieldMappingsRequest,
)
from dispatch_hub.services.delivery_status import advance
from dispatch_hub.services.dispatch import (
    DispatchOrchestrator,
    DispatchOutcome,
    company_settings,
    evaluate_mapping,
    find_delivery_order,
    load_company,
)
from dispatch_hub.services.order_lookup import SAMPLE_ORDER
from dispatch_hub.services.pricing import quote_delivery_fee


log = logging.getLogger(__name__)
router = APIRouter()

# Dispatches the caller stopped waiting for; kept referenced until they finish
_inflight: set[asyncio.Task] = set()


def _http_error(e: DispatchHubError) -> HTTPException:
    if isinstance(e, (CompanyNotFoundError, OrderNotFoundError)):
        status = 404
    elif isinstance(e, (DispatchInProgressError, ResendNotAllowedError, InvalidStatusTransitionError)):
        status = 409
    elif isinstance(e, OrderLookupError):
        status = 502
    else:
        status = 400
    return HTTPException(status_code=status, detail=e.to_dict())


def _dispatch_data(outcome: DispatchOutcome) -> DispatchData:
    return DispatchData(
        delivery_order_id=outcome.delivery_order_id,
        tracking_number=outcome.tracking_number,
        status=outcome.status,
        external_status=outcome.external_status,
        external_order_id=outcome.external_order_id,
        is_resend=outcome.is_resend,
        resend_attempts=outcome.resend_attempts,
        last_resend_at=outcome.last_resend_at,
        delivery_company_response=outcome.carrier_response,
    )


def _delivery_order_out(r: DeliveryOrder) -> DeliveryOrderOut:
    return DeliveryOrderOut(
        id=r.id,
        order_id=r.order_id,
        company_id=r.company_id,
        tracking_number=r.tracking_number,
        status=r.status,
        external_status=r.external_status,
        external_order_id=r.external_order_id,
        delivery_fee=r.delivery_fee,
        resend_attempts=r.resend_attempts,
        last_resend_at=str(r.last_resend_at) if r.last_resend_at else None,
        resend_history=[ResendHistoryEntryOut.model_validate(h) for h in (r.resend_history or [])],
        last_response=r.last_response or {},
        last_error_code=r.last_error_code,
        last_error=r.last_error,
        created_at=str(r.created_at),
        updated_at=str(r.updated_at),
    )


def _log_orphan_result(task: asyncio.Task) -> None:
    _inflight.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        log.error("detached dispatch failed: %s", exc, exc_info=exc)


@router.post("/delivery/send", response_model=SendToDeliveryOut)
async def send_to_delivery(
    body: SendToDeliveryRequest,
    orchestrator: DispatchOrchestrator = Depends(get_orchestrator),
):
    task = asyncio.ensure_future(orchestrator.dispatch(
        order_id=body.order_id,
        company_id=body.company_id,
        is_resend=body.is_resend,
        delivery_fee=body.delivery_fee,
        notes=body.notes,
    ))
    try:
        # Shielded: if we stop waiting, the carrier call still completes and is recorded
        outcome = await asyncio.wait_for(asyncio.shield(task), timeout=settings.dispatch_wait_seconds)
    except asyncio.TimeoutError:
        _inflight.add(task)
        task.add_done_callback(_log_orphan_result)
        log.warning("dispatch still running after %.1fs order=%s company=%s",
                    settings.dispatch_wait_seconds, body.order_id, body.company_id)
        out = SendToDeliveryOut(
            success=False,
            pending=True,
            error=DispatchError(code="DISPATCH_PENDING", message="Carrier has not answered yet; the attempt will be recorded"),
        )
        return JSONResponse(status_code=202, content=out.model_dump(mode="json", by_alias=True))
    except DispatchHubError as e:
        raise _http_error(e)

    if outcome.validation is not None and not outcome.validation.is_valid:
        v = MappingValidationOut.from_result(outcome.validation)
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "errors": outcome.validation.error_messages(),
                "missingFields": [m.model_dump(mode="json", by_alias=True) for m in v.missing_fields],
                "invalidFields": [i.model_dump(mode="json", by_alias=True) for i in v.invalid_fields],
            },
        )

    out = SendToDeliveryOut(
        success=outcome.success,
        data=_dispatch_data(outcome),
        error=None if outcome.success else DispatchError(
            code=outcome.error_code or "TRANSPORT_ERROR",
            message=outcome.error_message,
            attempt_number=outcome.attempt_number,
        ),
    )
    if not outcome.success:
        # Attempt recorded; surface the carrier failure
        return JSONResponse(status_code=502, content=out.model_dump(mode="json", by_alias=True))
    return out


@router.post("/delivery/validate-field-mappings", response_model=ValidateFieldMappingsOut)
async def validate_field_mappings(
    body: ValidateFieldMappingsRequest,
    orchestrator: DispatchOrchestrator = Depends(get_orchestrator),
) -> ValidateFieldMappingsOut:
    try:
        evaluation = await orchestrator.validate(order_id=body.order_id, company_id=body.company_id)
    except DispatchHubError as e:
        raise _http_error(e)

    return ValidateFieldMappingsOut(
        data=MappingValidationOut.from_result(evaluation.validation, payload=evaluation.mapping.payload),
    )


@router.post("/delivery/preview-mapping", response_model=PreviewMappingOut)
async def preview_mapping(
    body: PreviewMappingRequest,
    db: AsyncSession = Depends(get_db),
    orchestrator: DispatchOrchestrator = Depends(get_orchestrator),
) -> PreviewMappingOut:
    try:
        company = await load_company(db, body.company_id)
        snapshot = await orchestrator.fetch_order(body.order_id) if body.order_id else SAMPLE_ORDER
        evaluation = evaluate_mapping(
            snapshot,
            rules=body.field_mappings,
            custom_fields=body.custom_fields,
            settings=company_settings(company),
        )
    except DispatchHubError as e:
        raise _http_error(e)

    return PreviewMappingOut(data=PreviewMappingData(
        preview_data=evaluation.mapping.payload,
        sample_order=str(snapshot.get("orderNumber") or snapshot.get("_id") or body.order_id or ""),
        diagnostics=[d.to_dict() for d in evaluation.mapping.diagnostics],
        validation=MappingValidationOut.from_result(evaluation.validation),
    ))


@router.post("/delivery/calculate-fee", response_model=FeeQuoteOut)
async def calculate_delivery_fee(
    body: CalculateFeeRequest,
    db: AsyncSession = Depends(get_db),
) -> FeeQuoteOut:
    try:
        company = await load_company(db, body.company_id)
        quote = quote_delivery_fee(
            company_settings(company),
            weight=body.weight,
            distance_km=body.distance_km,
            region=body.region,
            company_id=company.id,
        )
    except (CompanyNotFoundError, ConfigurationError) as e:
        raise _http_error(e)
    return FeeQuoteOut(fee=quote.fee, calculation=quote.calculation, region=quote.region)


@router.get("/delivery/status/{order_id}/{company_id}", response_model=DeliveryOrderOut)
async def get_delivery_status(
    order_id: str,
    company_id: str,
    db: AsyncSession = Depends(get_db),
) -> DeliveryOrderOut:
    record = await find_delivery_order(db, order_id=order_id, company_id=company_id)
    if not record:
        raise HTTPException(status_code=404, detail="Delivery order not found")
    return _delivery_order_out(record)


@router.put("/delivery/status/{order_id}/{company_id}", response_model=DeliveryOrderOut)
async def update_delivery_status(
    order_id: str,
    company_id: str,
    body: DeliveryStatusUpdate,
    db: AsyncSession = Depends(get_db),
) -> DeliveryOrderOut:
    record = await find_delivery_order(db, order_id=order_id, company_id=company_id)
    if not record:
        raise HTTPException(status_code=404, detail="Delivery order not found")

    try:
        record.status = advance(record.status, body.status).value
    except InvalidStatusTransitionError as e:
        raise _http_error(e)
    if body.external_status is not None:
        record.external_status = body.external_status

    await db.commit()
    await db.refresh(record)

    log.info("delivery status updated order=%s company=%s status=%s", order_id, company_id, record.status)
    return _delivery_order_out(record)


@router.get("/delivery/orders", response_model=list[DeliveryOrderOut])
async def list_delivery_orders(
    company_id: str | None = Query(default=None, alias="companyId"),
    status: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> list[DeliveryOrderOut]:
    stmt = select(DeliveryOrder).order_by(DeliveryOrder.created_at.desc()).limit(limit)
    if company_id:
        stmt = stmt.where(DeliveryOrder.company_id == company_id)
    if status:
        stmt = stmt.where(DeliveryOrder.status == status)

    rows = (await db.execute(stmt)).scalars().all()
    return [_delivery_order_out(r) for r in rows]
