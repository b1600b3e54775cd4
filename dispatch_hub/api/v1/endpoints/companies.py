import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_hub.api.deps import get_vault
from dispatch_hub.core.db import get_db
from dispatch_hub.core.errors import CompanyNotFoundError
from dispatch_hub.models.delivery_company import DeliveryCompany
from dispatch_hub.schemas.company import (
    CompanyConfigCheckOut,
    DeliveryCompanyCreate,
    DeliveryCompanyOut,
    DeliveryCompanyUpdate,
)
from dispatch_hub.schemas.delivery import FieldMappingsUpdateOut
from dispatch_hub.schemas.field_mapping import FieldMappingConfig, dump_field_mappings, load_field_mappings
from dispatch_hub.services.company_config import check_company_config
from dispatch_hub.services.credential_vault import CredentialVault
from dispatch_hub.services.dispatch import load_company


log = logging.getLogger(__name__)
router = APIRouter()


def _company_out(row: DeliveryCompany, vault: CredentialVault) -> DeliveryCompanyOut:
    return DeliveryCompanyOut(
        id=row.id,
        name=row.name,
        code=row.code,
        api_url=row.api_url,
        api_format=row.api_format,
        is_active=row.is_active,
        settings=row.settings or {},
        field_mappings=load_field_mappings(row.field_mappings),
        custom_fields=row.custom_fields or {},
        credentials_configured=vault.describe(row.credentials_ciphertext),
        created_at=str(row.created_at),
        updated_at=str(row.updated_at),
    )


async def _get_company_or_404(db: AsyncSession, company_id: str) -> DeliveryCompany:
    try:
        return await load_company(db, company_id)
    except CompanyNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.post("/delivery/companies", response_model=DeliveryCompanyOut, status_code=201)
async def create_delivery_company(
    payload: DeliveryCompanyCreate,
    db: AsyncSession = Depends(get_db),
    vault: CredentialVault = Depends(get_vault),
) -> DeliveryCompanyOut:
    row = DeliveryCompany(
        name=payload.name,
        code=payload.code,
        api_url=payload.api_url,
        api_format=payload.api_format.value,
        is_active=payload.is_active,
        settings=payload.settings.model_dump(),
        field_mappings=dump_field_mappings(payload.field_mappings),
        custom_fields=payload.custom_fields,
        credentials_ciphertext=vault.seal(payload.credentials.model_dump()),
    )
    db.add(row)
    await db.commit()
    await db.refresh(row)

    log.info("delivery company created id=%s format=%s", row.id, row.api_format)
    return _company_out(row, vault)


@router.get("/delivery/companies/{company_id}", response_model=DeliveryCompanyOut)
async def get_delivery_company(
    company_id: str,
    db: AsyncSession = Depends(get_db),
    vault: CredentialVault = Depends(get_vault),
) -> DeliveryCompanyOut:
    row = await _get_company_or_404(db, company_id)
    return _company_out(row, vault)


@router.patch("/delivery/companies/{company_id}", response_model=DeliveryCompanyOut)
async def update_delivery_company(
    company_id: str,
    payload: DeliveryCompanyUpdate,
    db: AsyncSession = Depends(get_db),
    vault: CredentialVault = Depends(get_vault),
) -> DeliveryCompanyOut:
    row = await _get_company_or_404(db, company_id)
    fields = payload.model_fields_set

    format_changed = payload.api_format is not None and payload.api_format.value != row.api_format
    if format_changed and payload.credentials is None:
        raise HTTPException(
            status_code=400,
            detail="Changing the API format requires re-supplying credentials in the same request",
        )

    if "name" in fields and payload.name is not None:
        row.name = payload.name
    if "code" in fields:
        row.code = payload.code
    if "api_url" in fields:
        row.api_url = payload.api_url
    if "is_active" in fields and payload.is_active is not None:
        row.is_active = payload.is_active
    if "settings" in fields and payload.settings is not None:
        row.settings = payload.settings.model_dump()

    if payload.credentials is not None:
        ciphertext = vault.apply_update(row.credentials_ciphertext, payload.credentials.changes())
        if format_changed:
            # Revalidate credentials against the new format before accepting it
            missing = vault.open(ciphertext).missing_for(payload.api_format)
            if missing:
                raise HTTPException(
                    status_code=400,
                    detail=f"Credentials incomplete for {payload.api_format.value}: {', '.join(missing)}",
                )
            row.api_format = payload.api_format.value
        row.credentials_ciphertext = ciphertext

    await db.commit()
    await db.refresh(row)
    return _company_out(row, vault)


@router.delete("/delivery/companies/{company_id}", response_model=DeliveryCompanyOut)
async def deactivate_delivery_company(
    company_id: str,
    db: AsyncSession = Depends(get_db),
    vault: CredentialVault = Depends(get_vault),
) -> DeliveryCompanyOut:
    # Soft delete: delivery orders keep referencing the company
    row = await _get_company_or_404(db, company_id)
    row.is_active = False
    await db.commit()
    await db.refresh(row)

    log.info("delivery company deactivated id=%s", row.id)
    return _company_out(row, vault)


@router.put("/delivery/companies/{company_id}/field-mappings", response_model=FieldMappingsUpdateOut)
async def update_field_mappings(
    company_id: str,
    payload: FieldMappingConfig,
    db: AsyncSession = Depends(get_db),
) -> FieldMappingsUpdateOut:
    row = await _get_company_or_404(db, company_id)

    row.field_mappings = dump_field_mappings(payload.field_mappings)
    row.custom_fields = payload.custom_fields
    await db.commit()

    return FieldMappingsUpdateOut(
        company_id=row.id,
        field_mappings=payload.field_mappings,
        custom_fields=payload.custom_fields,
    )


@router.get("/delivery/companies/{company_id}/validate-config", response_model=CompanyConfigCheckOut)
async def validate_company_config(
    company_id: str,
    db: AsyncSession = Depends(get_db),
    vault: CredentialVault = Depends(get_vault),
) -> CompanyConfigCheckOut:
    row = await _get_company_or_404(db, company_id)
    issues = check_company_config(row, vault)
    return CompanyConfigCheckOut(
        company_id=row.id,
        is_valid=not any(i.severity == "error" for i in issues),
        issues=issues,
    )

