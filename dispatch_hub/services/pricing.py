from __future__ import annotations

from dataclasses import dataclass

from dispatch_hub.core.errors import ConfigurationError
from dispatch_hub.schemas.company import CompanySettings


@dataclass(frozen=True)
class FeeQuote:
    fee: float
    calculation: str
    region: str | None = None


def quote_delivery_fee(
    settings: CompanySettings,
    *,
    weight: float | None = None,
    distance_km: float | None = None,
    region: str | None = None,
    company_id: str | None = None,
) -> FeeQuote:
    if region and settings.supported_regions:
        allowed = {r.strip().lower() for r in settings.supported_regions}
        if region.strip().lower() not in allowed:
            raise ConfigurationError(
                f"Region '{region}' is not served by this delivery company",
                company_id=company_id,
                issues=[{"code": "UNSUPPORTED_REGION", "field": "region"}],
            )

    calc = settings.price_calculation
    if calc == "weight":
        if weight is None:
            raise ConfigurationError("Weight is required for weight-based pricing", company_id=company_id,
                                     issues=[{"code": "MISSING_WEIGHT", "field": "weight"}])
        fee = settings.base_price * weight
    elif calc == "distance":
        if distance_km is None:
            raise ConfigurationError("Distance is required for distance-based pricing", company_id=company_id,
                                     issues=[{"code": "MISSING_DISTANCE", "field": "distanceKm"}])
        fee = settings.base_price * distance_km
    else:
        fee = settings.base_price

    return FeeQuote(fee=round(fee, 2), calculation=calc, region=region)
