import pytest

from dispatch_hub.core.errors import ConfigurationError
from dispatch_hub.schemas.company import CompanySettings
from dispatch_hub.services.pricing import quote_delivery_fee


def test_fixed_price_is_base_price():
    q = quote_delivery_fee(CompanySettings(base_price=3.5))
    assert (q.fee, q.calculation) == (3.5, "fixed")


def test_weight_and_distance_pricing():
    assert quote_delivery_fee(CompanySettings(price_calculation="weight", base_price=1.25), weight=4).fee == 5.0
    assert quote_delivery_fee(CompanySettings(price_calculation="distance", base_price=0.3), distance_km=12.5).fee == 3.75


def test_weight_pricing_requires_weight():
    with pytest.raises(ConfigurationError) as exc:
        quote_delivery_fee(CompanySettings(price_calculation="weight", base_price=1))
    assert exc.value.issues[0]["code"] == "MISSING_WEIGHT"


def test_unsupported_region_is_rejected():
    settings = CompanySettings(base_price=2, supported_regions=["Amman", "Zarqa"])
    assert quote_delivery_fee(settings, region="amman").fee == 2
    with pytest.raises(ConfigurationError) as exc:
        quote_delivery_fee(settings, region="Aqaba")
    assert exc.value.issues[0]["code"] == "UNSUPPORTED_REGION"
