import asyncio

import httpx
from sqlalchemy import func, select

from dispatch_hub.api.v1.endpoints import delivery as delivery_endpoints
from dispatch_hub.core.config import settings
from dispatch_hub.models.delivery_order import DeliveryOrder


async def test_send_success(client, carrier, make_company):
    carrier.reply(httpx.Response(201, json={"id": "ext-123"}))
    company = await make_company()

    r = await client.post("/v1/delivery/send", json={"orderId": "ord-1", "companyId": company.id})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["success"] is True
    assert body["pending"] is False
    data = body["data"]
    assert data["externalOrderId"] == "ext-123"
    assert data["trackingNumber"] == "ext-123"
    assert data["status"] == "acknowledged"
    assert data["isResend"] is False
    assert data["resendAttempts"] == 0
    assert data["deliveryCompanyResponse"] == {"id": "ext-123"}


async def test_send_validation_failure_returns_400_and_records_nothing(client, orders, carrier, make_company, session_factory):
    orders.orders["ord-2"] = {**orders.orders["ord-1"], "shippingAddress": {"street": "", "city": "Amman"}}
    company = await make_company()

    r = await client.post("/v1/delivery/send", json={"orderId": "ord-2", "companyId": company.id})
    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert body["missingFields"] == [{
        "sourceField": "shippingAddress.street",
        "targetField": "delivery_address",
        "hasDefaultValue": False,
        "description": body["errors"][0],
        "defaultValue": None,
    }]
    assert body["invalidFields"] == []
    assert carrier.requests == []

    async with session_factory() as db:
        assert (await db.execute(select(func.count()).select_from(DeliveryOrder))).scalar_one() == 0


async def test_send_carrier_failure_is_recorded_and_reported(client, carrier, make_company):
    carrier.reply(httpx.Response(500, json={"error": "boom"}))
    company = await make_company()

    r = await client.post("/v1/delivery/send", json={"orderId": "ord-1", "companyId": company.id})
    assert r.status_code == 502
    body = r.json()
    assert body["success"] is False
    assert body["error"]["code"] == "HTTP_500"
    assert body["data"]["status"] == "rejected"
    assert body["data"]["deliveryOrderId"]

    r = await client.post("/v1/delivery/send", json={"orderId": "ord-1", "companyId": company.id, "isResend": True})
    assert r.status_code == 200
    assert r.json()["data"]["resendAttempts"] == 1
    assert r.json()["data"]["isResend"] is True


async def test_send_error_mapping(client, make_company):
    r = await client.post("/v1/delivery/send", json={"orderId": "ord-1", "companyId": "dco_missing"})
    assert r.status_code == 404
    assert r.json()["detail"]["code"] == "COMPANY_NOT_FOUND"

    company = await make_company()
    r = await client.post("/v1/delivery/send", json={"orderId": "ord-1", "companyId": company.id, "isResend": True})
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "RESEND_NOT_ALLOWED"

    jsonrpc = await make_company(api_format="jsonrpc", credentials={})
    r = await client.post("/v1/delivery/send", json={"orderId": "ord-1", "companyId": jsonrpc.id})
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "CONFIGURATION_ERROR"


async def test_send_returns_pending_and_still_records_slow_dispatch(client, carrier, make_company, session_factory, monkeypatch):
    monkeypatch.setattr(settings, "dispatch_wait_seconds", 0.05)
    carrier.delay = 0.3
    company = await make_company()

    r = await client.post("/v1/delivery/send", json={"orderId": "ord-1", "companyId": company.id})
    assert r.status_code == 202
    assert r.json()["pending"] is True

    await asyncio.gather(*list(delivery_endpoints._inflight))
    async with session_factory() as db:
        record = (await db.execute(select(DeliveryOrder))).scalar_one()
    assert record.status == "acknowledged"


async def test_validate_field_mappings_is_read_only(client, carrier, make_company, session_factory):
    company = await make_company()

    r = await client.post("/v1/delivery/validate-field-mappings", json={"orderId": "ord-1", "companyId": company.id})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["isValid"] is True
    assert data["missingFields"] == []
    assert data["payloadPreview"]["customer_phone"] == "2771234567"
    assert carrier.requests == []

    async with session_factory() as db:
        assert (await db.execute(select(func.count()).select_from(DeliveryOrder))).scalar_one() == 0


async def test_preview_mapping_uses_sample_order(client, make_company):
    company = await make_company()

    r = await client.post("/v1/delivery/preview-mapping", json={
        "companyId": company.id,
        "fieldMappings": [
            {"sourceField": "customerInfo.mobile", "targetField": "customer_phone", "transform": "phone_digits", "required": True},
            {"sourceField": "customerInfo.secondaryMobile", "targetField": "alt_phone"},
            {"sourceField": "shippingAddress", "targetField": "address", "transform": "format_address"},
        ],
        "customFields": {"service": "express"},
    })
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert data["sampleOrder"] == "ORD-SAMPLE-0001"
    assert data["previewData"] == {
        "customer_phone": "0771234567",
        "address": "12 Rainbow St, Amman, Amman, 11118, Jordan",
        "service": "express",
    }
    assert [d["targetField"] for d in data["diagnostics"]] == ["customer_phone", "alt_phone", "address"]
    assert data["validation"]["isValid"] is True


async def test_preview_mapping_with_real_order(client, make_company):
    company = await make_company()
    r = await client.post("/v1/delivery/preview-mapping", json={
        "companyId": company.id,
        "orderId": "ord-1",
        "fieldMappings": [{"sourceField": "orderNumber", "targetField": "reference"}],
    })
    assert r.status_code == 200
    assert r.json()["data"]["previewData"] == {"reference": "ORD-1001"}

    r = await client.post("/v1/delivery/preview-mapping", json={"companyId": company.id, "orderId": "ord-404"})
    assert r.status_code == 404


async def test_status_update_follows_state_machine(client, carrier, make_company):
    carrier.reply(httpx.Response(201, json={"id": "ext-5"}))
    company = await make_company()
    await client.post("/v1/delivery/send", json={"orderId": "ord-1", "companyId": company.id})

    url = f"/v1/delivery/status/ord-1/{company.id}"
    r = await client.get(url)
    assert r.status_code == 200
    assert r.json()["status"] == "acknowledged"
    assert r.json()["resendHistory"] == []

    r = await client.put(url, json={"status": "in_transit", "externalStatus": "OUT_FOR_DELIVERY"})
    assert r.status_code == 200
    assert r.json()["status"] == "in_transit"
    assert r.json()["externalStatus"] == "OUT_FOR_DELIVERY"

    r = await client.put(url, json={"status": "sent"})
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "INVALID_STATUS_TRANSITION"

    r = await client.put(url, json={"status": "lost"})
    assert r.status_code == 422

    r = await client.get(f"/v1/delivery/status/ord-9/{company.id}")
    assert r.status_code == 404


async def test_list_delivery_orders_filters(client, make_company):
    a = await make_company()
    b = await make_company(name="Other Couriers")
    await client.post("/v1/delivery/send", json={"orderId": "ord-1", "companyId": a.id})
    await client.post("/v1/delivery/send", json={"orderId": "ord-1", "companyId": b.id})

    r = await client.get("/v1/delivery/orders", params={"companyId": a.id})
    assert r.status_code == 200
    assert [o["companyId"] for o in r.json()] == [a.id]

    r = await client.get("/v1/delivery/orders", params={"status": "rejected"})
    assert r.json() == []


async def test_calculate_fee(client, make_company):
    fixed = await make_company()
    r = await client.post("/v1/delivery/calculate-fee", json={"companyId": fixed.id})
    assert r.status_code == 200
    assert r.json() == {"fee": 3.5, "calculation": "fixed", "region": None}

    by_weight = await make_company(settings={"price_calculation": "weight", "base_price": 2})
    r = await client.post("/v1/delivery/calculate-fee", json={"companyId": by_weight.id, "weight": 1.5})
    assert r.json()["fee"] == 3.0

    r = await client.post("/v1/delivery/calculate-fee", json={"companyId": by_weight.id})
    assert r.status_code == 400
    assert r.json()["detail"]["details"]["issues"][0]["code"] == "MISSING_WEIGHT"


async def test_validate_field_mappings_lists_required_field_filled_by_default(client, make_company):
    company = await make_company(field_mappings=[
        {"sourceField": "shippingAddress.city", "targetField": "city", "required": True},
        {"sourceField": "customerInfo.secondaryMobile", "targetField": "alt_phone", "required": True, "defaultValue": "0000000000"},
    ])

    r = await client.post("/v1/delivery/validate-field-mappings", json={"orderId": "ord-1", "companyId": company.id})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["isValid"] is True
    assert [(m["targetField"], m["hasDefaultValue"], m["defaultValue"]) for m in data["missingFields"]] == [
        ("alt_phone", True, "0000000000"),
    ]
    assert data["payloadPreview"]["alt_phone"] == "0000000000"
