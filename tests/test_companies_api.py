COMPANY = {
    "name": "Odoo Express",
    "code": "ODX",
    "apiUrl": "https://odoo.carrier.test/jsonrpc",
    "apiFormat": "JSON-RPC",
    "settings": {"priceCalculation": "fixed", "basePrice": 2.5, "jsonrpcMethod": "delivery.create"},
    "fieldMappings": [
        {"sourceField": "orderNumber", "targetField": "reference", "required": True},
    ],
    "credentials": {"login": "ops", "password": "s3cret-pass", "database": "prod"},
}


async def test_create_and_get_company_never_exposes_secrets(client):
    r = await client.post("/v1/delivery/companies", json=COMPANY)
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["apiFormat"] == "jsonrpc"
    assert body["credentialsConfigured"] == {"api_key": False, "login": True, "password": True, "database": True}
    assert "s3cret-pass" not in r.text

    r = await client.get(f"/v1/delivery/companies/{body['id']}")
    assert r.status_code == 200
    assert r.json()["settings"]["jsonrpc_method"] == "delivery.create"
    assert "s3cret-pass" not in r.text


async def test_create_rejects_unknown_format_and_duplicate_targets(client):
    r = await client.post("/v1/delivery/companies", json={**COMPANY, "apiFormat": "ftp"})
    assert r.status_code == 422

    dupes = [
        {"sourceField": "orderNumber", "targetField": "reference"},
        {"sourceField": "_id", "targetField": "reference"},
    ]
    r = await client.post("/v1/delivery/companies", json={**COMPANY, "fieldMappings": dupes})
    assert r.status_code == 422


async def test_get_unknown_company_is_404(client):
    r = await client.get("/v1/delivery/companies/dco_missing")
    assert r.status_code == 404


async def test_format_change_requires_credentials_in_same_request(client, make_company):
    company = await make_company()
    url = f"/v1/delivery/companies/{company.id}"

    r = await client.patch(url, json={"apiFormat": "jsonrpc"})
    assert r.status_code == 400

    r = await client.patch(url, json={"apiFormat": "jsonrpc", "credentials": {"login": "ops"}})
    assert r.status_code == 400
    assert "password" in r.json()["detail"]

    r = await client.patch(url, json={
        "apiFormat": "jsonrpc",
        "credentials": {"login": "ops", "password": "pw", "database": "prod"},
    })
    assert r.status_code == 200
    body = r.json()
    assert body["apiFormat"] == "jsonrpc"
    assert body["credentialsConfigured"] == {"api_key": True, "login": True, "password": True, "database": True}


async def test_patch_credentials_absent_keeps_null_clears(client, make_company):
    company = await make_company(credentials={"api_key": "sk-1", "login": "ops"})
    url = f"/v1/delivery/companies/{company.id}"

    r = await client.patch(url, json={"name": "Renamed", "credentials": {"login": None}})
    assert r.status_code == 200
    body = r.json()
    assert body["name"] == "Renamed"
    assert body["credentialsConfigured"]["api_key"] is True
    assert body["credentialsConfigured"]["login"] is False


async def test_deactivate_is_soft_and_blocks_dispatch(client, make_company):
    company = await make_company()

    r = await client.delete(f"/v1/delivery/companies/{company.id}")
    assert r.status_code == 200
    assert r.json()["isActive"] is False

    r = await client.get(f"/v1/delivery/companies/{company.id}")
    assert r.status_code == 200

    r = await client.post("/v1/delivery/send", json={"orderId": "ord-1", "companyId": company.id})
    assert r.status_code == 400
    issues = r.json()["detail"]["details"]["issues"]
    assert [i["code"] for i in issues] == ["COMPANY_INACTIVE"]


async def test_update_field_mappings(client, make_company):
    company = await make_company()
    url = f"/v1/delivery/companies/{company.id}/field-mappings"
    payload = {
        "fieldMappings": [
            {"sourceField": "customerInfo.mobile", "targetField": "phone", "transform": "phone_last10", "required": True},
            {"sourceField": "shippingAddress.city", "targetField": "city", "defaultValue": "Amman", "defaultValuePriority": True},
        ],
        "customFields": {"service_type": "same_day"},
    }

    r = await client.put(url, json=payload)
    assert r.status_code == 200, r.text
    assert r.json()["customFields"] == {"service_type": "same_day"}

    r = await client.get(f"/v1/delivery/companies/{company.id}")
    rules = r.json()["fieldMappings"]
    assert [m["targetField"] for m in rules] == ["phone", "city"]
    assert rules[1]["defaultValuePriority"] is True

    r = await client.post("/v1/delivery/validate-field-mappings", json={"orderId": "ord-1", "companyId": company.id})
    assert r.json()["data"]["payloadPreview"] == {"phone": "2771234567", "city": "Amman", "service_type": "same_day"}


async def test_update_field_mappings_rejects_duplicate_targets(client, make_company):
    company = await make_company()
    r = await client.put(f"/v1/delivery/companies/{company.id}/field-mappings", json={
        "fieldMappings": [
            {"sourceField": "a", "targetField": "x"},
            {"sourceField": "b", "targetField": "x"},
        ],
    })
    assert r.status_code == 422


async def test_validate_config_reports_errors_and_warnings(client, make_company):
    rest = await make_company(credentials={}, field_mappings=[])
    r = await client.get(f"/v1/delivery/companies/{rest.id}/validate-config")
    assert r.status_code == 200
    body = r.json()
    assert body["isValid"] is True
    assert {i["code"] for i in body["issues"]} == {"NO_API_KEY", "NO_FIELD_MAPPINGS"}
    assert {i["severity"] for i in body["issues"]} == {"warning"}

    broken = await make_company(api_format="jsonrpc", api_url="", credentials={"login": "ops", "password": "pw"})
    r = await client.get(f"/v1/delivery/companies/{broken.id}/validate-config")
    body = r.json()
    assert body["isValid"] is False
    codes = [(i["code"], i["field"]) for i in body["issues"] if i["severity"] == "error"]
    assert codes == [("MISSING_API_URL", "apiUrl"), ("MISSING_CREDENTIAL", "credentials.database")]


async def test_malformed_pattern_policy_fails_config_check_and_validation(client, make_company):
    company = await make_company(settings={"field_policies": {"city": {"type": "pattern", "pattern": "([A-Z"}}})

    r = await client.get(f"/v1/delivery/companies/{company.id}/validate-config")
    body = r.json()
    assert body["isValid"] is False
    assert [i["code"] for i in body["issues"]] == ["INVALID_SETTINGS"]

    r = await client.post("/v1/delivery/validate-field-mappings", json={"orderId": "ord-1", "companyId": company.id})
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "CONFIGURATION_ERROR"
