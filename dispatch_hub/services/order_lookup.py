from __future__ import annotations

import logging
from typing import Any, Protocol

from dispatch_hub.core.errors import OrderLookupError, OrderNotFoundError
from dispatch_hub.services.http_client import HubHttpClient


log = logging.getLogger(__name__)


class OrderLookup(Protocol):
    """Returns the nested order snapshot the field mappings read from."""

    async def get_order(self, order_id: str) -> dict[str, Any]:
        ...


class HttpOrderLookup:
    """Reads orders from the order service: GET {base_url}/orders/{order_id}."""

    def __init__(self, http: HubHttpClient, base_url: str):
        self._http = http
        self._base_url = base_url.rstrip("/")

    async def get_order(self, order_id: str) -> dict[str, Any]:
        res = await self._http.get_json(url=f"{self._base_url}/orders/{order_id}")
        if res.status_code == 404:
            raise OrderNotFoundError(f"Order {order_id} not found", detail={"order_id": order_id})
        if not res.ok:
            log.warning("order lookup failed order=%s code=%s", order_id, res.error_code)
            raise OrderLookupError(
                f"Order service error: {res.error_message}",
                detail={"order_id": order_id, "error_code": res.error_code},
            )

        # Order service wraps documents as {"data": {...}}; accept bare documents too
        data = res.detail.get("data", res.detail)
        if not isinstance(data, dict):
            raise OrderLookupError("Order service returned an unexpected body", detail={"order_id": order_id})
        return data


# Used by preview-mapping when no order id is given
SAMPLE_ORDER: dict[str, Any] = {
    "_id": "sample-order",
    "orderNumber": "ORD-SAMPLE-0001",
    "customerInfo": {
        "firstName": "Sara",
        "lastName": "Haddad",
        "email": "sara@example.com",
        "mobile": "077-123-4567",
        "secondaryMobile": "",
    },
    "shippingAddress": {
        "street": "12 Rainbow St",
        "city": "Amman",
        "state": "Amman",
        "zipCode": "11118",
        "country": "Jordan",
    },
    "items": [
        {"product": {"_id": "prd_1", "name": "Linen Shirt"}, "quantity": 2, "price": 15.0},
    ],
    "totalAmount": 30.0,
    "deliveryFee": 3.0,
    "status": "processing",
    "createdAt": "2024-01-01T10:00:00Z",
}
