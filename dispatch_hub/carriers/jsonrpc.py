from __future__ import annotations

import uuid
from collections.abc import Mapping
from typing import Any

from dispatch_hub.carriers.base import BaseCarrierAdapter, CarrierResult, extract_identifiers, raise_for_transport
from dispatch_hub.carriers.formats import ApiFormat
from dispatch_hub.core.errors import TransportError, UnexpectedCarrierShapeError
from dispatch_hub.services.credential_vault import Credentials


DEFAULT_METHOD = "create_order"


def build_envelope(*, payload: dict[str, Any], credentials: Credentials, method: str) -> dict[str, Any]:
    # Payload keys cannot shadow the auth params
    params = {**payload, "login": credentials.login, "password": credentials.password, "db": credentials.database}
    return {
        "jsonrpc": "2.0",
        "id": uuid.uuid4().hex,
        "method": method,
        "params": params,
    }


def _error_message(error: Any) -> str:
    if isinstance(error, Mapping):
        data = error.get("data")
        if isinstance(data, Mapping) and data.get("message"):
            return str(data["message"])
        return str(error.get("message") or error)
    return str(error)


class JsonRpcCarrierAdapter(BaseCarrierAdapter):
    """
    JSON-RPC carriers (Odoo-style): login/password/database travel inside params.
    Success means a `result` key and no `error` key in the response body.
    """

    api_format = ApiFormat.JSONRPC

    async def _send(
        self,
        *,
        payload: dict[str, Any],
        credentials: Credentials,
        base_url: str,
        options: Mapping[str, Any],
    ) -> CarrierResult:
        envelope = build_envelope(
            payload=payload,
            credentials=credentials,
            method=str(options.get("jsonrpc_method") or DEFAULT_METHOD),
        )
        res = await self._http.post_json(url=base_url, json_body=envelope)
        raise_for_transport(res)

        body = res.detail
        if "error" in body and body["error"] is not None:
            raise TransportError(
                _error_message(body["error"]),
                code="CARRIER_REJECTED",
                raw_response=body,
                http_status=res.status_code,
            )
        if "result" not in body:
            raise UnexpectedCarrierShapeError(
                "JSON-RPC response has neither result nor error",
                raw_response=body,
                http_status=res.status_code,
            )

        external_id, tracking, status = extract_identifiers(body["result"])
        return CarrierResult(
            ok=True,
            raw_response=body,
            external_order_id=external_id,
            external_status=status,
            tracking_number=tracking,
            http_status=res.status_code,
        )
