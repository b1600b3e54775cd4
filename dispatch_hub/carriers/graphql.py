from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from dispatch_hub.carriers.base import BaseCarrierAdapter, CarrierResult, bearer_headers, extract_identifiers, raise_for_transport
from dispatch_hub.carriers.formats import ApiFormat
from dispatch_hub.core.errors import TransportError, UnexpectedCarrierShapeError
from dispatch_hub.services.credential_vault import Credentials


DEFAULT_MUTATION = """
mutation CreateDeliveryOrder($input: JSON!) {
  createOrder(input: $input) {
    id
    status
    trackingNumber
  }
}
""".strip()


def build_request(payload: dict[str, Any], mutation: str | None = None) -> dict[str, Any]:
    return {"query": mutation or DEFAULT_MUTATION, "variables": {"input": payload}}


def _first_object(data: Mapping[str, Any]) -> Any:
    # data = {"createOrder": {...}} for a single-field mutation
    for v in data.values():
        if v is not None:
            return v
    return None


class GraphQLCarrierAdapter(BaseCarrierAdapter):
    """
    GraphQL carriers: one mutation with the payload as the `input` variable.
    Success means `data` present and no top-level `errors`.
    """

    api_format = ApiFormat.GRAPHQL

    async def _send(
        self,
        *,
        payload: dict[str, Any],
        credentials: Credentials,
        base_url: str,
        options: Mapping[str, Any],
    ) -> CarrierResult:
        res = await self._http.post_json(
            url=base_url,
            headers=bearer_headers(credentials, options),
            json_body=build_request(payload, options.get("graphql_mutation")),
        )
        raise_for_transport(res)

        body = res.detail
        errors = body.get("errors")
        if errors:
            messages = [str(e.get("message", e)) if isinstance(e, Mapping) else str(e) for e in errors] \
                if isinstance(errors, list) else [str(errors)]
            raise TransportError("; ".join(messages), code="CARRIER_REJECTED", raw_response=body, http_status=res.status_code)

        data = body.get("data")
        if not isinstance(data, Mapping) or _first_object(data) is None:
            raise UnexpectedCarrierShapeError("GraphQL response has no data", raw_response=body, http_status=res.status_code)

        external_id, tracking, status = extract_identifiers(_first_object(data))
        return CarrierResult(
            ok=True,
            raw_response=body,
            external_order_id=external_id,
            external_status=status,
            tracking_number=tracking,
            http_status=res.status_code,
        )
