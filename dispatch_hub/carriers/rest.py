from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from dispatch_hub.carriers.base import BaseCarrierAdapter, CarrierResult, bearer_headers, extract_identifiers, raise_for_transport
from dispatch_hub.carriers.formats import ApiFormat
from dispatch_hub.services.credential_vault import Credentials


class RestCarrierAdapter(BaseCarrierAdapter):
    """
    Plain JSON POST to the carrier base URL.
    Auth: `Authorization: Bearer <api_key>` when a key is configured, none otherwise.
    Any 2xx is a success; the body is kept verbatim either way.
    """

    api_format = ApiFormat.REST

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
            json_body=payload,
        )
        raise_for_transport(res)

        external_id, tracking, status = extract_identifiers(res.detail)
        return CarrierResult(
            ok=True,
            raw_response=res.detail,
            external_order_id=external_id,
            external_status=status,
            tracking_number=tracking,
            http_status=res.status_code,
        )
