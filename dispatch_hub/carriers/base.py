from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from dispatch_hub.carriers.formats import ApiFormat
from dispatch_hub.core.errors import TransportError
from dispatch_hub.services.credential_vault import Credentials
from dispatch_hub.services.http_client import HttpResult, HubHttpClient


log = logging.getLogger(__name__)

_ID_KEYS = ("id", "orderId", "order_id", "externalId", "external_id", "reference", "shipmentId", "shipment_id")
_TRACKING_KEYS = ("trackingNumber", "tracking_number", "trackingId", "tracking_id", "awb", "waybill")
_STATUS_KEYS = ("status", "state", "orderStatus", "order_status")

ADAPTER_ERROR = "ADAPTER_ERROR"


@dataclass(frozen=True)
class CarrierResult:
    ok: bool
    raw_response: dict[str, Any] = field(default_factory=dict)
    external_order_id: str | None = None
    external_status: str | None = None
    tracking_number: str | None = None
    http_status: int | None = None
    error_code: str | None = None
    error_message: str | None = None


@runtime_checkable
class CarrierAdapter(Protocol):
    """
    A carrier adapter handles transport & auth for one API style.
    It receives the already mapped and validated payload.
    """

    api_format: ApiFormat

    async def send(
        self,
        *,
        payload: dict[str, Any],
        credentials: Credentials,
        base_url: str,
        options: Mapping[str, Any] | None = None,
    ) -> CarrierResult:
        ...


def _scalar(v: Any) -> str | None:
    if v is None or isinstance(v, (dict, list)):
        return None
    s = str(v).strip()
    return s or None


def extract_identifiers(body: Any) -> tuple[str | None, str | None, str | None]:
    """
    Best-effort (external_order_id, tracking_number, external_status) from a
    carrier JSON body. Looks at the top level, then at a nested "data"/"order"/"result".
    """
    if not isinstance(body, Mapping):
        return _scalar(body), None, None

    candidates: list[Mapping[str, Any]] = [body]
    for k in ("data", "order", "result", "shipment"):
        nested = body.get(k)
        if isinstance(nested, Mapping):
            candidates.append(nested)

    def _pick(keys: tuple[str, ...]) -> str | None:
        for c in candidates:
            for k in keys:
                v = _scalar(c.get(k))
                if v:
                    return v
        return None

    return _pick(_ID_KEYS), _pick(_TRACKING_KEYS), _pick(_STATUS_KEYS)


def bearer_headers(credentials: Credentials, options: Mapping[str, Any] | None) -> dict[str, str]:
    headers = {str(k): str(v) for k, v in ((options or {}).get("extra_headers") or {}).items()}
    if credentials.api_key:
        headers["Authorization"] = f"Bearer {credentials.api_key}"
    return headers


def raise_for_transport(res: HttpResult) -> None:
    """Timeouts, connection errors and non-2xx answers all become TransportError."""
    if res.ok:
        return
    raise TransportError(
        res.error_message or "carrier request failed",
        code=res.error_code,
        raw_response=res.detail,
        http_status=res.status_code,
    )


class BaseCarrierAdapter:
    """
    Shared send() for all API styles. Subclasses implement _send() and may raise
    TransportError (or UnexpectedCarrierShapeError); this boundary turns those,
    and any unexpected exception, into a failed CarrierResult so callers never
    branch on transport.
    """

    api_format: ApiFormat

    def __init__(self, http: HubHttpClient):
        self._http = http

    async def send(
        self,
        *,
        payload: dict[str, Any],
        credentials: Credentials,
        base_url: str,
        options: Mapping[str, Any] | None = None,
    ) -> CarrierResult:
        try:
            return await self._send(payload=payload, credentials=credentials, base_url=base_url, options=options or {})
        except TransportError as e:
            log.warning(
                "carrier call failed format=%s url=%s code=%s status=%s",
                self.api_format.value, base_url, e.code, e.http_status,
            )
            return CarrierResult(
                ok=False,
                raw_response=e.raw_response,
                http_status=e.http_status,
                error_code=e.code,
                error_message=e.message,
            )
        except Exception as e:
            # Adapter bug or an httpx error outside the request phase; still recorded as an attempt
            log.exception("carrier adapter crashed format=%s url=%s", self.api_format.value, base_url)
            return CarrierResult(
                ok=False,
                raw_response={"error": type(e).__name__},
                error_code=ADAPTER_ERROR,
                error_message=str(e) or type(e).__name__,
            )

    async def _send(
        self,
        *,
        payload: dict[str, Any],
        credentials: Credentials,
        base_url: str,
        options: Mapping[str, Any],
    ) -> CarrierResult:
        raise NotImplementedError
