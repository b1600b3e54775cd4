from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any
from xml.etree.ElementTree import Element, ParseError, SubElement, fromstring, tostring

from dispatch_hub.carriers.base import BaseCarrierAdapter, CarrierResult
from dispatch_hub.carriers.formats import ApiFormat
from dispatch_hub.core.errors import TransportError, UnexpectedCarrierShapeError
from dispatch_hub.services.credential_vault import Credentials
from dispatch_hub.services.redaction import redact_text


SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"
DEFAULT_NAMESPACE = "urn:delivery-dispatch"
DEFAULT_OPERATION = "CreateOrder"

_INVALID_NAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]")

_ID_TAGS = {"orderid", "id", "externalid", "reference", "shipmentid"}
_TRACKING_TAGS = {"trackingnumber", "trackingid", "awb", "waybill"}
_STATUS_TAGS = {"status", "state", "orderstatus"}


def _element_name(key: str) -> str:
    name = _INVALID_NAME_CHARS.sub("_", str(key).strip()) or "field"
    if not (name[0].isalpha() or name[0] == "_"):
        name = f"_{name}"
    return name


def _append_value(parent: Element, ns: str, key: str, value: Any) -> None:
    if isinstance(value, list):
        for item in value:
            _append_value(parent, ns, key, item)
        return

    el = SubElement(parent, f"{{{ns}}}{_element_name(key)}")
    if isinstance(value, Mapping):
        for k, v in value.items():
            _append_value(el, ns, k, v)
    elif isinstance(value, bool):
        el.text = "true" if value else "false"
    elif value is not None:
        el.text = str(value)


def build_envelope(
    *,
    payload: dict[str, Any],
    credentials: Credentials,
    namespace: str = DEFAULT_NAMESPACE,
    operation: str = DEFAULT_OPERATION,
) -> bytes:
    envelope = Element(f"{{{SOAP_ENV_NS}}}Envelope")

    auth = {"login": credentials.login, "password": credentials.password, "apiKey": credentials.api_key}
    if any(auth.values()):
        header = SubElement(envelope, f"{{{SOAP_ENV_NS}}}Header")
        auth_el = SubElement(header, f"{{{namespace}}}Auth")
        for k, v in auth.items():
            if v:
                SubElement(auth_el, f"{{{namespace}}}{k}").text = v

    body = SubElement(envelope, f"{{{SOAP_ENV_NS}}}Body")
    op = SubElement(body, f"{{{namespace}}}{operation}")
    for k, v in payload.items():
        _append_value(op, namespace, k, v)

    return tostring(envelope, encoding="utf-8", xml_declaration=True)


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _find_text(root: Element, names: set[str]) -> str | None:
    for el in root.iter():
        if _local(el.tag).lower() in names and el.text and el.text.strip():
            return el.text.strip()
    return None


def _fault_message(fault: Element) -> str:
    for el in fault.iter():
        if _local(el.tag).lower() in ("faultstring", "reason", "text") and el.text and el.text.strip():
            return el.text.strip()
    return "SOAP fault"


class SoapCarrierAdapter(BaseCarrierAdapter):
    """
    SOAP 1.1 carriers: payload keys become child elements of the operation
    element under a fixed namespace. Any Fault element means failure.
    """

    api_format = ApiFormat.SOAP

    async def _send(
        self,
        *,
        payload: dict[str, Any],
        credentials: Credentials,
        base_url: str,
        options: Mapping[str, Any],
    ) -> CarrierResult:
        operation = str(options.get("soap_operation") or DEFAULT_OPERATION)
        content = build_envelope(
            payload=payload,
            credentials=credentials,
            namespace=str(options.get("soap_namespace") or DEFAULT_NAMESPACE),
            operation=operation,
        )
        headers = {
            "Content-Type": "text/xml; charset=utf-8",
            "SOAPAction": str(options.get("soap_action") or operation),
        }
        res = await self._http.post_content(url=base_url, content=content, headers=headers)

        if res.status_code is None:
            # Timeout / connection error, nothing to parse
            raise TransportError(res.error_message or "carrier request failed", code=res.error_code, raw_response=res.detail)

        # Stored copy is capped and scrubbed; parsing uses the full body
        stored = redact_text(res.text or "", [credentials.api_key, credentials.login, credentials.password])
        raw = {"raw": stored, "http_status": res.status_code}
        try:
            root = fromstring(res.body or b"")
        except ParseError:
            if not res.ok:
                raise TransportError(res.error_message or "carrier request failed", code=res.error_code, raw_response=raw, http_status=res.status_code)
            raise UnexpectedCarrierShapeError("SOAP response is not XML", raw_response=raw, http_status=res.status_code)

        fault = next((el for el in root.iter() if _local(el.tag).lower() == "fault"), None)
        if fault is not None:
            raise TransportError(_fault_message(fault), code="SOAP_FAULT", raw_response=raw, http_status=res.status_code)
        if not res.ok:
            raise TransportError(res.error_message or "carrier request failed", code=res.error_code, raw_response=raw, http_status=res.status_code)

        return CarrierResult(
            ok=True,
            raw_response=raw,
            external_order_id=_find_text(root, _ID_TAGS),
            external_status=_find_text(root, _STATUS_TAGS),
            tracking_number=_find_text(root, _TRACKING_TAGS),
            http_status=res.status_code,
        )
