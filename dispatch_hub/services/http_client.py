from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Literal

import httpx


HttpMethod = Literal["GET", "POST"]


@dataclass(frozen=True)
class HttpResult:
    ok: bool
    status_code: int | None
    detail: dict[str, Any]

    error_code: str | None = None
    error_message: str | None = None

    # `text` is capped for storage; `body` is what the carrier actually sent
    text: str | None = None
    body: bytes = b""


def _is_json_response(resp: httpx.Response) -> bool:
    ct = (resp.headers.get("content-type") or "").lower()
    return "application/json" in ct or ct.endswith("+json")


def _cap_text(s: str, *, max_chars: int) -> str:
    if len(s) <= max_chars:
        return s
    return s[:max_chars] + f"...(truncated, {len(s)} chars)"


class HubHttpClient:
    """
    Shared HTTP client wrapper for carrier adapters and the order lookup.

    - Uses one AsyncClient instance (connection pooling).
    - Every request is bounded by the configured timeout.
    - No retries: a failed dispatch is recorded and resent by an operator.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 20.0,
        max_response_body_chars: int = 20_000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._max_body = max_response_body_chars
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds), transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        *,
        method: HttpMethod,
        url: str,
        headers: Mapping[str, str] | None = None,
        json_body: Any = None,
        content: str | bytes | None = None,
    ) -> HttpResult:
        try:
            resp = await self._client.request(
                method=method,
                url=url,
                headers=dict(headers or {}),
                json=json_body,
                content=content,
            )
        except httpx.TimeoutException as e:
            return HttpResult(
                ok=False,
                status_code=None,
                detail={"error": "timeout"},
                error_code="TIMEOUT",
                error_message=str(e) or "carrier did not answer in time",
            )
        except httpx.RequestError as e:
            # DNS errors, connection refused, TLS, etc.
            return HttpResult(
                ok=False,
                status_code=None,
                detail={"error": "request_error"},
                error_code="REQUEST_ERROR",
                error_message=str(e) or type(e).__name__,
            )

        text = _cap_text(resp.text, max_chars=self._max_body)

        detail: dict[str, Any]
        if _is_json_response(resp):
            try:
                parsed = resp.json()
                detail = parsed if isinstance(parsed, dict) else {"data": parsed}
            except ValueError:
                detail = {"raw": text}
        else:
            # XML, HTML, plain text
            detail = {"raw": text, "content_type": resp.headers.get("content-type")}

        if 200 <= resp.status_code < 300:
            return HttpResult(ok=True, status_code=resp.status_code, detail=detail, text=text, body=resp.content)

        return HttpResult(
            ok=False,
            status_code=resp.status_code,
            detail=detail,
            error_code=f"HTTP_{resp.status_code}",
            error_message=f"HTTP {resp.status_code}",
            text=text,
            body=resp.content,
        )

    # helpers
    async def get_json(self, *, url: str, headers: Mapping[str, str] | None = None) -> HttpResult:
        return await self.request(method="GET", url=url, headers=headers)

    async def post_json(self, *, url: str, headers: Mapping[str, str] | None = None, json_body: Any = None) -> HttpResult:
        return await self.request(method="POST", url=url, headers=headers, json_body=json_body)

    async def post_content(self, *, url: str, content: str | bytes, headers: Mapping[str, str] | None = None) -> HttpResult:
        return await self.request(method="POST", url=url, headers=headers, content=content)
