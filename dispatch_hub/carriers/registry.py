from __future__ import annotations

from dispatch_hub.carriers.base import BaseCarrierAdapter, CarrierAdapter
from dispatch_hub.carriers.formats import ApiFormat
from dispatch_hub.carriers.graphql import GraphQLCarrierAdapter
from dispatch_hub.carriers.jsonrpc import JsonRpcCarrierAdapter
from dispatch_hub.carriers.rest import RestCarrierAdapter
from dispatch_hub.carriers.soap import SoapCarrierAdapter
from dispatch_hub.services.http_client import HubHttpClient


_ADAPTER_TYPES: dict[ApiFormat, type[BaseCarrierAdapter]] = {
    ApiFormat.REST: RestCarrierAdapter,
    ApiFormat.JSONRPC: JsonRpcCarrierAdapter,
    ApiFormat.SOAP: SoapCarrierAdapter,
    ApiFormat.GRAPHQL: GraphQLCarrierAdapter,
}


class CarrierAdapterRegistry:
    """One adapter instance per API format, all sharing the same HTTP client."""

    def __init__(self, http: HubHttpClient):
        self._adapters: dict[ApiFormat, CarrierAdapter] = {fmt: cls(http) for fmt, cls in _ADAPTER_TYPES.items()}

    def get(self, api_format: ApiFormat) -> CarrierAdapter:
        if api_format not in self._adapters:
            raise KeyError(f"No carrier adapter registered for api_format={api_format}")
        return self._adapters[api_format]

    def register(self, adapter: CarrierAdapter) -> None:
        self._adapters[adapter.api_format] = adapter


def supported_formats() -> list[str]:
    return sorted(f.value for f in _ADAPTER_TYPES)
