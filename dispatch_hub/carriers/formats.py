from enum import Enum


class ApiFormat(str, Enum):
    REST = "rest"
    JSONRPC = "jsonrpc"
    SOAP = "soap"
    GRAPHQL = "graphql"

    @classmethod
    def parse(cls, value: str) -> "ApiFormat":
        """Accepts the labels operators type in ("REST", "JSON-RPC", "GraphQL", ...)."""
        key = value.strip().lower().replace("-", "").replace("_", "")
        return cls(key)
