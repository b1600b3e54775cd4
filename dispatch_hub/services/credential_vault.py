from __future__ import annotations

import logging
from dataclasses import dataclass, field

from cryptography.fernet import Fernet

from dispatch_hub.carriers.formats import ApiFormat
from dispatch_hub.core.crypto import InvalidToken, decrypt_json, default_fernet, encrypt_json
from dispatch_hub.core.errors import ConfigurationError
from dispatch_hub.models.delivery_company import DeliveryCompany


log = logging.getLogger(__name__)

CREDENTIAL_FIELDS = ("api_key", "login", "password", "database")

# Fields a carrier cannot be called without, per API format.
# REST/GraphQL/SOAP fall back to an unauthenticated call when no key is configured.
REQUIRED_CREDENTIALS: dict[ApiFormat, tuple[str, ...]] = {
    ApiFormat.REST: (),
    ApiFormat.JSONRPC: ("login", "password", "database"),
    ApiFormat.SOAP: (),
    ApiFormat.GRAPHQL: (),
}


@dataclass(frozen=True)
class Credentials:
    api_key: str | None = field(default=None, repr=False)
    login: str | None = None
    password: str | None = field(default=None, repr=False)
    database: str | None = None

    def missing_for(self, api_format: ApiFormat) -> list[str]:
        return [f for f in REQUIRED_CREDENTIALS[api_format] if not getattr(self, f)]

    def configured(self) -> dict[str, bool]:
        return {f: bool(getattr(self, f)) for f in CREDENTIAL_FIELDS}


class CredentialVault:
    """
    Encrypts carrier secrets at rest and decrypts them for a single dispatch.
    Nothing decrypted is cached: callers get a fresh Credentials per resolve().
    """

    def __init__(self, fernet: Fernet | None = None):
        self._fernet = fernet

    def _f(self) -> Fernet:
        return self._fernet or default_fernet()

    def seal(self, secrets: dict[str, str | None]) -> str | None:
        clean = {k: v for k, v in secrets.items() if k in CREDENTIAL_FIELDS and v}
        if not clean:
            return None
        return encrypt_json(clean, fernet=self._f())

    def open(self, ciphertext: str | None, *, company_id: str | None = None) -> Credentials:
        if not ciphertext:
            return Credentials()
        try:
            data = decrypt_json(ciphertext, fernet=self._f())
        except InvalidToken:
            log.warning("credentials for company=%s cannot be decrypted with the current key", company_id)
            raise ConfigurationError(
                "Stored credentials cannot be decrypted",
                company_id=company_id,
                issues=[{"code": "CREDENTIALS_UNREADABLE", "field": "credentials"}],
            )
        return Credentials(**{k: data.get(k) for k in CREDENTIAL_FIELDS})

    def resolve(self, company: DeliveryCompany) -> Credentials:
        """
        Decrypts and checks the company's credentials for its API format.
        Raises ConfigurationError when a required secret is missing.
        """
        creds = self.open(company.credentials_ciphertext, company_id=company.id)
        missing = creds.missing_for(ApiFormat(company.api_format))
        if missing:
            raise ConfigurationError(
                f"Missing credentials for {company.api_format}: {', '.join(missing)}",
                company_id=company.id,
                issues=[{"code": "MISSING_CREDENTIAL", "field": f} for f in missing],
            )
        return creds

    def apply_update(self, ciphertext: str | None, changes: dict[str, str | None]) -> str | None:
        """
        `changes` holds only the fields present in the update request:
        a string replaces the stored secret, None clears it, absent keeps it.
        """
        current = self.open(ciphertext)
        merged = {f: getattr(current, f) for f in CREDENTIAL_FIELDS}
        for k, v in changes.items():
            if k in CREDENTIAL_FIELDS:
                merged[k] = v
        return self.seal(merged)

    def describe(self, ciphertext: str | None) -> dict[str, bool]:
        try:
            return self.open(ciphertext).configured()
        except ConfigurationError:
            return {f: False for f in CREDENTIAL_FIELDS}
