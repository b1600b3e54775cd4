import json
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from dispatch_hub.core.config import settings


@lru_cache(maxsize=1)
def default_fernet() -> Fernet:
    return Fernet(settings.credentials_encryption_key.get_secret_value().encode("utf-8"))


def encrypt_json(data: dict, *, fernet: Fernet | None = None) -> str:
    f = fernet or default_fernet()
    raw = json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    token = f.encrypt(raw)
    return token.decode("utf-8")


def decrypt_json(token: str, *, fernet: Fernet | None = None) -> dict:
    f = fernet or default_fernet()
    raw = f.decrypt(token.encode("utf-8"))
    return json.loads(raw.decode("utf-8"))


__all__ = ["InvalidToken", "decrypt_json", "default_fernet", "encrypt_json"]
