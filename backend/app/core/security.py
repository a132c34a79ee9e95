import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken

from app.core.config import settings

# Stored OAuth tokens carry this prefix so callers can tell them apart from plain tokens.
ENCRYPTED_SECRET_PREFIX = "enc:"


def _get_fernet() -> Fernet:
    secret_source = settings.token_encryption_key or settings.secret_key
    digest = hashlib.sha256(secret_source.encode("utf-8")).digest()
    key = base64.urlsafe_b64encode(digest)
    return Fernet(key)


def is_encrypted_secret(value: str | None) -> bool:
    return bool(value) and value.startswith(ENCRYPTED_SECRET_PREFIX)


def encrypt_secret(secret: str) -> str:
    if not secret:
        return ""
    fernet = _get_fernet()
    return ENCRYPTED_SECRET_PREFIX + fernet.encrypt(secret.encode("utf-8")).decode("utf-8")


def decrypt_secret(encrypted_secret: str) -> str:
    if not encrypted_secret:
        return ""
    token = encrypted_secret.removeprefix(ENCRYPTED_SECRET_PREFIX)
    fernet = _get_fernet()
    try:
        return fernet.decrypt(token.encode("utf-8")).decode("utf-8")
    except InvalidToken as exc:
        raise ValueError("Invalid encrypted secret") from exc


def reveal_secret(value: str) -> str:
    """Decrypt ``value`` when it carries the encryption marker, else return it unchanged."""
    if is_encrypted_secret(value):
        return decrypt_secret(value)
    return value
