"""Encryption and digest utilities for contact data."""

import hashlib
import hmac
import json

from cryptography.fernet import Fernet, InvalidToken

from leadflow.core.config import settings
from leadflow.utils.normalization import normalize_email, normalize_phone


_data_fernet: Fernet | None = None
_ENCRYPTED_PREFIX = "enc:"


def get_data_fernet() -> Fernet:
    """Get Fernet instance for field-level PII encryption."""
    global _data_fernet
    if _data_fernet is None:
        if not settings.DATA_ENCRYPTION_KEY:
            raise RuntimeError(
                "DATA_ENCRYPTION_KEY not configured. "
                'Generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"'
            )
        _data_fernet = Fernet(settings.DATA_ENCRYPTION_KEY.encode())
    return _data_fernet


def encrypt_value(value: str) -> str:
    """Encrypt a string value for PII at rest."""
    if value is None:
        return value
    if value == "":
        return ""
    if value.startswith(_ENCRYPTED_PREFIX):
        return value
    encrypted = get_data_fernet().encrypt(value.encode()).decode()
    return f"{_ENCRYPTED_PREFIX}{encrypted}"


def decrypt_value(value: str) -> str:
    """Decrypt a stored PII value."""
    if value is None:
        return value
    if value == "":
        return ""
    if not value.startswith(_ENCRYPTED_PREFIX):
        raise ValueError("Encrypted data is missing prefix")
    token = value[len(_ENCRYPTED_PREFIX) :]
    try:
        return get_data_fernet().decrypt(token.encode()).decode()
    except InvalidToken:
        raise ValueError("Invalid or corrupted encrypted data")


def hash_pii(value: str, purpose: str = "pii") -> str:
    """Hash PII deterministically for lookups and uniqueness."""
    if not settings.PII_HASH_KEY:
        raise RuntimeError("PII_HASH_KEY not configured.")
    if value is None:
        return ""
    data = f"{purpose}:{value}".encode()
    return hmac.new(settings.PII_HASH_KEY.encode(), data, hashlib.sha256).hexdigest()


def hash_email(email: str) -> str:
    """Normalize and hash an email address (the client identity)."""
    normalized = normalize_email(email) or ""
    return hash_pii(normalized, purpose="email")


def hash_phone(phone: str | None) -> str:
    """Normalize and hash a phone number."""
    if not phone:
        return ""
    try:
        normalized = normalize_phone(phone) or ""
    except ValueError:
        normalized = phone.strip()
    return hash_pii(normalized, purpose="phone")


def content_digest(payload: dict | None) -> str:
    """SHA-256 over canonical JSON (sorted keys, compact separators)."""
    canonical = json.dumps(payload or {}, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
