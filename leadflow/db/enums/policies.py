"""Reference-table and dedup enums."""

from enum import Enum


class ContactType(str, Enum):
    EMAIL = "email"
    PHONE = "phone"
    DOMAIN = "domain"


class ListType(str, Enum):
    ALLOW = "allow"
    BLOCK = "block"


class CountryPolicyType(str, Enum):
    ALLOW = "allow"
    BLOCKED = "blocked"


class DomainPolicyType(str, Enum):
    FREE = "free"
    DISPOSABLE = "disposable"
    BLOCKED = "blocked"


class DedupStatus(str, Enum):
    PROCESSING = "processing"
    PROCESSED = "processed"


class RateLimitDimension(str, Enum):
    EMAIL = "email"
    PHONE = "phone"
    COMBINED = "combined"


class SecurityEventType(str, Enum):
    CAPTCHA_FAILED = "captcha_failed"
    CAPTCHA_UNAVAILABLE = "captcha_unavailable"
    UNTRUSTED_ORIGIN = "untrusted_origin"
    INTERNAL_SECRET_INVALID = "internal_secret_invalid"
