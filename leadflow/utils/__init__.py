"""Utility modules."""

from leadflow.utils.identifiers import generate_external_id
from leadflow.utils.normalization import (
    email_domain,
    normalize_country,
    normalize_email,
    normalize_name,
    normalize_phone,
)

__all__ = [
    # Normalization
    "email_domain",
    "normalize_country",
    "normalize_email",
    "normalize_name",
    "normalize_phone",
    # Identifiers
    "generate_external_id",
]
