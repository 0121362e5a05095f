"""Data normalization utilities for consistent lookups."""

from typing import Optional

import phonenumbers


def normalize_phone(phone: Optional[str], default_region: Optional[str] = None) -> Optional[str]:
    """
    Normalize phone to E.164 format (+12025551234).

    Numbers without a leading "+" are parsed against default_region
    (falls back to US).

    Raises:
        ValueError: If phone cannot be parsed or is not a valid number
    """
    if not phone:
        return None

    cleaned = phone.strip()
    region = None if cleaned.startswith("+") else (default_region or "US").upper()
    try:
        parsed = phonenumbers.parse(cleaned, region)
    except phonenumbers.NumberParseException as exc:
        raise ValueError(f"Invalid phone number: {exc}") from exc

    if not phonenumbers.is_valid_number(parsed):
        raise ValueError("Invalid phone number")

    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)


def normalize_email(email: Optional[str]) -> Optional[str]:
    """
    Normalize email to lowercase.

    Args:
        email: Raw email input

    Returns:
        Lowercased email or None if empty
    """
    if not email:
        return None
    return email.strip().lower()


def email_domain(email: Optional[str]) -> str:
    """Return the lowercase domain part of an email ("" when absent)."""
    normalized = normalize_email(email) or ""
    _, _, domain = normalized.rpartition("@")
    return domain


def normalize_name(name: Optional[str]) -> Optional[str]:
    """
    Normalize name by stripping whitespace and collapsing multiple spaces.

    Args:
        name: Raw name input

    Returns:
        Cleaned name or None if empty
    """
    if not name:
        return None
    # Strip leading/trailing whitespace and collapse internal spaces
    return " ".join(name.split())


def normalize_country(code: Optional[str]) -> Optional[str]:
    """Uppercase a 2-letter ISO country code, None for anything else."""
    if not code:
        return None
    cleaned = code.strip().upper()
    if len(cleaned) != 2 or not cleaned.isalpha():
        return None
    return cleaned
