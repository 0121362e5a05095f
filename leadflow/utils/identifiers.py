"""Synthetic identifiers handed to downstream systems."""

import secrets
import string
import time

_BASE36 = string.digits + string.ascii_lowercase
_ALPHANUMERIC = string.ascii_lowercase + string.digits

EXTERNAL_ID_LENGTH = 18


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("base36 encoding requires a non-negative value")
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_external_id(now_ms: int | None = None) -> str:
    """
    Build an 18-character external identifier.

    Layout: one letter, the low 7 base-36 digits of the millisecond
    timestamp, then 10 random lowercase alphanumerics.
    """
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    stamp = to_base36(now_ms).rjust(7, "0")[-7:]
    prefix = secrets.choice(string.ascii_lowercase)
    suffix = "".join(secrets.choice(_ALPHANUMERIC) for _ in range(10))
    return f"{prefix}{stamp}{suffix}"
