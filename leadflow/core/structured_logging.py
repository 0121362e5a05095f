"""Structured logging helpers (PII-safe)."""

from typing import Any


def build_log_context(
    *,
    request_id: str | None = None,
    submission_id: str | None = None,
    step: str | None = None,
    form_name: str | None = None,
    message_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict."""
    context: dict[str, Any] = {}
    if request_id:
        context["request_id"] = request_id
    if submission_id:
        context["submission_id"] = submission_id
    if step:
        context["step"] = step
    if form_name:
        context["form_name"] = form_name
    if message_id:
        context["message_id"] = message_id
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context


def mask_digest(digest: str | None) -> str:
    """Shorten an identity digest for log lines."""
    if not digest:
        return ""
    return f"{digest[:10]}..."


def mask_email(email: str | None) -> str:
    """Mask an email for log lines: first character of the local part plus the domain."""
    if not email or "@" not in email:
        return ""
    local, _, domain = email.partition("@")
    return f"{local[:1]}***@{domain}"
