"""Security audit model."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from leadflow.db.base import Base
from leadflow.db.types import JsonType


class SecurityEvent(Base):
    """
    Audit row for a rejected CAPTCHA, untrusted origin or bad internal secret.

    Security:
    - Never stores secrets/tokens
    - Identity is the email digest, never the raw address
    - IP captured from X-Forwarded-For or client IP
    """

    __tablename__ = "security_events"
    __table_args__ = (Index("idx_security_events_type_created", "event_type", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    client_identity: Mapped[str | None] = mapped_column(String(64), nullable=True)
    form_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    details: Mapped[dict | None] = mapped_column(JsonType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        nullable=False, default=lambda: datetime.now(timezone.utc)
    )
