"""Static reference tables: allow/block list, country and domain policies."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from leadflow.db.base import Base


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AllowBlockEntry(Base):
    """
    Allow/block override for a contact.

    contact_value holds the PII digest for email/phone entries and the
    lowercase domain for domain entries. Overrides rate limits and domain checks.
    """

    __tablename__ = "allow_block_entries"

    contact_type: Mapped[str] = mapped_column(String(10), primary_key=True)
    contact_value: Mapped[str] = mapped_column(String(255), primary_key=True)
    list_type: Mapped[str] = mapped_column(String(10), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_now)


class CountryPolicy(Base):
    __tablename__ = "country_policies"

    country_code: Mapped[str] = mapped_column(String(2), primary_key=True)
    policy_type: Mapped[str] = mapped_column(String(20), nullable=False)


class DomainPolicy(Base):
    __tablename__ = "domain_policies"

    domain: Mapped[str] = mapped_column(String(255), primary_key=True)
    policy_type: Mapped[str] = mapped_column(String(20), nullable=False)
