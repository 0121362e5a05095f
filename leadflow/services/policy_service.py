"""Reference lookups: allow/block list, country policy, domain policy."""

from __future__ import annotations

from sqlalchemy.orm import Session

from leadflow.core.geo import GeoLocation
from leadflow.db.enums import (
    ContactType,
    CountryClassification,
    CountryPolicyType,
    DomainPolicyType,
    ListType,
)
from leadflow.db.models import AllowBlockEntry, CountryPolicy, DomainPolicy


def get_list_type(db: Session, contact_type: ContactType, contact_value: str | None) -> ListType | None:
    """Return allow/block for a contact, None when not listed."""
    if not contact_value:
        return None
    entry = db.get(AllowBlockEntry, (contact_type.value, contact_value))
    if not entry:
        return None
    return ListType(entry.list_type)


def is_allow_listed(db: Session, contact_type: ContactType, contact_value: str | None) -> bool:
    return get_list_type(db, contact_type, contact_value) == ListType.ALLOW


def is_block_listed(db: Session, contact_type: ContactType, contact_value: str | None) -> bool:
    return get_list_type(db, contact_type, contact_value) == ListType.BLOCK


def get_domain_policy(db: Session, domain: str | None) -> DomainPolicyType | None:
    if not domain:
        return None
    policy = db.get(DomainPolicy, domain.lower())
    if not policy:
        return None
    return DomainPolicyType(policy.policy_type)


def classify_country(db: Session, location: GeoLocation) -> CountryClassification:
    """
    Resolve the country verdict for a geolocation.

    Fails closed: an unknown location is UNKNOWN, never ALLOW.
    """
    if not location.country:
        return CountryClassification.UNKNOWN
    policy = db.get(CountryPolicy, location.country.upper())
    if policy and policy.policy_type == CountryPolicyType.BLOCKED.value:
        return CountryClassification.BLOCKED
    return CountryClassification.ALLOW


def upsert_list_entry(
    db: Session,
    *,
    contact_type: ContactType,
    contact_value: str,
    list_type: ListType,
    note: str | None = None,
) -> AllowBlockEntry:
    entry = db.get(AllowBlockEntry, (contact_type.value, contact_value))
    if entry is None:
        entry = AllowBlockEntry(contact_type=contact_type.value, contact_value=contact_value)
        db.add(entry)
    entry.list_type = list_type.value
    entry.note = note
    db.commit()
    return entry


def upsert_country_policy(db: Session, country_code: str, policy_type: CountryPolicyType) -> CountryPolicy:
    code = country_code.upper()
    policy = db.get(CountryPolicy, code)
    if policy is None:
        policy = CountryPolicy(country_code=code)
        db.add(policy)
    policy.policy_type = policy_type.value
    db.commit()
    return policy


def upsert_domain_policy(db: Session, domain: str, policy_type: DomainPolicyType) -> DomainPolicy:
    key = domain.lower()
    policy = db.get(DomainPolicy, key)
    if policy is None:
        policy = DomainPolicy(domain=key)
        db.add(policy)
    policy.policy_type = policy_type.value
    db.commit()
    return policy
