"""
Seed reference policies: free/disposable email domains and blocked countries.

Run with: python -m scripts.seed_policies
Re-running is safe; existing rows are updated in place.
"""

import argparse

from leadflow.core.encryption import hash_email
from leadflow.db.enums import ContactType, CountryPolicyType, DomainPolicyType, ListType
from leadflow.db.session import SessionLocal
from leadflow.services import policy_service

FREE_DOMAINS = [
    "gmail.com", "googlemail.com", "yahoo.com", "hotmail.com", "outlook.com",
    "live.com", "aol.com", "icloud.com", "me.com", "proton.me", "protonmail.com",
    "gmx.com", "mail.com", "yandex.com", "zoho.com",
]

DISPOSABLE_DOMAINS = [
    "mailinator.com", "guerrillamail.com", "10minutemail.com", "tempmail.com",
    "trashmail.com", "yopmail.com", "sharklasers.com", "getnada.com",
]

BLOCKED_COUNTRIES = ["CU", "IR", "KP", "SY"]


def seed(allow_emails: list[str] | None = None) -> dict[str, int]:
    counts = {"free": 0, "disposable": 0, "countries": 0, "allow": 0}
    with SessionLocal() as db:
        for domain in FREE_DOMAINS:
            policy_service.upsert_domain_policy(db, domain, DomainPolicyType.FREE)
            counts["free"] += 1
        for domain in DISPOSABLE_DOMAINS:
            policy_service.upsert_domain_policy(db, domain, DomainPolicyType.DISPOSABLE)
            counts["disposable"] += 1
        for code in BLOCKED_COUNTRIES:
            policy_service.upsert_country_policy(db, code, CountryPolicyType.BLOCKED)
            counts["countries"] += 1
        for email in allow_emails or []:
            policy_service.upsert_list_entry(
                db,
                contact_type=ContactType.EMAIL,
                contact_value=hash_email(email),
                list_type=ListType.ALLOW,
                note="seeded",
            )
            counts["allow"] += 1
    return counts


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--allow-email", action="append", default=[], help="Allow-list an email (repeatable)")
    args = parser.parse_args()
    counts = seed(args.allow_email)
    print(
        f"Seeded {counts['free']} free domains, {counts['disposable']} disposable domains, "
        f"{counts['countries']} blocked countries, {counts['allow']} allow-listed emails"
    )


if __name__ == "__main__":
    main()
