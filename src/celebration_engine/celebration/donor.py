"""
Donor information checks and the donation-time snapshot

Verified donors must give their name, address, occupation and employer.
Entries that are missing, incomplete or obviously false are flagged for
the recipient committee's review; a flag never blocks the donation.

Fun fact: "Best efforts" is a term of art in campaign-finance law - a
committee that asks for employer details and flags the junk answers is
considered to have tried hard enough.
"""

import re
from collections import Counter
from datetime import datetime
from typing import Any

from celebration_engine.celebration.models import (
    DonorInfoSnapshot,
    ValidationFlag,
    ValidationFlags,
    ValidationSummary,
)
from celebration_engine.compliance.models import ComplianceTier
from celebration_engine.kernel.logging import get_logger

logger = get_logger(__name__)

# USPS state, district, territory and military codes
VALID_STATES = frozenset(
    """
    AL AK AZ AR CA CO CT DE FL GA HI ID IL IN IA KS KY LA ME MD MA MI MN MS MO
    MT NE NV NH NJ NM NY NC ND OH OK OR PA RI SC SD TN TX UT VT VA WA WV WI WY
    DC PR GU VI AS MP AA AE AP
    """.split()
)

PLACEHOLDER_KEYWORDS = (
    "-", ".", "--", "...", "???", "idk", "na", "nil", "null", "same", "test",
    "tbd", "unk", "xxx", "yyy", "zzz", "asdf", "lorem", "n/a", "none",
    "no one", "qwerty", "refuse", "refused", "sample", "testing", "unknown",
    "dont know", "no idea", "prefer not", "don't know",
)

PROFANITY_KEYWORDS = (
    "cia", "fbi", "god", "nsa", "hell", "mars", "moon", "elon", "jesus",
    "santa", "batman", "heaven", "nowhere", "somewhere", "spiderman",
    "spider man", "your mom", "the queen", "area 51", "at your house",
    "milky way", "planet earth", "white house", "under a bridge",
    "1600 pennsylvania ave",
)

JOKEY_ADDRESS_KEYWORDS = (
    "hell", "mars", "moon", "heaven", "nowhere", "somewhere", "area 51",
    "at your house", "milky way", "planet earth", "white house",
    "under a bridge", "1600 pennsylvania ave",
)

GENERIC_OCCUPATIONS = frozenset({"worker", "employee", "staff", "manager", "owner"})

NOT_EMPLOYED_OCCUPATIONS = frozenset(
    {"disabled", "retired", "student", "unemployed", "homemaker", "not employed"}
)

# Employer spellings that normalize to a standard value
STANDARD_EMPLOYERS = {
    "none": "None",
    "retired": "None",
    "student": "None",
    "disabled": "None",
    "homemaker": "None",
    "unemployed": "None",
    "not employed": "None",
    "me": "Self-employed",
    "self": "Self-employed",
    "myself": "Self-employed",
    "freelance": "Self-employed",
    "consultant": "Self-employed",
    "independent": "Self-employed",
    "own business": "Self-employed",
    "sole proprietor": "Self-employed",
}

SHORT_EMPLOYER_ALLOWLIST = frozenset({"IBM", "3M", "AT&T"})

REPEATED_CHARS = re.compile(r"^(.)\1{3,}$")
KEYBOARD_MASH = re.compile(r"^(as?df|qwe?r?ty|zxcv|poiuy|lkjh)+$", re.IGNORECASE)
INITIALS_ONLY = re.compile(r"^([A-Z]\.){1,3}$")
STREET_FORMAT = re.compile(r"(?=.*\d)(?=.*[A-Za-z])")
US_ZIP = re.compile(r"^\d{5}(-\d{4})?$")
REPEATED_ZIP = re.compile(r"^(\d)\1{4}(-\1{4})?$")


def normalize_text(text: str | None) -> str:
    """Trim, collapse whitespace and title-case"""
    if not text:
        return ""
    return " ".join(word[:1].upper() + word[1:].lower() for word in text.split())


def contains_keyword(text: str | None, keywords: tuple[str, ...]) -> bool:
    """
    Case-insensitive keyword match on word boundaries

    Keywords made only of punctuation ("-", "...") match when they are the
    whole value, so "St. Louis" or "Smith-Jones" are not placeholders.
    """
    if not text:
        return False
    lowered = text.strip().lower()
    for keyword in keywords:
        if not any(c.isalnum() for c in keyword):
            if lowered == keyword:
                return True
        elif re.search(rf"(?<![a-z0-9]){re.escape(keyword)}(?![a-z0-9])", lowered):
            return True
    return False


def _flag(field: str, reason: str, match: str, value: str | None) -> ValidationFlag:
    return ValidationFlag(
        field=field, reason=reason, match=match, original_value=value or "Not provided"
    )


def _content_flags(field: str, value: str) -> list[ValidationFlag]:
    """Placeholder, joke and gibberish checks shared by free-text fields"""
    flags = []
    if contains_keyword(value, PLACEHOLDER_KEYWORDS):
        flags.append(_flag(field, "Placeholder or junk content detected", "placeholder", value))
    if contains_keyword(value, PROFANITY_KEYWORDS):
        flags.append(_flag(field, "Profanity or joke content detected", "profanity", value))
    if REPEATED_CHARS.match(value):
        flags.append(_flag(field, "Repeated characters detected", "repeated_chars", value))
    if KEYBOARD_MASH.match(value):
        flags.append(_flag(field, "Keyboard mashing detected", "keyboard_mash", value))
    return flags


def validate_name(first_name: str, last_name: str) -> list[ValidationFlag]:
    full_name = f"{first_name} {last_name}".strip()
    flags = []
    if not first_name or not last_name:
        flags.append(_flag("name", "Missing required name fields", "missing", full_name))
    if full_name and " " not in full_name:
        flags.append(_flag("name", "Single word name provided", "single_word", full_name))
    if INITIALS_ONLY.match(full_name):
        flags.append(_flag("name", "Only initials provided", "initials_only", full_name))
    if full_name:
        flags.extend(_content_flags("name", full_name))
    return flags


def validate_address(address: str, city: str, state: str, zip_code: str) -> list[ValidationFlag]:
    flags = []
    if not (address and city and state and zip_code):
        full = " ".join(part for part in (address, city, state, zip_code) if part)
        flags.append(_flag("address", "Missing required address fields", "missing", full))

    if address:
        if contains_keyword(address, JOKEY_ADDRESS_KEYWORDS):
            flags.append(
                _flag("address", "Jokey or impossible address detected", "jokey_address", address)
            )
        if contains_keyword(address, PLACEHOLDER_KEYWORDS):
            flags.append(_flag("address", "Placeholder content detected", "placeholder", address))
        if not STREET_FORMAT.match(address):
            flags.append(
                _flag("address", "Address format may be invalid", "invalid_format", address)
            )

    if city:
        if city.strip().isdigit():
            flags.append(_flag("city", "City contains only numbers", "numeric_city", city))
        if contains_keyword(city, PLACEHOLDER_KEYWORDS):
            flags.append(_flag("city", "Placeholder city detected", "placeholder", city))

    if state and state.strip().upper() not in VALID_STATES:
        flags.append(_flag("state", "Invalid or non-US state code", "invalid_state", state))

    if zip_code:
        zip_code = zip_code.strip()
        # International postal codes are flagged for review, never blocked
        if not US_ZIP.match(zip_code):
            flags.append(
                _flag(
                    "zip",
                    "Non-US ZIP code format (may be international postal code)",
                    "invalid_format",
                    zip_code,
                )
            )
        if REPEATED_ZIP.match(zip_code):
            flags.append(
                _flag("zip", "ZIP code contains all same digits", "repeated_digits", zip_code)
            )
    return flags


def validate_occupation(occupation: str) -> list[ValidationFlag]:
    if not occupation:
        return [_flag("occupation", "Missing required occupation", "missing", occupation)]
    normalized = normalize_text(occupation)
    flags = _content_flags("occupation", normalized)
    for flag in flags:
        flag.original_value = occupation
    if normalized.lower() in GENERIC_OCCUPATIONS:
        flags.append(
            _flag("occupation", "Generic occupation may need clarification", "generic", occupation)
        )
    return flags


def validate_employer(employer: str, occupation: str = "") -> list[ValidationFlag]:
    if not employer:
        return [_flag("employer", "Missing required employer", "missing", employer)]
    normalized = normalize_text(employer)
    standard = STANDARD_EMPLOYERS.get(normalized.lower(), normalized)

    flags = _content_flags("employer", normalized)
    for flag in flags:
        flag.original_value = employer
    if len(normalized) <= 3 and employer.strip().upper() not in SHORT_EMPLOYER_ALLOWLIST:
        flags.append(_flag("employer", "Employer name may be too short", "too_short", employer))
    if (
        occupation.strip().lower() in NOT_EMPLOYED_OCCUPATIONS
        and standard not in ("None", "Self-employed")
        and not contains_keyword(normalized, PLACEHOLDER_KEYWORDS)
    ):
        flags.append(
            _flag("employer", "Employment status inconsistency detected", "inconsistency", employer)
        )
    return flags


def validate_donor_info(donor: dict[str, Any], compliance_tier: str) -> list[ValidationFlag]:
    """
    Flags for a donor's identity fields

    Only verified donors are checked; unverified donors give no identity
    details, so there is nothing to flag.
    """
    if compliance_tier != ComplianceTier.VERIFIED.value:
        return []
    flags = validate_name(donor.get("first_name", ""), donor.get("last_name", ""))
    flags += validate_address(
        donor.get("address", ""),
        donor.get("city", ""),
        donor.get("state", ""),
        donor.get("zip", ""),
    )
    flags += validate_occupation(donor.get("occupation", ""))
    flags += validate_employer(donor.get("employer", ""), donor.get("occupation", ""))
    return flags


def validation_summary(flags: list[ValidationFlag]) -> ValidationSummary:
    return ValidationSummary(
        total_flags=len(flags),
        field_flags=dict(Counter(flag.field for flag in flags)),
    )


def build_donor_snapshot(
    donor: dict[str, Any],
    compliance_tier: str,
    validated_at: datetime,
    validation_version: str = "1.0",
) -> DonorInfoSnapshot:
    """Freeze the donor's details and validation flags for a new celebration"""
    flags = validate_donor_info(donor, compliance_tier)
    if flags:
        logger.warning(
            "Donation has validation flags - flagged for recipient committee review",
            user_id=donor.get("user_id"),
            flag_count=len(flags),
            flags=[f"{flag.field}: {flag.reason}" for flag in flags],
            compliance_tier=compliance_tier,
        )

    return DonorInfoSnapshot(
        first_name=donor.get("first_name", ""),
        last_name=donor.get("last_name", ""),
        address=donor.get("address", ""),
        city=donor.get("city", ""),
        state=donor.get("state", ""),
        zip=donor.get("zip", ""),
        country=donor.get("country") or "United States",
        is_employed=donor.get("is_employed", False),
        occupation=donor.get("occupation", ""),
        employer=donor.get("employer", ""),
        compliance=compliance_tier,
        validation_flags=ValidationFlags(
            is_flagged=bool(flags),
            summary=validation_summary(flags),
            flags=flags,
            validated_at=validated_at,
            validation_version=validation_version,
        ),
    )
