"""
ID generation using UUIDv7 (time-ordered UUIDs)

Celebrations, ledger entries and events all get sortable identifiers, so the
event log and every status ledger read in creation order.

Fun fact: UUIDv7 puts a millisecond timestamp in its first 48 bits, so two
ledger entries written a second apart sort correctly even as plain strings.
"""

import secrets
import time

SEED_KEY_PREFIX = "seed:"


def generate_id() -> str:
    """
    Generate a UUIDv7-like identifier (time-ordered UUID)

    Format: 8-4-4-4-12 hex characters (36 chars with hyphens)
    First 48 bits: Unix timestamp in milliseconds
    Remaining bits: version/variant markers plus randomness

    Returns:
        Sortable UUID string (e.g., "01908e9a-3b87-7000-8000-123456789abc")
    """
    timestamp_48 = int(time.time() * 1000) & 0xFFFFFFFFFFFF
    rand_12 = secrets.randbits(12)
    rand_62 = secrets.randbits(62)

    time_high = (timestamp_48 >> 16) & 0xFFFFFFFF
    time_low = timestamp_48 & 0xFFFF
    version_and_rand = 0x7000 | rand_12
    variant_and_rand = 0x8000 | ((rand_62 >> 48) & 0x3FFF)
    node = rand_62 & 0xFFFFFFFFFFFF

    return (
        f"{time_high:08x}-{time_low:04x}-{version_and_rand:04x}-"
        f"{variant_and_rand:04x}-{node:012x}"
    )


def generate_status_change_id() -> str:
    """Short, URL-safe id for a status ledger entry"""
    return f"sc_{secrets.token_urlsafe(12)}"


def is_seed_key(idempotency_key: str | None) -> bool:
    """Seeded demo data is excluded from sweeps and update queries"""
    return bool(idempotency_key) and idempotency_key.startswith(SEED_KEY_PREFIX)

