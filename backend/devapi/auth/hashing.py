"""
API key and identifier hashing utilities.

Security notes:
  • Keys are 256-bit random strings and are hashed with plain SHA-256.
  • The same one-way digest fingerprints external user ids; there is
    no per-call salt, so the same input always maps to the same row.
  • Raw keys carry the icb_live_ prefix, which makes a leaked key
    recognisable in logs and secret scanners.
  • generate_api_key() returns the raw key exactly once - the caller
    must display it to the user immediately. It is never stored.
"""

import hashlib
import secrets

API_KEY_PREFIX = "icb_live_"

# Characters of the raw key kept for display ("icb_live_" + 7 hex chars).
DISPLAY_PREFIX_LENGTH = 16


def hash_secret(raw_value: str) -> str:
    """
    Hash a raw credential or identifier using SHA-256.

    Returns the hex digest string for storage/lookup.
    """
    return hashlib.sha256(raw_value.encode("utf-8")).hexdigest()


def has_key_prefix(raw_key: str) -> bool:
    return raw_key.startswith(API_KEY_PREFIX)


def display_prefix(raw_key: str) -> str:
    """Short, non-secret slice shown in the portal. Never used for auth."""
    return raw_key[:DISPLAY_PREFIX_LENGTH]


def generate_api_key() -> tuple[str, str]:
    """
    Generate a new API key.

    Returns:
        (raw_key, key_hash) - raw_key is shown once, key_hash is stored.
    """
    random_part = secrets.token_hex(32)  # 64 hex chars = 256 bits
    raw_key = f"{API_KEY_PREFIX}{random_part}"
    key_hash = hash_secret(raw_key)
    return raw_key, key_hash
