"""Security utilities: one-time code generation and comparison."""

import hmac
import re
import secrets

CODE_PATTERN = re.compile(r"^[0-9]{6}$")


def generate_code() -> str:
    """Generate a random 6-digit code in 100000..999999 (never zero-padded)."""
    num = secrets.randbelow(900000) + 100000
    return str(num)


def codes_match(candidate: str, stored: str) -> bool:
    """Compare codes as opaque strings, in constant time."""
    return hmac.compare_digest(candidate.encode(), stored.encode())
