from __future__ import annotations

import hmac
from typing import Optional
from werkzeug.security import generate_password_hash, check_password_hash


def hash_password(plain: str, method: str = "pbkdf2:sha256", salt_length: int = 16) -> str:
    plain = (plain or "").strip()
    return generate_password_hash(plain, method=method, salt_length=salt_length)


def is_hashed(value: Optional[str]) -> bool:
    if not value:
        return False
    v = str(value)
    # Werkzeug hashes start with the method prefix, e.g. 'pbkdf2:sha256:'
    return v.startswith("pbkdf2:") or v.startswith("scrypt:")


def verify_admin_password(stored_value: Optional[str], candidate: Optional[str]) -> bool:
    """Check the shared admin password, stored either hashed or in plain text.

    An unset password never matches.
    """
    if not stored_value or not candidate:
        return False
    if is_hashed(stored_value):
        return check_password_hash(stored_value, candidate)
    return hmac.compare_digest(stored_value.encode("utf-8"), candidate.encode("utf-8"))


def bearer_token_matches(header: Optional[str], secret: Optional[str]) -> bool:
    """True when ``Authorization: Bearer <secret>`` carries the configured secret."""
    if not secret or not header or not header.startswith("Bearer "):
        return False
    return hmac.compare_digest(header[len("Bearer "):].strip().encode("utf-8"), secret.encode("utf-8"))
