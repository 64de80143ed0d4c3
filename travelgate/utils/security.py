"""
Password Hashing.

PBKDF2-HMAC-SHA256 credential hashes stored as a single self-describing
string ``pbkdf2_sha256$<iterations>$<hex salt>$<hex hash>`` so the
iteration count can be raised later without invalidating stored hashes.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

__all__ = ["hash_password", "verify_password"]

_SCHEME: str = "pbkdf2_sha256"
_SALT_BYTES: int = 32


def _derive(password: str, salt: bytes, iterations: int) -> str:
    return hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt,
        iterations=iterations,
    ).hex()


def hash_password(password: str, iterations: int) -> str:
    """Derive a salted PBKDF2 hash for *password*.

    Parameters
    ----------
    password:
        The plaintext password to hash.
    iterations:
        PBKDF2 work factor (``AppConfig.PASSWORD_HASH_ITERATIONS``).
    """
    salt = secrets.token_bytes(_SALT_BYTES)
    return f"{_SCHEME}${iterations}${salt.hex()}${_derive(password, salt, iterations)}"


def verify_password(password: str, encoded: str) -> bool:
    """Return ``True`` when *password* matches the stored *encoded* hash.

    Malformed hashes never match.  The digest comparison is constant-time.
    """
    try:
        scheme, iterations_str, salt_hex, expected = encoded.split("$", 3)
        iterations = int(iterations_str)
        salt = bytes.fromhex(salt_hex)
    except ValueError:
        return False
    if scheme != _SCHEME or iterations <= 0:
        return False
    return hmac.compare_digest(_derive(password, salt, iterations), expected)
