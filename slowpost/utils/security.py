# slowpost/utils/security.py
"""
Edit password hashing

Stored form is ``<salt hex>$<derived key hex>``. The key comes from
bcrypt_pbkdf, so every guess costs ``rounds`` bcrypt invocations.
"""

import hmac
import secrets

import bcrypt

SALT_BYTES = 16
KEY_BYTES = 32
SEPARATOR = "$"
DEFAULT_ROUNDS = 64


def _derive(password: str, salt: bytes, rounds: int) -> bytes:
    return bcrypt.kdf(
        password=password.encode("utf-8"),
        salt=salt,
        desired_key_bytes=KEY_BYTES,
        rounds=rounds,
    )


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    salt = secrets.token_bytes(SALT_BYTES)
    derived = _derive(password, salt, rounds)
    return f"{salt.hex()}{SEPARATOR}{derived.hex()}"


def verify_password(password: str, stored: str, rounds: int = DEFAULT_ROUNDS) -> bool:
    """Never raises; anything malformed simply fails to verify."""
    if not isinstance(password, str) or not isinstance(stored, str):
        return False

    salt_hex, sep, key_hex = stored.partition(SEPARATOR)
    if not sep or not salt_hex or not key_hex:
        return False

    try:
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(key_hex)
    except ValueError:
        return False

    if len(expected) != KEY_BYTES:
        return False

    try:
        candidate = _derive(password, salt, rounds)
    except ValueError:
        return False

    if len(candidate) != len(expected):
        return False
    return hmac.compare_digest(candidate, expected)
