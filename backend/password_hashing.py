"""
Password hashing helpers.

SECURITY: Uses Argon2id (resistant to rainbow tables and GPU attacks).
Cost parameters come from ARGON2_* environment variables so they can be
raised without a code change; needs_rehash() flags hashes made with older
parameters.
"""

import os
import secrets
import string

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError

from errors import PasswordHashingError
from logger import logger

PASSWORD_CHARSET = string.ascii_letters + string.digits + "!@#$%^&*"
TOKEN_CHARSET = string.ascii_letters + string.digits

_hasher = None


def get_hasher() -> PasswordHasher:
    """Get or create the shared Argon2id hasher."""
    global _hasher
    if _hasher is None:
        _hasher = PasswordHasher(
            time_cost=int(os.getenv("ARGON2_TIME_COST", "3")),
            memory_cost=int(os.getenv("ARGON2_MEMORY_COST", "65536")),
            parallelism=int(os.getenv("ARGON2_PARALLELISM", "4")),
            hash_len=32,
            salt_len=16,
            type=Type.ID,
        )
    return _hasher


def hash_password(password: str) -> str:
    """
    Hash a password with Argon2id.

    The returned string embeds salt, parameters and version, so it is all
    that needs storing.
    """
    try:
        return get_hasher().hash(password)
    except Exception as e:
        logger.error("Password hashing failed", error_type=type(e).__name__)
        raise PasswordHashingError("Password hashing failed") from e


def verify_password(password: str, stored_hash: str) -> bool:
    """Check a password against a stored hash. Never raises."""
    try:
        return get_hasher().verify(stored_hash, password)
    except (VerificationError, InvalidHashError):
        return False


def needs_rehash(stored_hash: str) -> bool:
    """True if the hash was made with parameters other than the current ones."""
    try:
        return get_hasher().check_needs_rehash(stored_hash)
    except (InvalidHashError, ValueError):
        # Unparseable hashes are replaced on next login.
        return True


def generate_random_password(length: int = 12) -> str:
    return "".join(secrets.choice(PASSWORD_CHARSET) for _ in range(length))


def generate_random_token(length: int = 32) -> str:
    return "".join(secrets.choice(TOKEN_CHARSET) for _ in range(length))
