"""Password hashing for locally registered accounts."""

from __future__ import annotations

import base64
import hashlib
import hmac
import os


PBKDF2_ROUNDS = 260_000
_ALGORITHM = "pbkdf2_sha256"


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def hash_password(password: str, *, rounds: int = PBKDF2_ROUNDS) -> str:
    """Return `pbkdf2_sha256$rounds$salt$digest` for a fresh random salt."""

    salt = os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)
    return "$".join((_ALGORITHM, str(rounds), _b64(salt), _b64(digest)))


def verify_password(password: str, encoded_hash: str) -> bool:
    try:
        algorithm, rounds_str, salt_b64, digest_b64 = encoded_hash.split("$", 3)
        rounds = int(rounds_str)
        salt = base64.b64decode(salt_b64.encode("ascii"))
        expected = base64.b64decode(digest_b64.encode("ascii"))
    except ValueError:
        return False
    if algorithm != _ALGORITHM:
        return False

    observed = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)
    return hmac.compare_digest(observed, expected)
