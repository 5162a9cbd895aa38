"""JWT issue/verify primitives for bearer authentication."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from src.core.config import get_settings, signing_key
from src.core.errors import Unauthenticated


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    email: str


def create_access_token(claims: TokenClaims) -> tuple[str, int]:
    settings = get_settings()
    expires_in = settings.access_token_exp_minutes * 60
    now = datetime.now(timezone.utc)
    payload = {
        "sub": claims.user_id,
        "email": claims.email,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
    }
    token = jwt.encode(payload, signing_key(settings), algorithm=settings.jwt_algorithm)
    return token, expires_in


def decode_access_token(token: str) -> TokenClaims:
    settings = get_settings()
    try:
        payload = jwt.decode(token, signing_key(settings), algorithms=[settings.jwt_algorithm])
        return TokenClaims(
            user_id=str(payload["sub"]),
            email=str(payload.get("email", "")),
        )
    except (jwt.PyJWTError, KeyError) as exc:
        raise Unauthenticated("Invalid or expired token") from exc
