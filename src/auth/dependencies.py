"""FastAPI dependencies for resolving the acting identity."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from src.auth.identity import Identity, resolve_identity
from src.auth.jwt import TokenClaims
from src.auth.middleware import TOKEN_CLAIMS_KEY
from src.storage.db import get_session


def get_optional_claims(request: Request) -> Optional[TokenClaims]:
    return getattr(request.state, TOKEN_CLAIMS_KEY, None)


def require_identity(
    claims: Optional[TokenClaims] = Depends(get_optional_claims),
    session: Session = Depends(get_session),
) -> Identity:
    return resolve_identity(session, claims)
