"""Authentication API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from src.auth.jwt import TokenClaims, create_access_token
from src.schemas.auth import LoginRequest, RegisterRequest, TokenResponse
from src.storage.db import get_session
from src.storage.models import User
from src.users.service import authenticate_user, register_user


router = APIRouter(prefix="/auth", tags=["auth"])


def _token_for(user: User) -> TokenResponse:
    token, expires_in = create_access_token(TokenClaims(user_id=user.id, email=user.email))
    return TokenResponse(
        access_token=token,
        expires_in=expires_in,
        user_id=user.id,
        role=user.role,
    )


@router.post("/register", response_model=TokenResponse, status_code=201)
def register(payload: RegisterRequest, session: Session = Depends(get_session)) -> TokenResponse:
    user = register_user(
        session,
        email=payload.email,
        password=payload.password,
        display_name=payload.display_name,
    )
    return _token_for(user)


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, session: Session = Depends(get_session)) -> TokenResponse:
    user = authenticate_user(session, email=payload.email, password=payload.password)
    return _token_for(user)
