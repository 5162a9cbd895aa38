"""Pydantic schemas for profile endpoints."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class UserResponse(BaseModel):
    id: str
    email: str
    display_name: str
    role: str
    created_at: str


class UserListResponse(BaseModel):
    items: List[UserResponse]
    count: int


class UserUpdateRequest(BaseModel):
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    role: Optional[str] = Field(default=None, max_length=16)


class DirectoryEntry(BaseModel):
    id: str
    display_name: str


class DirectoryResponse(BaseModel):
    items: List[DirectoryEntry]
    count: int
