"""Pydantic schemas for interest and comment endpoints."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class InterestStateResponse(BaseModel):
    session_id: str
    interested: bool
    interest_count: int


class InterestResponse(BaseModel):
    user_id: str
    created_at: str


class InterestListResponse(BaseModel):
    session_id: str
    items: List[InterestResponse]
    count: int


class CommentCreateRequest(BaseModel):
    content: str = Field(min_length=1, max_length=5000)


class CommentResponse(BaseModel):
    id: str
    session_id: str
    author_id: str
    content: str
    created_at: str
    updated_at: str
    edited: bool


class CommentListResponse(BaseModel):
    items: List[CommentResponse]
    count: int
