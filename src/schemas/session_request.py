"""Pydantic schemas for session request endpoints."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class SessionRequestCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    requested_datetime: str = Field(min_length=1, max_length=64)
    visibility: str = Field(default="public", max_length=16)


class RejectRequest(BaseModel):
    reason: str = Field(default="", max_length=2000)


class SessionRequestResponse(BaseModel):
    id: str
    title: str
    description: str
    requested_datetime: str
    visibility: str
    status: str
    requester_id: str
    reviewer_id: Optional[str] = None
    reviewed_at: Optional[str] = None
    rejection_reason: Optional[str] = None
    linked_session_id: Optional[str] = None
    created_at: str
    updated_at: str


class SessionRequestListResponse(BaseModel):
    items: List[SessionRequestResponse]
    count: int
