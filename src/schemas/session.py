"""Pydantic schemas for session and tag endpoints."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class SessionDraftRequest(BaseModel):
    """Session fields for direct creation or materialization.

    When materializing a request, omitted title/description/datetime/visibility
    fall back to the request's own values.
    """

    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = None
    datetime: Optional[str] = Field(default=None, max_length=64)
    date: Optional[str] = Field(default=None, max_length=10)
    time: Optional[str] = Field(default=None, max_length=8)
    visibility: Optional[str] = Field(default=None, max_length=16)
    presentation_url: Optional[str] = Field(default=None, max_length=500)
    recording_url: Optional[str] = Field(default=None, max_length=500)
    tag_ids: List[str] = Field(default_factory=list)
    new_tag_names: List[str] = Field(default_factory=list)
    guest_ids: List[str] = Field(default_factory=list)


class SessionUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = None
    datetime: Optional[str] = Field(default=None, max_length=64)
    visibility: Optional[str] = Field(default=None, max_length=16)
    presentation_url: Optional[str] = Field(default=None, max_length=500)
    recording_url: Optional[str] = Field(default=None, max_length=500)
    tag_ids: Optional[List[str]] = None
    guest_ids: Optional[List[str]] = None


class SessionAssociationsRequest(BaseModel):
    tag_ids: List[str] = Field(default_factory=list)
    guest_ids: List[str] = Field(default_factory=list)


class TagCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=80)
    color: Optional[str] = Field(default=None, max_length=7)


class TagResponse(BaseModel):
    id: str
    name: str
    color: str


class TagListResponse(BaseModel):
    items: List[TagResponse]
    count: int


class SessionSummaryResponse(BaseModel):
    id: str
    title: str
    datetime: str
    visibility: str
    owner_id: str
    is_past: bool


class SessionListResponse(BaseModel):
    items: List[SessionSummaryResponse]
    count: int


class SessionStatsResponse(BaseModel):
    total: int
    upcoming: int
    completed: int
    mine: int
    pending_requests: int
    users: Optional[int] = None


class SessionResponse(BaseModel):
    id: str
    title: str
    description: str
    datetime: str
    visibility: str
    presentation_url: Optional[str] = None
    recording_url: Optional[str] = None
    owner_id: str
    is_past: bool
    tags: List[TagResponse] = Field(default_factory=list)
    guest_ids: List[str] = Field(default_factory=list)
    interest_count: int = 0
    is_interested: bool = False
    can_edit: bool = False
    created_at: str
    updated_at: str
