"""Globally shared session tags."""

from __future__ import annotations

import re
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from src.auth.identity import Identity
from src.core.config import get_settings
from src.core.errors import ValidationError
from src.core.logger import get_logger
from src.storage.db import commit_or_unknown
from src.storage.models import Tag


_HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")

logger = get_logger("talkboard.tags")


def list_tags(session: Session) -> List[Tag]:
    return list(session.scalars(select(Tag).order_by(Tag.name.asc())).all())


def create_tag(session: Session, identity: Identity, *, name: str, color: Optional[str] = None) -> Tag:
    # Any member may add tags while composing a session; names are not unique.
    cleaned = name.strip()
    if not cleaned:
        raise ValidationError("Tag name must not be empty")
    chosen_color = (color or get_settings().default_tag_color).strip()
    if not _HEX_COLOR.match(chosen_color):
        raise ValidationError("Tag color must be a #RRGGBB hex value")

    tag = Tag(name=cleaned, color=chosen_color)
    session.add(tag)
    commit_or_unknown(session, action="create_tag")
    logger.info("tag_created", tag_id=tag.id, actor_id=identity.id)
    return tag
