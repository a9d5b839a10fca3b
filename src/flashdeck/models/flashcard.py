from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .common import NonBlankStr, Timestamp


class Flashcard(BaseModel):
    """A front/back text pair belonging to exactly one topic."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    topic_id: str = Field(min_length=1)
    front: NonBlankStr
    back: NonBlankStr
    created_at: Timestamp
