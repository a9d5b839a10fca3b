from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .common import Timestamp


class ScoreRecord(BaseModel):
    """Immutable outcome of one completed practice session (append-only per topic)."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    topic_id: str = Field(min_length=1)
    correct_count: int = Field(ge=0)
    incorrect_count: int = Field(ge=0)
    timestamp: Timestamp

    @property
    def total(self) -> int:
        return self.correct_count + self.incorrect_count
