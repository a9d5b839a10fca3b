from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .flashcard import Flashcard


class SessionState(str, Enum):
    """Practice engine lifecycle; ``completed`` is transient."""

    idle = "idle"
    active = "active"
    completed = "completed"


class PracticeSessionSnapshot(BaseModel):
    """Read-only view of the engine handed to the display layer."""

    model_config = ConfigDict(frozen=True)

    state: SessionState = SessionState.idle
    topic_id: str | None = None
    current_card: Flashcard | None = None
    current_index: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
    answer_revealed: bool = False
    correct_count: int = Field(default=0, ge=0)
    incorrect_count: int = Field(default=0, ge=0)


class SessionResult(BaseModel):
    """Outcome of a completed session.

    - message: `"<correct> / <total>"` 形式の表示用サマリー
    - score_recorded / review_scheduled: リモートへの反映が成功したか（ベストエフォート）
    """

    model_config = ConfigDict(frozen=True)

    topic_id: str
    correct_count: int = Field(ge=0)
    incorrect_count: int = Field(ge=0)
    message: str
    next_review: datetime
    score_recorded: bool = False
    review_scheduled: bool = False

    @property
    def total(self) -> int:
        return self.correct_count + self.incorrect_count
