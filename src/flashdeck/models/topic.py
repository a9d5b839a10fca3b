from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .common import NonBlankStr, Timestamp, ensure_utc


class Topic(BaseModel):
    """A named collection of flashcards owned by one identity.

    `next_review` はスケジューラか手動上書きでしか変わらない。カードの編集で
    動くことはない。期日到来（due）かどうかは保存せず、都度導出する。
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    owner: str = Field(min_length=1)
    name: NonBlankStr
    created_at: Timestamp
    next_review: Timestamp

    def is_due(self, now: datetime) -> bool:
        return self.next_review <= ensure_utc(now)
