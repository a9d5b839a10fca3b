"""Contract of the remote, authoritative, per-identity data store.

コアはストレージへ直接触れず、このプロトコル越しにだけリモート状態を読み書きする。
各操作はリクエスト/レスポンス型の非同期呼び出しで、失敗は `flashdeck.errors`
の例外として返る。自動リトライは行わない前提。
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol, runtime_checkable

from ..identity import Identity
from ..models import Flashcard, ScoreRecord, Topic


@runtime_checkable
class RemoteStoreGateway(Protocol):
    def bind_identity(self, identity: Identity | None) -> None:
        """Re-bind the gateway to the signed-in caller (None = anonymous)."""

    async def whoami(self) -> str:
        """Return the principal the remote store sees for this caller."""

    async def list_topics(self, identity: Identity | None) -> Sequence[Topic]:
        """Raises Unauthorized when identity is absent."""

    async def list_flashcards(self, topic_id: str) -> Sequence[Flashcard]:
        """Raises NotFound for missing or foreign topics."""

    async def list_score_history(self, topic_id: str) -> Sequence[ScoreRecord]:
        """Raises NotFound for missing or foreign topics."""

    async def create_topic(self, name: str, initial_next_review: datetime) -> Topic:
        """Raises Rejected when the trimmed name is empty."""

    async def delete_topic(self, topic_id: str) -> bool:
        """Cascades to the topic's flashcards and scores."""

    async def create_flashcard(self, topic_id: str, front: str, back: str) -> Flashcard:
        ...

    async def update_flashcard(self, card_id: str, front: str, back: str) -> bool:
        ...

    async def delete_flashcard(self, card_id: str) -> bool:
        ...

    async def record_score(
        self, topic_id: str, correct_count: int, incorrect_count: int
    ) -> ScoreRecord:
        ...

    async def set_topic_next_review(self, topic_id: str, timestamp: datetime) -> bool:
        ...
