"""Client-side mirror of the remote Topic / Flashcard / Score state.

キャッシュはリモートストアのスナップショットにすぎず、ID を自前で採番したり
ローカルでリストを部分更新したりはしない。変更後は対象リストを丸ごと再取得する
（read-after-write via full refresh）。同じリストへの再取得はリストごとのロックで
直列化し、古いレスポンスが新しいレスポンスを上書きする順序逆転を防ぐ。
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import datetime

from .errors import GatewayError, NotFound
from .gateway.base import RemoteStoreGateway
from .identity import Identity
from .logging import logger
from .models import Flashcard, ScoreRecord, Topic, ensure_utc


def _topic_sort_key(topic: Topic) -> tuple[str, str]:
    # 大文字小文字を無視して並べ、同順位は大文字小文字を区別して決定的にする。
    return (topic.name.casefold(), topic.name)


def _in_creation_order(cards: Sequence[Flashcard]) -> tuple[Flashcard, ...]:
    return tuple(sorted(cards, key=lambda card: card.created_at))


def _newest_first(scores: Sequence[ScoreRecord]) -> tuple[ScoreRecord, ...]:
    return tuple(sorted(scores, key=lambda record: record.timestamp, reverse=True))


class TopicCache:
    """Holds the signed-in identity's topics and the selected topic's cards and scores."""

    def __init__(self, gateway: RemoteStoreGateway) -> None:
        self._gateway = gateway
        self._topics: tuple[Topic, ...] = ()
        self._selected: Topic | None = None
        self._flashcards: tuple[Flashcard, ...] = ()
        self._scores: tuple[ScoreRecord, ...] = ()
        self._topics_lock = asyncio.Lock()
        self._flashcards_lock = asyncio.Lock()
        self._scores_lock = asyncio.Lock()
        # clear() のたびに進む世代番号。サインアウト前に発行された応答を捨てるために使う。
        self._generation = 0
        self.last_error: str | None = None

    # --- read-only snapshots ---
    @property
    def topics(self) -> tuple[Topic, ...]:
        return self._topics

    @property
    def selected_topic(self) -> Topic | None:
        return self._selected

    @property
    def flashcards(self) -> tuple[Flashcard, ...]:
        return self._flashcards

    @property
    def score_history(self) -> tuple[ScoreRecord, ...]:
        return self._scores

    def find_topic(self, topic_id: str) -> Topic | None:
        return next((topic for topic in self._topics if topic.id == topic_id), None)

    def due_topics(self, now: datetime) -> tuple[Topic, ...]:
        moment = ensure_utc(now)
        return tuple(topic for topic in self._topics if topic.is_due(moment))

    # --- refresh ---
    async def load_topics(self, identity: Identity | None) -> tuple[Topic, ...]:
        """Replace the topic set; failures degrade to an empty set and are reported via ``last_error``."""

        async with self._topics_lock:
            generation = self._generation
            try:
                fetched = await self._gateway.list_topics(identity)
            except GatewayError as exc:
                logger.warning(
                    "cache_topics_load_failed",
                    error=exc.message,
                    error_class=exc.__class__.__name__,
                )
                if generation == self._generation:
                    self._topics = ()
                    self.last_error = exc.message
                return self._topics
            if generation != self._generation:
                return self._topics
            self._topics = tuple(sorted(fetched, key=_topic_sort_key))
            if self._selected is not None:
                # 選択中トピックも最新のスナップショットへ差し替える（next_review 等）。
                refreshed = self.find_topic(self._selected.id)
                if refreshed is not None:
                    self._selected = refreshed
            self.last_error = None
            return self._topics

    async def load_flashcards(self, topic_id: str) -> tuple[Flashcard, ...]:
        """Replace the flashcard list for ``topic_id`` (creation order).

        NotFound はトピックが消えた/所有外を意味するので選択ごと解除する。その他の
        失敗は呼び出し元へ伝播し、既存のキャッシュには触れない。
        """

        async with self._flashcards_lock:
            generation = self._generation
            try:
                fetched = await self._gateway.list_flashcards(topic_id)
            except NotFound as exc:
                if generation == self._generation:
                    self._drop_selection(topic_id)
                    self.last_error = exc.message
                logger.info("cache_flashcards_not_found", topic_id=topic_id)
                return self._flashcards
            if generation != self._generation or not self._is_selected(topic_id):
                return self._flashcards
            self._flashcards = _in_creation_order(fetched)
            return self._flashcards

    async def load_score_history(self, topic_id: str) -> tuple[ScoreRecord, ...]:
        """Replace the score history for ``topic_id`` (newest first)."""

        async with self._scores_lock:
            generation = self._generation
            try:
                fetched = await self._gateway.list_score_history(topic_id)
            except NotFound as exc:
                if generation == self._generation:
                    self._drop_selection(topic_id)
                    self.last_error = exc.message
                logger.info("cache_scores_not_found", topic_id=topic_id)
                return self._scores
            if generation != self._generation or not self._is_selected(topic_id):
                return self._scores
            self._scores = _newest_first(fetched)
            return self._scores

    # --- selection ---
    async def select_topic(self, topic: Topic | None) -> bool:
        """Make ``topic`` the active one and load its cards and history.

        練習中の別トピックからの切替確認は呼び出し側の責務で、ここでは行わない。
        切り替えが確定したときだけ True を返す。
        """

        if topic is None:
            self._selected = None
            self._flashcards = ()
            self._scores = ()
            return True
        async with self._flashcards_lock, self._scores_lock:
            generation = self._generation
            try:
                # 両方そろってから差し替える。途中で失敗しても以前の選択はそのまま。
                cards = await self._gateway.list_flashcards(topic.id)
                scores = await self._gateway.list_score_history(topic.id)
            except NotFound as exc:
                if generation == self._generation:
                    self._drop_selection(topic.id)
                    self.last_error = exc.message
                logger.info("cache_select_not_found", topic_id=topic.id)
                return False
            if generation != self._generation:
                return False
            self._selected = topic
            self._flashcards = _in_creation_order(cards)
            self._scores = _newest_first(scores)
            self.last_error = None
            return True

    def _is_selected(self, topic_id: str) -> bool:
        return self._selected is not None and self._selected.id == topic_id

    def _drop_selection(self, topic_id: str) -> None:
        if self._is_selected(topic_id):
            self._selected = None
            self._flashcards = ()
            self._scores = ()

    def clear(self) -> None:
        self._generation += 1
        self._topics = ()
        self._selected = None
        self._flashcards = ()
        self._scores = ()
        self.last_error = None
