"""Owned client state: wires the identity boundary, cache, engine and gateway together.

グローバルな UI 状態の代わりに、このオブジェクトが唯一の書き手としてキャッシュと
練習エンジンを保持する。表示層は `snapshot()` が返す不変のスナップショットだけを
読む。変更系の操作はすべて「リモートへ書く → 対象リストを丸ごと再取得」で完結する。
"""

from __future__ import annotations

import random
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from .cache import TopicCache
from .errors import GatewayError, NotFound, Rejected, Unauthorized
from .gateway.base import RemoteStoreGateway
from .identity import Identity
from .logging import logger
from .models import (
    Flashcard,
    PracticeSessionSnapshot,
    ScoreRecord,
    SessionResult,
    Topic,
    utc_now,
)
from .practice import PracticeSessionEngine
from .scheduler import validate_manual_review

ConfirmExit = Callable[[], bool]


class ClientSnapshot(BaseModel):
    """Everything the display layer needs, frozen at one point in time."""

    model_config = ConfigDict(frozen=True)

    identity: Identity | None = None
    topics: tuple[Topic, ...] = ()
    selected_topic: Topic | None = None
    flashcards: tuple[Flashcard, ...] = ()
    score_history: tuple[ScoreRecord, ...] = ()
    session: PracticeSessionSnapshot = PracticeSessionSnapshot()
    last_message: str | None = None
    last_error: str | None = None
    busy: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None


class FlashcardClient:
    def __init__(
        self,
        gateway: RemoteStoreGateway,
        *,
        clock: Callable[[], datetime] = utc_now,
        rng: random.Random | None = None,
    ) -> None:
        self._gateway = gateway
        self._clock = clock
        self._identity: Identity | None = None
        self._cache = TopicCache(gateway)
        self._engine = PracticeSessionEngine(gateway, clock=clock, rng=rng)
        self._in_flight = 0
        self._last_message: str | None = None
        self._last_error: str | None = None

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def cache(self) -> TopicCache:
        return self._cache

    @property
    def engine(self) -> PracticeSessionEngine:
        return self._engine

    def snapshot(self) -> ClientSnapshot:
        session = self._engine.snapshot()
        # エンジンの結果メッセージ（"3 / 4" など）は次の通知で置き換えられるまで表示する。
        last_message = self._engine.last_message or self._last_message
        last_error = self._last_error or self._engine.last_error or self._cache.last_error
        return ClientSnapshot(
            identity=self._identity,
            topics=self._cache.topics,
            selected_topic=self._cache.selected_topic,
            flashcards=self._cache.flashcards,
            score_history=self._cache.score_history,
            session=session,
            last_message=last_message,
            last_error=last_error,
            busy=self._in_flight > 0,
        )

    @asynccontextmanager
    async def _busy(self) -> AsyncIterator[None]:
        self._in_flight += 1
        try:
            yield
        finally:
            self._in_flight -= 1

    def _report(self, exc: GatewayError, event: str, **context: object) -> None:
        self._last_error = exc.message
        logger.warning(event, error=exc.message, error_class=exc.__class__.__name__, **context)

    def _announce(self, message: str) -> None:
        # 表示メッセージは常に最新の 1 件だけ。前回のセッション結果は置き換える。
        self._engine.last_message = None
        self._last_message = message

    def _clear_messages(self) -> None:
        self._last_message = None
        self._last_error = None
        self._engine.last_message = None
        self._engine.last_error = None

    def _require_identity(self) -> Identity:
        if self._identity is None:
            exc = Unauthorized()
            self._last_error = exc.message
            raise exc
        return self._identity

    # --- identity boundary ---
    async def on_auth_change(self, identity: Identity | None) -> None:
        """Handle sign-in (load topics) or sign-out (drop every cached thing)."""

        if identity is not None and identity.is_anonymous:
            identity = None
        self._engine.reset()
        self._cache.clear()
        self._clear_messages()
        self._identity = identity
        self._gateway.bind_identity(identity)
        if identity is None:
            logger.info("auth_signed_out")
            return
        logger.info("auth_signed_in", principal=identity.principal)
        async with self._busy():
            await self._cache.load_topics(identity)

    async def whoami(self) -> str:
        async with self._busy():
            try:
                principal = await self._gateway.whoami()
            except GatewayError as exc:
                self._report(exc, "whoami_failed")
                raise
        self._announce(f"Principal from backend: {principal}")
        return principal

    # --- topics ---
    async def refresh_topics(self) -> tuple[Topic, ...]:
        async with self._busy():
            return await self._cache.load_topics(self._identity)

    async def select_topic(
        self, topic: Topic | None, confirm_exit: ConfirmExit | None = None
    ) -> bool:
        """Switch the selected topic, gating on confirmation while practising another one.

        練習中に別トピックへ切り替える場合は `confirm_exit()` が True を返したときだけ
        切り替える。False（または確認手段なし）なら何もしない。セッションの破棄は
        新しいトピックの取得が成功してから行い、取得失敗時は練習を続けられる。
        """

        target_id = topic.id if topic is not None else None
        leaving_session = self._engine.is_active and self._engine.topic_id != target_id
        if leaving_session and (confirm_exit is None or not confirm_exit()):
            logger.info(
                "topic_switch_declined",
                active_topic_id=self._engine.topic_id,
                requested_topic_id=target_id,
            )
            return False
        async with self._busy():
            try:
                switched = await self._cache.select_topic(topic)
            except GatewayError as exc:
                self._report(exc, "topic_select_failed", topic_id=target_id)
                raise
        if not switched:
            return False
        if leaving_session:
            self._engine.exit()
        self._last_error = None
        return True

    async def create_topic(self, name: str) -> Topic:
        self._require_identity()
        async with self._busy():
            try:
                # 新規トピックは作成直後から復習対象（期日到来）にする。
                topic = await self._gateway.create_topic(name, self._clock())
            except GatewayError as exc:
                self._report(exc, "topic_create_failed")
                raise
            await self._cache.load_topics(self._identity)
        self._last_error = None
        logger.info("topic_created", topic_id=topic.id)
        return topic

    async def delete_topic(self, topic_id: str) -> bool:
        self._require_identity()
        async with self._busy():
            try:
                deleted = await self._gateway.delete_topic(topic_id)
            except GatewayError as exc:
                self._report(exc, "topic_delete_failed", topic_id=topic_id)
                raise
            if deleted:
                if self._engine.topic_id == topic_id:
                    self._engine.exit()
                selected = self._cache.selected_topic
                if selected is not None and selected.id == topic_id:
                    await self._cache.select_topic(None)
            await self._cache.load_topics(self._identity)
        if not deleted:
            self._last_error = NotFound().message
        return deleted

    async def set_manual_review(self, target: datetime) -> bool:
        """Override the selected topic's next review; past or present times never leave the client."""

        topic = self._cache.selected_topic
        if topic is None:
            raise NotFound("Select a topic first")
        try:
            next_review = validate_manual_review(target, self._clock())
        except Rejected as exc:
            self._report(exc, "manual_review_rejected", topic_id=topic.id)
            raise
        async with self._busy():
            try:
                updated = await self._gateway.set_topic_next_review(topic.id, next_review)
            except GatewayError as exc:
                self._report(exc, "manual_review_failed", topic_id=topic.id)
                raise
            await self._cache.load_topics(self._identity)
        if updated:
            self._last_error = None
            self._announce(f"Next review set to {next_review.isoformat()}")
        else:
            self._last_error = NotFound().message
        return updated

    def due_topics(self, now: datetime | None = None) -> tuple[Topic, ...]:
        return self._cache.due_topics(now or self._clock())

    # --- flashcards ---
    def _selected_topic_id(self) -> str:
        topic = self._cache.selected_topic
        if topic is None:
            raise NotFound("Select a topic first")
        return topic.id

    async def _refresh_flashcards(self, topic_id: str) -> None:
        await self._cache.load_flashcards(topic_id)

    async def add_flashcard(self, front: str, back: str) -> Flashcard:
        topic_id = self._selected_topic_id()
        async with self._busy():
            try:
                card = await self._gateway.create_flashcard(topic_id, front, back)
            except GatewayError as exc:
                self._report(exc, "flashcard_create_failed", topic_id=topic_id)
                raise
            await self._refresh_flashcards(topic_id)
        self._last_error = None
        return card

    async def edit_flashcard(self, card_id: str, front: str, back: str) -> bool:
        topic_id = self._selected_topic_id()
        async with self._busy():
            try:
                updated = await self._gateway.update_flashcard(card_id, front, back)
            except GatewayError as exc:
                self._report(exc, "flashcard_update_failed", card_id=card_id)
                raise
            await self._refresh_flashcards(topic_id)
        return updated

    async def remove_flashcard(self, card_id: str) -> bool:
        topic_id = self._selected_topic_id()
        async with self._busy():
            try:
                deleted = await self._gateway.delete_flashcard(card_id)
            except GatewayError as exc:
                self._report(exc, "flashcard_delete_failed", card_id=card_id)
                raise
            await self._refresh_flashcards(topic_id)
        return deleted

    # --- practice ---
    def start_practice(self) -> bool:
        topic = self._cache.selected_topic
        if topic is None:
            self._announce("Select a topic to practice")
            return False
        self._last_message = None
        self._last_error = None
        return self._engine.start(topic, self._cache.flashcards)

    def reveal_answer(self) -> bool:
        return self._engine.reveal()

    async def answer(self, is_correct: bool) -> SessionResult | None:
        async with self._busy():
            result = await self._engine.answer(is_correct)
            if result is None:
                return None
            # スコアと next_review はリモートにしか存在しないので読み直す。
            await self._cache.load_topics(self._identity)
            selected = self._cache.selected_topic
            if selected is not None and selected.id == result.topic_id:
                try:
                    await self._cache.load_score_history(result.topic_id)
                except GatewayError as exc:
                    logger.warning(
                        "practice_history_refresh_failed",
                        topic_id=result.topic_id,
                        error=exc.message,
                    )
        return result

    def exit_practice(self) -> bool:
        return self._engine.exit()
