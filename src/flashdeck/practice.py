"""Practice session engine: drives one shuffled run over a topic's cards.

状態遷移は Idle → Active → Completed → Idle。Completed は一瞬だけの状態で、
スコア記録と次回復習日の登録を行ったら直ちに Idle へ戻り、結果メッセージだけが
表示用に残る。途中終了（exit）したセッションは採点もスケジュールもしない。
"""

from __future__ import annotations

import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime

from .errors import GatewayError
from .gateway.base import RemoteStoreGateway
from .logging import logger
from .models import (
    Flashcard,
    PracticeSessionSnapshot,
    SessionResult,
    SessionState,
    Topic,
    utc_now,
)
from .scheduler import compute_next_review

NO_CARDS_MESSAGE = "This topic has no flashcards to practice yet"


def format_summary(correct_count: int, total: int) -> str:
    return f"{correct_count} / {total}"


@dataclass
class _ActiveSession:
    topic_id: str
    # 開始時点で固定。以後のカード編集は進行中のセッションに影響しない。
    ordered_cards: tuple[Flashcard, ...]
    current_index: int = 0
    answer_revealed: bool = False
    correct_count: int = 0
    incorrect_count: int = 0

    @property
    def answered(self) -> int:
        return self.correct_count + self.incorrect_count


class PracticeSessionEngine:
    """Single-writer controller for at most one practice session at a time."""

    def __init__(
        self,
        gateway: RemoteStoreGateway,
        *,
        clock: Callable[[], datetime] = utc_now,
        rng: random.Random | None = None,
    ) -> None:
        self._gateway = gateway
        self._clock = clock
        self._rng = rng or random.Random()
        self._state = SessionState.idle
        self._session: _ActiveSession | None = None
        self.last_message: str | None = None
        self.last_error: str | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is SessionState.active

    @property
    def topic_id(self) -> str | None:
        return self._session.topic_id if self._session else None

    def start(self, topic: Topic, flashcards: Sequence[Flashcard]) -> bool:
        """Start practising ``topic``; returns False (and reports why) when nothing started."""

        if self._state is not SessionState.idle:
            logger.info("practice_start_ignored", topic_id=topic.id, state=self._state.value)
            return False
        cards = list(flashcards)
        if not cards:
            self.last_message = NO_CARDS_MESSAGE
            self.last_error = None
            logger.info("practice_start_rejected", topic_id=topic.id, reason="no_cards")
            return False
        ordered = tuple(self._rng.sample(cards, k=len(cards)))
        self._session = _ActiveSession(topic_id=topic.id, ordered_cards=ordered)
        self._state = SessionState.active
        self.last_message = None
        self.last_error = None
        logger.info("practice_started", topic_id=topic.id, card_count=len(ordered))
        return True

    def reveal(self) -> bool:
        session = self._session
        if self._state is not SessionState.active or session is None:
            return False
        if session.answer_revealed:
            return False
        session.answer_revealed = True
        return True

    async def answer(self, is_correct: bool) -> SessionResult | None:
        """Tally the revealed card and advance; returns the result when the session completes."""

        session = self._session
        if self._state is not SessionState.active or session is None:
            return None
        if not session.answer_revealed:
            return None

        if is_correct:
            session.correct_count += 1
        else:
            session.incorrect_count += 1

        if session.current_index + 1 < len(session.ordered_cards):
            session.current_index += 1
            session.answer_revealed = False
            return None

        self._state = SessionState.completed
        return await self._complete(session)

    async def _complete(self, session: _ActiveSession) -> SessionResult:
        # 完了判定・記録とも、直前の回答を含めた最終カウントを使う。
        correct = session.correct_count
        incorrect = session.incorrect_count
        message = format_summary(correct, session.answered)
        errors: list[str] = []
        score_recorded = False
        review_scheduled = False
        next_review = compute_next_review(correct, incorrect, self._clock())
        try:
            try:
                await self._gateway.record_score(session.topic_id, correct, incorrect)
                score_recorded = True
            except GatewayError as exc:
                errors.append(exc.message)
                logger.warning(
                    "practice_score_record_failed",
                    topic_id=session.topic_id,
                    error=exc.message,
                    error_class=exc.__class__.__name__,
                )
            try:
                review_scheduled = await self._gateway.set_topic_next_review(
                    session.topic_id, next_review
                )
                if not review_scheduled:
                    errors.append("Topic not found while scheduling the next review")
            except GatewayError as exc:
                errors.append(exc.message)
                logger.warning(
                    "practice_review_schedule_failed",
                    topic_id=session.topic_id,
                    error=exc.message,
                    error_class=exc.__class__.__name__,
                )
        finally:
            # サインアウト等で既に reset 済みなら、結果を書き戻さない。
            if self._session is session:
                self._session = None
                self._state = SessionState.idle
                self.last_message = message
                self.last_error = "; ".join(errors) or None

        logger.info(
            "practice_completed",
            topic_id=session.topic_id,
            correct=correct,
            incorrect=incorrect,
            next_review=next_review.isoformat(),
            score_recorded=score_recorded,
            review_scheduled=review_scheduled,
        )
        return SessionResult(
            topic_id=session.topic_id,
            correct_count=correct,
            incorrect_count=incorrect,
            message=message,
            next_review=next_review,
            score_recorded=score_recorded,
            review_scheduled=review_scheduled,
        )

    def exit(self) -> bool:
        """Abandon the active session without scoring or scheduling it."""

        session = self._session
        if self._state is not SessionState.active or session is None:
            return False
        self._session = None
        self._state = SessionState.idle
        logger.info(
            "practice_exited",
            topic_id=session.topic_id,
            answered=session.answered,
            total=len(session.ordered_cards),
        )
        return True

    def reset(self) -> None:
        """Drop any session and messages unconditionally (used on sign-out)."""

        self._session = None
        self._state = SessionState.idle
        self.last_message = None
        self.last_error = None

    def snapshot(self) -> PracticeSessionSnapshot:
        session = self._session
        if session is None:
            return PracticeSessionSnapshot(state=self._state)
        current_card = None
        if self._state is SessionState.active:
            current_card = session.ordered_cards[session.current_index]
        return PracticeSessionSnapshot(
            state=self._state,
            topic_id=session.topic_id,
            current_card=current_card,
            current_index=session.current_index,
            total=len(session.ordered_cards),
            answer_revealed=session.answer_revealed,
            correct_count=session.correct_count,
            incorrect_count=session.incorrect_count,
        )

    def ordered_cards(self) -> tuple[Flashcard, ...]:
        return self._session.ordered_cards if self._session else ()
