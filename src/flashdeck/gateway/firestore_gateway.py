from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from functools import partial
from typing import Any, TypeVar

import anyio
from google.api_core import exceptions as gexc
from google.cloud import firestore
from pydantic import ValidationError

from ..errors import NotFound, Transient, Unauthorized
from ..id_factory import generate_flashcard_id, generate_score_id, generate_topic_id
from ..identity import ANONYMOUS_PRINCIPAL, Identity
from ..logging import logger
from ..models import Flashcard, ScoreRecord, Topic, utc_now
from .common import (
    normalize_non_negative_int,
    parse_iso,
    require_count,
    require_text,
    to_iso,
)

T = TypeVar("T")


class FirestoreGateway:
    """Firestore 上の Topic / Flashcard / Score を呼び出し元 identity 単位で管理する。

    - topics: `owner` フィールドで所有者を保持し、他人のトピックは存在しないものとして扱う。
    - flashcards / scores: `topic_id` で親トピックを参照する（所有ではなく外部キー）。
    - Topic 削除時は配下の flashcards / scores をバッチで連鎖削除する。
    """

    _CASCADE_DELETE_BATCH_SIZE = 450

    def __init__(
        self,
        client: firestore.Client,
        identity: Identity | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._client = client
        self._identity = identity
        self._clock = clock
        self._topics = client.collection("topics")
        self._flashcards = client.collection("flashcards")
        self._scores = client.collection("scores")

    # --- identity ---
    def bind_identity(self, identity: Identity | None) -> None:
        self._identity = identity

    def _require_principal(self) -> str:
        if self._identity is None or self._identity.is_anonymous:
            raise Unauthorized()
        return self._identity.principal

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        """Run a blocking Firestore call off the event loop and translate its failures."""

        try:
            # anyio.to_thread.run_sync はキーワード引数を転送しないため partial で包む
            return await anyio.to_thread.run_sync(partial(func, *args))
        except (gexc.Unauthenticated, gexc.PermissionDenied) as exc:
            logger.warning(
                "firestore_call_unauthorized",
                operation=getattr(func, "__name__", "unknown"),
                error=str(exc),
            )
            raise Unauthorized() from exc
        except (gexc.GoogleAPIError, gexc.RetryError) as exc:
            logger.warning(
                "firestore_call_failed",
                operation=getattr(func, "__name__", "unknown"),
                error=str(exc),
                error_class=exc.__class__.__name__,
            )
            raise Transient() from exc

    # --- snapshot -> model ---
    @staticmethod
    def _topic_from_snapshot(snapshot: Any) -> Topic:
        data = snapshot.to_dict() or {}
        return Topic(
            id=snapshot.id,
            owner=str(data.get("owner") or ""),
            name=str(data.get("name") or ""),
            created_at=parse_iso(data.get("created_at")),
            next_review=parse_iso(data.get("next_review")),
        )

    @staticmethod
    def _flashcard_from_snapshot(snapshot: Any) -> Flashcard:
        data = snapshot.to_dict() or {}
        return Flashcard(
            id=snapshot.id,
            topic_id=str(data.get("topic_id") or ""),
            front=str(data.get("front") or ""),
            back=str(data.get("back") or ""),
            created_at=parse_iso(data.get("created_at")),
        )

    @staticmethod
    def _score_from_snapshot(snapshot: Any) -> ScoreRecord:
        data = snapshot.to_dict() or {}
        return ScoreRecord(
            id=snapshot.id,
            topic_id=str(data.get("topic_id") or ""),
            correct_count=normalize_non_negative_int(data.get("correct_count")),
            incorrect_count=normalize_non_negative_int(data.get("incorrect_count")),
            timestamp=parse_iso(data.get("timestamp")),
        )

    # --- blocking helpers ---
    def _owned_topic_snapshot(self, topic_id: str) -> Any | None:
        """Return the topic snapshot when it exists and belongs to the caller."""

        principal = self._require_principal()
        if not topic_id:
            return None
        snapshot = self._topics.document(topic_id).get()
        if not snapshot.exists:
            return None
        data = snapshot.to_dict() or {}
        if data.get("owner") != principal:
            return None
        return snapshot

    def _owned_card_ref(self, card_id: str) -> Any | None:
        self._require_principal()
        if not card_id:
            return None
        ref = self._flashcards.document(card_id)
        snapshot = ref.get()
        if not snapshot.exists:
            return None
        topic_id = str((snapshot.to_dict() or {}).get("topic_id") or "")
        if self._owned_topic_snapshot(topic_id) is None:
            return None
        return ref

    @staticmethod
    def _readable(snapshots: Iterable[Any], factory: Callable[[Any], T]) -> list[T]:
        """Convert snapshots to models, skipping documents that no longer validate."""

        models: list[T] = []
        for snapshot in snapshots:
            try:
                models.append(factory(snapshot))
            except ValidationError as exc:
                logger.warning(
                    "firestore_document_skipped",
                    document_id=getattr(snapshot, "id", None),
                    error_count=exc.error_count(),
                    error=str(exc),
                )
        return models

    def _list_topics(self, principal: str) -> list[Topic]:
        query = self._topics.where("owner", "==", principal)
        return self._readable(query.stream(), self._topic_from_snapshot)

    def _list_children(self, collection: Any, topic_id: str, factory: Callable[[Any], T]) -> list[T]:
        if self._owned_topic_snapshot(topic_id) is None:
            raise NotFound()
        query = collection.where("topic_id", "==", topic_id)
        return self._readable(query.stream(), factory)

    def _create_topic(self, name: str, initial_next_review: datetime) -> Topic:
        principal = self._require_principal()
        clean_name = require_text(name, "Topic name")
        topic = Topic(
            id=generate_topic_id(),
            owner=principal,
            name=clean_name,
            created_at=self._clock(),
            next_review=initial_next_review,
        )
        self._topics.document(topic.id).set(
            {
                "owner": topic.owner,
                "name": topic.name,
                "created_at": to_iso(topic.created_at),
                "next_review": to_iso(topic.next_review),
            }
        )
        return topic

    def _delete_where_topic(self, collection: Any, topic_id: str) -> int:
        """対象トピック配下のドキュメントをバッチ上限に合わせて分割削除する。"""

        snapshots: Iterable[Any] = list(collection.where("topic_id", "==", topic_id).stream())
        deleted = 0
        batch = self._client.batch()
        pending = 0
        for snapshot in snapshots:
            batch.delete(snapshot.reference)
            pending += 1
            if pending >= self._CASCADE_DELETE_BATCH_SIZE:
                batch.commit()
                deleted += pending
                batch = self._client.batch()
                pending = 0
        if pending:
            batch.commit()
            deleted += pending
        return deleted

    def _delete_topic(self, topic_id: str) -> bool:
        snapshot = self._owned_topic_snapshot(topic_id)
        if snapshot is None:
            return False
        cards = self._delete_where_topic(self._flashcards, topic_id)
        scores = self._delete_where_topic(self._scores, topic_id)
        self._topics.document(topic_id).delete()
        logger.info(
            "firestore_topic_deleted",
            topic_id=topic_id,
            flashcards_deleted=cards,
            scores_deleted=scores,
        )
        return True

    def _create_flashcard(self, topic_id: str, front: str, back: str) -> Flashcard:
        clean_front = require_text(front, "Front")
        clean_back = require_text(back, "Back")
        if self._owned_topic_snapshot(topic_id) is None:
            raise NotFound()
        card = Flashcard(
            id=generate_flashcard_id(),
            topic_id=topic_id,
            front=clean_front,
            back=clean_back,
            created_at=self._clock(),
        )
        self._flashcards.document(card.id).set(
            {
                "topic_id": card.topic_id,
                "front": card.front,
                "back": card.back,
                "created_at": to_iso(card.created_at),
            }
        )
        return card

    def _update_flashcard(self, card_id: str, front: str, back: str) -> bool:
        clean_front = require_text(front, "Front")
        clean_back = require_text(back, "Back")
        ref = self._owned_card_ref(card_id)
        if ref is None:
            return False
        ref.update({"front": clean_front, "back": clean_back})
        return True

    def _delete_flashcard(self, card_id: str) -> bool:
        ref = self._owned_card_ref(card_id)
        if ref is None:
            return False
        ref.delete()
        return True

    def _record_score(self, topic_id: str, correct_count: int, incorrect_count: int) -> ScoreRecord:
        correct = require_count(correct_count, "correct_count")
        incorrect = require_count(incorrect_count, "incorrect_count")
        if self._owned_topic_snapshot(topic_id) is None:
            raise NotFound()
        record = ScoreRecord(
            id=generate_score_id(),
            topic_id=topic_id,
            correct_count=correct,
            incorrect_count=incorrect,
            timestamp=self._clock(),
        )
        self._scores.document(record.id).set(
            {
                "topic_id": record.topic_id,
                "correct_count": record.correct_count,
                "incorrect_count": record.incorrect_count,
                "timestamp": to_iso(record.timestamp),
            }
        )
        return record

    def _set_topic_next_review(self, topic_id: str, timestamp: datetime) -> bool:
        if self._owned_topic_snapshot(topic_id) is None:
            return False
        self._topics.document(topic_id).update({"next_review": to_iso(timestamp)})
        return True

    # --- public API ---
    async def whoami(self) -> str:
        if self._identity is None:
            return ANONYMOUS_PRINCIPAL
        return self._identity.principal

    async def list_topics(self, identity: Identity | None) -> list[Topic]:
        if identity is None or identity.is_anonymous:
            raise Unauthorized()
        return await self._run(self._list_topics, identity.principal)

    async def list_flashcards(self, topic_id: str) -> list[Flashcard]:
        return await self._run(
            self._list_children, self._flashcards, topic_id, self._flashcard_from_snapshot
        )

    async def list_score_history(self, topic_id: str) -> list[ScoreRecord]:
        return await self._run(
            self._list_children, self._scores, topic_id, self._score_from_snapshot
        )

    async def create_topic(self, name: str, initial_next_review: datetime) -> Topic:
        return await self._run(self._create_topic, name, initial_next_review)

    async def delete_topic(self, topic_id: str) -> bool:
        return await self._run(self._delete_topic, topic_id)

    async def create_flashcard(self, topic_id: str, front: str, back: str) -> Flashcard:
        return await self._run(self._create_flashcard, topic_id, front, back)

    async def update_flashcard(self, card_id: str, front: str, back: str) -> bool:
        return await self._run(self._update_flashcard, card_id, front, back)

    async def delete_flashcard(self, card_id: str) -> bool:
        return await self._run(self._delete_flashcard, card_id)

    async def record_score(
        self, topic_id: str, correct_count: int, incorrect_count: int
    ) -> ScoreRecord:
        return await self._run(self._record_score, topic_id, correct_count, incorrect_count)

    async def set_topic_next_review(self, topic_id: str, timestamp: datetime) -> bool:
        return await self._run(self._set_topic_next_review, topic_id, timestamp)
