from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from google.api_core import exceptions as gexc

from flashdeck.cache import TopicCache
from flashdeck.errors import NotFound, Rejected, Transient, Unauthorized
from flashdeck.gateway import FirestoreGateway, RemoteStoreGateway
from flashdeck.identity import ANONYMOUS_PRINCIPAL, Identity
from tests.firestore_fakes import FakeFirestoreClient

ALICE = Identity(principal="alice")
BOB = Identity(principal="bob")
NOW = datetime(2024, 5, 1, 9, 30, tzinfo=UTC)


@pytest.fixture()
def client() -> FakeFirestoreClient:
    return FakeFirestoreClient()


def _gateway(client: FakeFirestoreClient, identity: Identity | None = ALICE) -> FirestoreGateway:
    return FirestoreGateway(client, identity, clock=lambda: NOW)


def test_gateway_satisfies_protocol(client: FakeFirestoreClient) -> None:
    assert isinstance(_gateway(client), RemoteStoreGateway)


def test_create_topic_persists_trimmed_name_and_owner(client: FakeFirestoreClient) -> None:
    gateway = _gateway(client)

    topic = asyncio.run(gateway.create_topic("  Kanji ", NOW))

    assert topic.id.startswith("tp:")
    assert topic.name == "Kanji"
    assert topic.owner == "alice"
    stored = client.documents("topics")[topic.id]
    assert stored == {
        "owner": "alice",
        "name": "Kanji",
        "created_at": NOW.isoformat(),
        "next_review": NOW.isoformat(),
    }
    listed = asyncio.run(gateway.list_topics(ALICE))
    assert listed == [topic]


@pytest.mark.parametrize("name", ["", "   ", "\t\n"])
def test_create_topic_rejects_blank_name(client: FakeFirestoreClient, name: str) -> None:
    gateway = _gateway(client)

    with pytest.raises(Rejected, match="Topic name must not be empty"):
        asyncio.run(gateway.create_topic(name, NOW))

    assert client.documents("topics") == {}


def test_unbound_or_anonymous_caller_is_unauthorized(client: FakeFirestoreClient) -> None:
    unbound = _gateway(client, None)

    with pytest.raises(Unauthorized):
        asyncio.run(unbound.create_topic("Kanji", NOW))
    with pytest.raises(Unauthorized):
        asyncio.run(unbound.list_topics(None))
    with pytest.raises(Unauthorized):
        asyncio.run(unbound.list_topics(Identity(principal=ANONYMOUS_PRINCIPAL)))


def test_whoami_reflects_bound_identity(client: FakeFirestoreClient) -> None:
    gateway = _gateway(client, None)

    assert asyncio.run(gateway.whoami()) == ANONYMOUS_PRINCIPAL
    gateway.bind_identity(ALICE)
    assert asyncio.run(gateway.whoami()) == "alice"


def test_foreign_topics_are_invisible(client: FakeFirestoreClient) -> None:
    """他人のトピックは一覧に出ず、子リソース操作では存在しないものとして扱う。"""

    alice = _gateway(client, ALICE)
    topic = asyncio.run(alice.create_topic("Kanji", NOW))
    card = asyncio.run(alice.create_flashcard(topic.id, "一", "one"))
    bob = _gateway(client, BOB)

    assert asyncio.run(bob.list_topics(BOB)) == []
    with pytest.raises(NotFound):
        asyncio.run(bob.list_flashcards(topic.id))
    with pytest.raises(NotFound):
        asyncio.run(bob.list_score_history(topic.id))
    with pytest.raises(NotFound):
        asyncio.run(bob.create_flashcard(topic.id, "二", "two"))
    with pytest.raises(NotFound):
        asyncio.run(bob.record_score(topic.id, 1, 0))
    assert asyncio.run(bob.delete_topic(topic.id)) is False
    assert asyncio.run(bob.set_topic_next_review(topic.id, NOW + timedelta(days=1))) is False
    assert asyncio.run(bob.update_flashcard(card.id, "x", "y")) is False
    assert asyncio.run(bob.delete_flashcard(card.id)) is False

    assert client.documents("topics")[topic.id]["next_review"] == NOW.isoformat()
    assert client.documents("flashcards")[card.id]["front"] == "一"


def test_flashcard_crud_round_trip(client: FakeFirestoreClient) -> None:
    gateway = _gateway(client)
    topic = asyncio.run(gateway.create_topic("Kanji", NOW))

    card = asyncio.run(gateway.create_flashcard(topic.id, " 犬 ", " dog "))
    assert card.id.startswith("fc:")
    assert (card.front, card.back) == ("犬", "dog")

    assert asyncio.run(gateway.update_flashcard(card.id, "猫", "cat")) is True
    listed = asyncio.run(gateway.list_flashcards(topic.id))
    assert [(c.front, c.back) for c in listed] == [("猫", "cat")]

    assert asyncio.run(gateway.delete_flashcard(card.id)) is True
    assert asyncio.run(gateway.list_flashcards(topic.id)) == []
    assert asyncio.run(gateway.delete_flashcard(card.id)) is False
    assert asyncio.run(gateway.update_flashcard("fc:missing", "a", "b")) is False


def test_flashcard_rejects_blank_sides(client: FakeFirestoreClient) -> None:
    gateway = _gateway(client)
    topic = asyncio.run(gateway.create_topic("Kanji", NOW))
    card = asyncio.run(gateway.create_flashcard(topic.id, "一", "one"))

    with pytest.raises(Rejected, match="Front must not be empty"):
        asyncio.run(gateway.create_flashcard(topic.id, " ", "one"))
    with pytest.raises(Rejected, match="Back must not be empty"):
        asyncio.run(gateway.update_flashcard(card.id, "一", ""))

    assert client.documents("flashcards")[card.id]["back"] == "one"


def test_record_score_and_history(client: FakeFirestoreClient) -> None:
    gateway = _gateway(client)
    topic = asyncio.run(gateway.create_topic("Kanji", NOW))

    record = asyncio.run(gateway.record_score(topic.id, 3, 1))

    assert record.id.startswith("sc:")
    assert record.total == 4
    assert record.timestamp == NOW
    history = asyncio.run(gateway.list_score_history(topic.id))
    assert [(r.correct_count, r.incorrect_count) for r in history] == [(3, 1)]


@pytest.mark.parametrize("counts", [(-1, 0), (0, -2), (True, 0)])
def test_record_score_rejects_invalid_counts(client: FakeFirestoreClient, counts: tuple) -> None:
    gateway = _gateway(client)
    topic = asyncio.run(gateway.create_topic("Kanji", NOW))

    with pytest.raises(Rejected):
        asyncio.run(gateway.record_score(topic.id, *counts))

    assert client.documents("scores") == {}


def test_set_next_review_updates_only_that_topic(client: FakeFirestoreClient) -> None:
    gateway = _gateway(client)
    kanji = asyncio.run(gateway.create_topic("Kanji", NOW))
    verbs = asyncio.run(gateway.create_topic("Verbs", NOW))
    target = NOW + timedelta(days=3)

    assert asyncio.run(gateway.set_topic_next_review(kanji.id, target)) is True

    by_id = {t.id: t for t in asyncio.run(gateway.list_topics(ALICE))}
    assert by_id[kanji.id].next_review == target
    assert by_id[verbs.id].next_review == NOW
    assert asyncio.run(gateway.set_topic_next_review("tp:missing", target)) is False


def test_delete_topic_cascades_in_batches(client: FakeFirestoreClient, monkeypatch: pytest.MonkeyPatch) -> None:
    """トピック削除で配下のカードとスコアもまとめて消え、他トピックは残る。"""

    monkeypatch.setattr(FirestoreGateway, "_CASCADE_DELETE_BATCH_SIZE", 2)
    gateway = _gateway(client)
    doomed = asyncio.run(gateway.create_topic("Doomed", NOW))
    kept = asyncio.run(gateway.create_topic("Kept", NOW))
    for i in range(3):
        asyncio.run(gateway.create_flashcard(doomed.id, f"q{i}", f"a{i}"))
    asyncio.run(gateway.record_score(doomed.id, 1, 1))
    survivor = asyncio.run(gateway.create_flashcard(kept.id, "残", "stay"))

    assert asyncio.run(gateway.delete_topic(doomed.id)) is True

    assert list(client.documents("topics")) == [kept.id]
    assert list(client.documents("flashcards")) == [survivor.id]
    assert client.documents("scores") == {}
    # カード 3 件はバッチ上限 2 で 2 回、スコア 1 件で 1 回コミットされる。
    assert client.batch_commits == 3
    with pytest.raises(NotFound):
        asyncio.run(gateway.list_flashcards(doomed.id))


def test_unreadable_stored_values_are_normalised(client: FakeFirestoreClient) -> None:
    gateway = _gateway(client)
    topic = asyncio.run(gateway.create_topic("Kanji", NOW))
    client.collection("scores").document("sc:legacy").set(
        {"topic_id": topic.id, "correct_count": "oops", "incorrect_count": -4, "timestamp": "not-a-date"}
    )

    (record,) = asyncio.run(gateway.list_score_history(topic.id))

    assert (record.correct_count, record.incorrect_count) == (0, 0)
    assert record.timestamp == datetime(1970, 1, 1, tzinfo=UTC)


def test_backend_outage_surfaces_as_transient(client: FakeFirestoreClient) -> None:
    gateway = _gateway(client)
    topic = asyncio.run(gateway.create_topic("Kanji", NOW))
    client.fail_with = gexc.ServiceUnavailable("firestore down")

    with pytest.raises(Transient):
        asyncio.run(gateway.list_topics(ALICE))
    with pytest.raises(Transient):
        asyncio.run(gateway.list_flashcards(topic.id))


def test_permission_denied_surfaces_as_unauthorized(client: FakeFirestoreClient) -> None:
    gateway = _gateway(client)
    client.fail_with = gexc.PermissionDenied("rules rejected")

    with pytest.raises(Unauthorized):
        asyncio.run(gateway.list_topics(ALICE))


def test_documents_that_fail_validation_are_skipped(client: FakeFirestoreClient) -> None:
    """壊れたドキュメントは一覧から除外し、残りの正常なデータは返す。"""

    gateway = _gateway(client)
    good = asyncio.run(gateway.create_topic("Kanji", NOW))
    client.collection("topics").document("tp:blank").set(
        {"owner": "alice", "name": "", "created_at": NOW.isoformat(), "next_review": NOW.isoformat()}
    )
    client.collection("topics").document("tp:ancient").set(
        {"owner": "alice", "name": "Old", "created_at": "1960-01-01T00:00:00+00:00", "next_review": NOW.isoformat()}
    )
    card = asyncio.run(gateway.create_flashcard(good.id, "一", "one"))
    client.collection("flashcards").document("fc:blank").set(
        {"topic_id": good.id, "front": " ", "back": "one", "created_at": NOW.isoformat()}
    )

    assert [t.id for t in asyncio.run(gateway.list_topics(ALICE))] == [good.id]
    assert [c.id for c in asyncio.run(gateway.list_flashcards(good.id))] == [card.id]


def test_cache_survives_invalid_stored_topic(client: FakeFirestoreClient) -> None:
    client.collection("topics").document("tp:blank").set(
        {"owner": "alice", "name": "", "created_at": NOW.isoformat(), "next_review": NOW.isoformat()}
    )
    cache = TopicCache(_gateway(client))

    assert asyncio.run(cache.load_topics(ALICE)) == ()
    assert cache.last_error is None
