from datetime import UTC, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from flashdeck.identity import ANONYMOUS_PRINCIPAL, Identity
from flashdeck.models import ScoreRecord, Topic

NOW = datetime(2024, 5, 1, 9, 30, tzinfo=UTC)


def _topic(**overrides) -> Topic:
    data = {"id": "tp:1", "owner": "alice", "name": "Kanji", "created_at": NOW, "next_review": NOW}
    data.update(overrides)
    return Topic(**data)


def test_topic_normalises_timestamps_to_utc() -> None:
    tokyo = timezone(timedelta(hours=9))
    topic = _topic(next_review=datetime(2024, 5, 1, 18, 30, tzinfo=tokyo))

    assert topic.next_review == NOW
    assert topic.next_review.tzinfo is UTC


def test_topic_rejects_blank_name_and_pre_epoch_times() -> None:
    with pytest.raises(ValidationError):
        _topic(name="   ")
    with pytest.raises(ValidationError):
        _topic(created_at=datetime(1969, 12, 31, 23, 59, tzinfo=UTC))


def test_topic_is_due_at_or_after_next_review() -> None:
    topic = _topic()

    assert topic.is_due(NOW) is True
    assert topic.is_due(NOW + timedelta(seconds=1)) is True
    assert topic.is_due(NOW - timedelta(seconds=1)) is False


def test_score_record_rejects_negative_counts() -> None:
    with pytest.raises(ValidationError):
        ScoreRecord(id="sc:1", topic_id="tp:1", correct_count=-1, incorrect_count=0, timestamp=NOW)


def test_identity_strips_principal_and_detects_anonymous() -> None:
    assert Identity(principal="  alice ").principal == "alice"
    assert Identity(principal=ANONYMOUS_PRINCIPAL).is_anonymous is True
    assert str(Identity(principal="alice")) == "alice"
    with pytest.raises(ValidationError):
        Identity(principal="   ")
