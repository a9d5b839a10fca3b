"""Review scheduler: maps a practice outcome to a topic's next review time.

正答率に応じて 3 段階の間隔を返すだけの純粋関数で、永続化は行わない。
境界値は上位の段に含める（0.9 ちょうどは 7 日、0.6 ちょうどは 3 日）。
"""

from __future__ import annotations

from datetime import datetime, timedelta

from .errors import ReviewOverrideRejected
from .models import ensure_utc

# (最低正答率, 間隔) を高い段から順に評価する。
REVIEW_TIERS: tuple[tuple[float, timedelta], ...] = (
    (0.9, timedelta(days=7)),
    (0.6, timedelta(days=3)),
)
FALLBACK_DELAY = timedelta(days=1)


def success_ratio(correct_count: int, incorrect_count: int) -> float:
    total = correct_count + incorrect_count
    if total == 0:
        return 0.0
    return correct_count / total


def review_delay(correct_count: int, incorrect_count: int) -> timedelta:
    ratio = success_ratio(correct_count, incorrect_count)
    for threshold, delay in REVIEW_TIERS:
        if ratio >= threshold:
            return delay
    return FALLBACK_DELAY


def compute_next_review(correct_count: int, incorrect_count: int, now: datetime) -> datetime:
    """Return ``now`` plus the delay earned by the given outcome (0 cards counts as ratio 0)."""

    if correct_count < 0 or incorrect_count < 0:
        raise ValueError("practice counts must be non-negative")
    return ensure_utc(now) + review_delay(correct_count, incorrect_count)


def validate_manual_review(target: datetime, now: datetime) -> datetime:
    """Check a caller-chosen review time before it is sent anywhere.

    なぜ: 過去や現在時刻を指定すると即座に期日到来扱いとなり手動上書きの意味がない。
    リモート側の時計が正なので、これはクライアント側の簡易チェックにすぎない。
    """

    normalized = ensure_utc(target)
    if normalized <= ensure_utc(now):
        raise ReviewOverrideRejected()
    return normalized
