from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated

from pydantic import AfterValidator

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _not_before_epoch(value: datetime) -> datetime:
    normalized = ensure_utc(value)
    if normalized < EPOCH:
        raise ValueError("timestamp must not precede the Unix epoch")
    return normalized


def _non_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value


# 全タイムスタンプは UTC の aware datetime に揃え、エポック以前を拒否する。
Timestamp = Annotated[datetime, AfterValidator(_not_before_epoch)]
NonBlankStr = Annotated[str, AfterValidator(_non_blank)]
