from __future__ import annotations

from datetime import datetime
from typing import Any

from ..errors import Rejected
from ..models import EPOCH, ensure_utc


def normalize_non_negative_int(value: Any) -> int:
    """与えられた値を非負整数に正規化する。

    保存済みドキュメントを読み戻すときに使う。過去のクライアントのバグで負値や
    文字列が入っていても、スコア履歴の表示が破綻しないようゼロ以上に矯正する。"""

    try:
        ivalue = int(value)
    except (TypeError, ValueError):
        return 0
    return ivalue if ivalue >= 0 else 0


def require_text(value: Any, field: str) -> str:
    """Trim ``value`` and reject it when nothing is left."""

    text = str(value or "").strip()
    if not text:
        raise Rejected(f"{field} must not be empty")
    return text


def require_count(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise Rejected(f"{field} must be a non-negative integer")
    return value


def to_iso(value: datetime) -> str:
    return ensure_utc(value).isoformat()


def parse_iso(raw: Any) -> datetime:
    """Parse a stored ISO-8601 string; unreadable values fall back to the epoch."""

    if isinstance(raw, datetime):
        return ensure_utc(raw)
    try:
        return ensure_utc(datetime.fromisoformat(str(raw)))
    except (TypeError, ValueError):
        return EPOCH
