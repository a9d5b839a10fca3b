"""ID 生成ユーティリティ。

リモートストアのドキュメント ID は Firestore のパス制約に抵触しない文字だけで
構成し、エンティティ種別を見分けられるよう prefix を付けた UUID を使用する。
キャッシュ側で ID を採番することはなく、すべてここ（ゲートウェイ側）で生まれる。
"""

from __future__ import annotations

import uuid


def _prefixed(prefix: str) -> str:
    return f"{prefix}:{uuid.uuid4().hex}"


def generate_topic_id() -> str:
    return _prefixed("tp")


def generate_flashcard_id() -> str:
    return _prefixed("fc")


def generate_score_id() -> str:
    return _prefixed("sc")
