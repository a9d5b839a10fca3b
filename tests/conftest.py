"""Pytest configuration: make the src/ package importable and pin the environment."""

import os
import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
# src/ レイアウトのパッケージと tests.* のヘルパーをインストールなしでも解決できるようにする。
for _path in (PROJECT_ROOT, PROJECT_ROOT / "src"):
    if str(_path) not in sys.path:
        sys.path.insert(0, str(_path))

# strict_mode の本番チェックに引っかからないよう、開発環境とダミーのプロジェクトIDに固定する。
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("FIRESTORE_PROJECT_ID", "flashdeck-test")


@pytest.fixture()
def fixed_now() -> datetime:
    return datetime(2024, 5, 1, 9, 30, tzinfo=UTC)
