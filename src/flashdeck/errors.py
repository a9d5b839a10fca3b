"""Failure taxonomy shared by the gateway, cache, engine and client.

リモートストア呼び出しの失敗を 4 種類に分類する。呼び出し側はこの分類だけを
見て「サインインを促す」「選択を解除する」「そのまま表示する」「再試行を
提示する」を判断できる。
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for every failure surfaced by the remote store."""

    default_message = "Remote store request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(GatewayError):
    """No identity is bound for an operation that requires one."""

    default_message = "You must sign in to manage your flashcards"


class NotFound(GatewayError):
    """Entity is absent or not owned by the caller (deliberately indistinguishable)."""

    default_message = "Not found"


class Rejected(GatewayError):
    """Input failed validation; the message is shown to the user verbatim."""

    default_message = "Request rejected"


class Transient(GatewayError):
    """Network or backend failure; the user may retry manually."""

    default_message = "Remote store is unreachable, please retry"


class ReviewOverrideRejected(Rejected):
    default_message = "Review date must be in the future"


__all__ = [
    "GatewayError",
    "NotFound",
    "Rejected",
    "ReviewOverrideRejected",
    "Transient",
    "Unauthorized",
]
