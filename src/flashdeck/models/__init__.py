from .common import EPOCH, Timestamp, ensure_utc, utc_now
from .flashcard import Flashcard
from .score import ScoreRecord
from .session import PracticeSessionSnapshot, SessionResult, SessionState
from .topic import Topic

__all__ = [
    "EPOCH",
    "Flashcard",
    "PracticeSessionSnapshot",
    "ScoreRecord",
    "SessionResult",
    "SessionState",
    "Timestamp",
    "Topic",
    "ensure_utc",
    "utc_now",
]
