"""flashdeck: spaced-repetition flashcard client core."""

__version__ = "0.1.0"

from .cache import TopicCache
from .client import ClientSnapshot, FlashcardClient
from .identity import Identity
from .models import Flashcard, ScoreRecord, SessionResult, SessionState, Topic
from .practice import PracticeSessionEngine
from .scheduler import compute_next_review, validate_manual_review

__all__ = [
    "ClientSnapshot",
    "Flashcard",
    "FlashcardClient",
    "Identity",
    "PracticeSessionEngine",
    "ScoreRecord",
    "SessionResult",
    "SessionState",
    "Topic",
    "TopicCache",
    "compute_next_review",
    "validate_manual_review",
]
