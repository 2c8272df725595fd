"""
Record types stored by the record store.

Every record serializes to a flat dict for Firestore. Nested children
(questions of a quiz, answers of a question) are stored as their own
documents and reattached on load.
"""

import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import List, Optional, Dict, Any

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLES = (ROLE_USER, ROLE_ASSISTANT)


def new_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class _Record:
    """Shared dict conversion for the record dataclasses."""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        # Unknown keys are dropped so stored documents can gain fields
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class User(_Record):
    """A learner. Weaknesses are grammar-focus labels, oldest first."""
    user_id: str
    weaknesses: List[str] = field(default_factory=list)
    created_at: str = ""


@dataclass
class Conversation(_Record):
    conversation_id: str
    user_id: str
    title: str = "English Practice"
    created_at: str = ""


@dataclass
class Message(_Record):
    message_id: str
    conversation_id: str
    role: str                              # "user" or "assistant"
    content: str
    created_at: str = ""
    correction_id: Optional[str] = None    # Set once a correction is linked


@dataclass
class Correction(_Record):
    """A grammar correction attached to one user message."""
    correction_id: str
    message_id: str
    conversation_id: str
    original: str
    corrected: str
    focus: str                             # Grammar category, e.g. "Past simple"
    created_at: str = ""


@dataclass
class Answer(_Record):
    answer_id: str
    question_id: str
    text: str
    correct: bool
    position: int = 0


@dataclass
class Question(_Record):
    question_id: str
    quiz_id: str
    text: str
    position: int = 0
    answers: List[Answer] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("answers")
        return data

    @property
    def correct_answer(self) -> Optional[Answer]:
        return next((a for a in self.answers if a.correct), None)


@dataclass
class Quiz(_Record):
    quiz_id: str
    user_id: str
    topic: str
    created_at: str = ""
    questions: List[Question] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("questions")
        return data


@dataclass
class TurnResult:
    """The persisted records produced by one conversation turn."""
    user_message: Message
    assistant_message: Message
    correction: Optional[Correction] = None


@dataclass
class QuizScore:
    correct: int = 0
    total: int = 0
    wrong_question_ids: List[str] = field(default_factory=list)

    @property
    def percent(self) -> int:
        if self.total == 0:
            return 0
        return round(self.correct * 100 / self.total)
