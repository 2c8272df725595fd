"""
Structured response schemas and fixed prompts for the language model.

Each response model doubles as the JSON schema sent to the model (as an
OpenAI `json_schema` response format) and as the validator applied to what
comes back. Constraints that JSON schema strict mode cannot express (exact
list lengths, exactly one correct answer) live in validators, so a response
that breaks them fails validation like any other malformed response.
"""

from typing import List, Literal, Dict, Any, Type

from pydantic import BaseModel, ConfigDict, field_validator

NO_MISTAKES_SENTINEL = "No grammar mistakes found"

QUIZ_QUESTION_COUNT = 10
QUIZ_ANSWER_COUNT = 4


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

CONVERSATION_SYSTEM_PROMPT = (
    "You are a helpful assistant that has conversations to help people learn English. "
    "Maintain a natural and engaging conversation style. Do not correct grammar mistakes."
)

GRAMMAR_SYSTEM_PROMPT = (
    "You are an expert at correcting grammar. You will be given a message and you need "
    "to correct the grammar. You need to summarize the grammar issue as one phrase such as "
    "'Past simple' or 'Present perfect' and then give a suggestion for improvement. "
    "Focus purely on grammar mistakes, not vocabulary or regional variations. "
    f"If there are no grammar mistakes, return a string that simply says '{NO_MISTAKES_SENTINEL}'."
)

QUIZ_SYSTEM_PROMPT = (
    "You are an AI assistant that generates multiple choice quizzes. For each question, "
    f"provide exactly {QUIZ_ANSWER_COUNT} possible answers, with exactly one correct answer."
)


def quiz_user_prompt(topic: str) -> str:
    return (
        f"Generate a quiz on the topic of {topic}. The context is that the quiz is for "
        "someone learning English as a second language. "
        f"Include {QUIZ_QUESTION_COUNT} multiple choice questions. For each question, "
        f"provide {QUIZ_ANSWER_COUNT} answers and mark which one is correct."
    )


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class _StrictModel(BaseModel):
    # additionalProperties: false on every object, as strict mode requires
    model_config = ConfigDict(extra="forbid")


class MessageReply(_StrictModel):
    """The assistant's next conversational message."""
    role: Literal["user", "assistant"]
    content: str

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("reply content is empty")
        return value


class GrammarCritique(_StrictModel):
    """Grammar review of one learner message."""
    original: str
    corrected: str
    focus: str

    @field_validator("focus")
    @classmethod
    def _strip_focus(cls, value: str) -> str:
        # The label is stored as a weakness and compared by equality
        return value.strip()

    @property
    def has_mistake(self) -> bool:
        return self.focus != NO_MISTAKES_SENTINEL


class QuizAnswerDraft(_StrictModel):
    text: str
    correct: bool


class QuizQuestionDraft(_StrictModel):
    question: str
    answers: List[QuizAnswerDraft]

    @field_validator("answers")
    @classmethod
    def _four_answers_one_correct(cls, value: List[QuizAnswerDraft]) -> List[QuizAnswerDraft]:
        if len(value) != QUIZ_ANSWER_COUNT:
            raise ValueError(f"expected {QUIZ_ANSWER_COUNT} answers, got {len(value)}")
        correct = sum(1 for answer in value if answer.correct)
        if correct != 1:
            raise ValueError(f"expected exactly one correct answer, got {correct}")
        return value


class QuizDraft(_StrictModel):
    """A generated quiz before it is persisted."""
    questions: List[QuizQuestionDraft]

    @field_validator("questions")
    @classmethod
    def _ten_questions(cls, value: List[QuizQuestionDraft]) -> List[QuizQuestionDraft]:
        if len(value) != QUIZ_QUESTION_COUNT:
            raise ValueError(f"expected {QUIZ_QUESTION_COUNT} questions, got {len(value)}")
        return value


def response_format(name: str, model: Type[BaseModel]) -> Dict[str, Any]:
    """Build the OpenAI `response_format` payload for a response model."""
    return {
        "type": "json_schema",
        "json_schema": {
            "name": name,
            "schema": model.model_json_schema(),
            "strict": True,
        },
    }
