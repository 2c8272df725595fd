"""
Topic quizzes built from a learner's recurring grammar mistakes.

A quiz is generated once per (user, topic) and reused from then on; it
never expires and is never regenerated.
"""

from collections import Counter
from typing import List, Mapping, Optional

from .database import DatabaseClient
from .errors import AuthorizationError
from .gateway import LanguageModelGateway
from .logger import logger, Timer
from .models import Answer, Question, Quiz, QuizScore, new_id, utc_now
from .schemas import QuizDraft


def _draft_to_quiz(user_id: str, topic: str, draft: QuizDraft) -> Quiz:
    quiz = Quiz(quiz_id=new_id(), user_id=user_id, topic=topic, created_at=utc_now())
    for q_index, q_draft in enumerate(draft.questions):
        question = Question(
            question_id=new_id(),
            quiz_id=quiz.quiz_id,
            text=q_draft.question,
            position=q_index,
        )
        question.answers = [
            Answer(
                answer_id=new_id(),
                question_id=question.question_id,
                text=a_draft.text,
                correct=a_draft.correct,
                position=a_index,
            )
            for a_index, a_draft in enumerate(q_draft.answers)
        ]
        quiz.questions.append(question)
    return quiz


class QuizGenerator:
    def __init__(self, store: DatabaseClient, gateway: LanguageModelGateway):
        self.store = store
        self.gateway = gateway

    def get_or_create_quiz(self, user_id: Optional[str], topic: str) -> Quiz:
        """
        Return the user's quiz for `topic`, generating and saving it first
        if none exists.

        Raises AuthorizationError without a user, and GatewayError when the
        generated quiz is unusable; in that case nothing is saved.
        """
        if not user_id:
            raise AuthorizationError("No authenticated user")
        topic = topic.strip()
        if not topic:
            raise ValueError("Quiz topic is empty")

        existing = self.store.find_quiz_by_topic(user_id, topic)
        if existing is not None:
            logger.quiz(f"Reusing quiz for '{topic}': {existing.quiz_id}")
            return existing

        logger.quiz(f"No quiz for '{topic}' yet, generating one")
        with Timer() as timer:
            draft = self.gateway.generate_quiz(topic)
        logger.quiz(f"Quiz generated in {timer.duration_ms:.0f}ms")

        quiz = _draft_to_quiz(user_id, topic, draft)
        return self.store.create_quiz_with_questions_and_answers(quiz)

    def get_quiz(self, user_id: Optional[str], quiz_id: str) -> Quiz:
        return self.store.get_quiz(quiz_id, user_id)

    def suggest_topics(self, user_id: Optional[str], limit: int = 5) -> List[str]:
        """
        The learner's weaknesses, most frequent first. Ties go to the label
        seen most recently.
        """
        user = self.store.get_or_create_user(user_id)
        counts = Counter(user.weaknesses)
        last_seen = {label: index for index, label in enumerate(user.weaknesses)}
        ranked = sorted(counts, key=lambda label: (-counts[label], -last_seen[label]))
        return ranked[:limit]


def score_quiz(quiz: Quiz, selections: Mapping[str, str]) -> QuizScore:
    """
    Score chosen answers.

    `selections` maps question_id to the chosen answer_id. Unanswered
    questions count as wrong.
    """
    score = QuizScore(total=len(quiz.questions))
    for question in quiz.questions:
        chosen = selections.get(question.question_id)
        correct = question.correct_answer
        if correct is not None and chosen == correct.answer_id:
            score.correct += 1
        else:
            score.wrong_question_ids.append(question.question_id)
    return score

