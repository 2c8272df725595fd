import pytest

from english_partner.errors import AuthorizationError, GatewayError
from english_partner.quiz import score_quiz
from conftest import USER_ID, count_records, quiz_payload


def test_new_quiz_has_ten_questions_with_one_correct_of_four(quizzes, fake_openai):
    fake_openai.completions.queue("quiz-structure", quiz_payload())

    quiz = quizzes.get_or_create_quiz(USER_ID, "Past simple")

    assert quiz.topic == "Past simple"
    assert quiz.user_id == USER_ID
    assert len(quiz.questions) == 10
    for question in quiz.questions:
        assert len(question.answers) == 4
        assert sum(1 for a in question.answers if a.correct) == 1


def test_get_or_create_is_idempotent(quizzes, fake_openai):
    fake_openai.completions.queue("quiz-structure", quiz_payload())

    first = quizzes.get_or_create_quiz(USER_ID, "past-tense")
    second = quizzes.get_or_create_quiz(USER_ID, "past-tense")

    assert first.quiz_id == second.quiz_id
    assert len(fake_openai.completions.calls) == 1
    assert [q.question_id for q in second.questions] == [q.question_id for q in first.questions]


def test_same_topic_for_different_users_generates_twice(quizzes, fake_openai):
    fake_openai.completions.queue("quiz-structure", quiz_payload())
    fake_openai.completions.queue("quiz-structure", quiz_payload())

    mine = quizzes.get_or_create_quiz(USER_ID, "Articles")
    theirs = quizzes.get_or_create_quiz("someone-else", "Articles")

    assert mine.quiz_id != theirs.quiz_id


def test_missing_user_rejected_before_generation(quizzes, fake_openai):
    with pytest.raises(AuthorizationError):
        quizzes.get_or_create_quiz(None, "Articles")
    assert fake_openai.completions.calls == []


def test_schema_violation_persists_nothing(quizzes, store, fake_openai):
    fake_openai.completions.queue("quiz-structure", quiz_payload(answers=3))
    before = count_records(store)

    with pytest.raises(GatewayError):
        quizzes.get_or_create_quiz(USER_ID, "Articles")

    assert count_records(store) == before
    assert store.find_quiz_by_topic(USER_ID, "Articles") is None


def test_two_correct_answers_persists_nothing(quizzes, store, fake_openai):
    fake_openai.completions.queue("quiz-structure", quiz_payload(correct=2))
    with pytest.raises(GatewayError):
        quizzes.get_or_create_quiz(USER_ID, "Articles")
    assert store.list_quizzes(USER_ID) == []


def test_get_quiz(quizzes, fake_openai):
    fake_openai.completions.queue("quiz-structure", quiz_payload())
    quiz = quizzes.get_or_create_quiz(USER_ID, "Articles")
    assert quizzes.get_quiz(USER_ID, quiz.quiz_id).quiz_id == quiz.quiz_id
    with pytest.raises(AuthorizationError):
        quizzes.get_quiz("someone-else", quiz.quiz_id)


def test_score_quiz(quizzes, fake_openai):
    fake_openai.completions.queue("quiz-structure", quiz_payload())
    quiz = quizzes.get_or_create_quiz(USER_ID, "Articles")

    selections = {q.question_id: q.correct_answer.answer_id for q in quiz.questions[:7]}
    # One wrong answer, two unanswered
    wrong = quiz.questions[7]
    selections[wrong.question_id] = wrong.answers[-1].answer_id

    score = score_quiz(quiz, selections)

    assert score.correct == 7
    assert score.total == 10
    assert score.percent == 70
    assert score.wrong_question_ids == [q.question_id for q in quiz.questions[7:]]


def test_suggest_topics_ranks_by_frequency(quizzes, store):
    for label in ["Articles", "Past simple", "Articles", "Prepositions", "Past simple", "Articles"]:
        store.append_user_weakness(USER_ID, label)
    assert quizzes.suggest_topics(USER_ID) == ["Articles", "Past simple", "Prepositions"]
    assert quizzes.suggest_topics(USER_ID, limit=1) == ["Articles"]


def test_suggest_topics_breaks_ties_by_recency(quizzes, store):
    for label in ["Articles", "Past simple"]:
        store.append_user_weakness(USER_ID, label)
    assert quizzes.suggest_topics(USER_ID) == ["Past simple", "Articles"]
