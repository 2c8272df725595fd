import pytest
from pydantic import ValidationError

from english_partner.schemas import (
    NO_MISTAKES_SENTINEL,
    GrammarCritique,
    MessageReply,
    QuizDraft,
    response_format,
)
from conftest import quiz_payload


def test_sentinel_focus_means_no_mistake():
    critique = GrammarCritique(original="I have a dog.", corrected="I have a dog.", focus=NO_MISTAKES_SENTINEL)
    assert critique.has_mistake is False


def test_category_focus_means_mistake():
    critique = GrammarCritique(original="I has a dog.", corrected="I have a dog.", focus="Subject-verb agreement")
    assert critique.has_mistake is True


def test_focus_label_is_trimmed():
    critique = GrammarCritique(original="She go.", corrected="She goes.", focus="  Past simple \n")
    assert critique.focus == "Past simple"
    padded_sentinel = GrammarCritique(original="Hi", corrected="Hi", focus=f" {NO_MISTAKES_SENTINEL} ")
    assert padded_sentinel.has_mistake is False


def test_grammar_rejects_missing_field():
    with pytest.raises(ValidationError):
        GrammarCritique.model_validate({"original": "a", "corrected": "b"})


def test_grammar_rejects_extra_field():
    with pytest.raises(ValidationError):
        GrammarCritique.model_validate({"original": "a", "corrected": "b", "focus": "c", "note": "d"})


def test_reply_role_is_constrained():
    with pytest.raises(ValidationError):
        MessageReply.model_validate({"role": "system", "content": "hi"})


def test_reply_rejects_blank_content():
    with pytest.raises(ValidationError):
        MessageReply.model_validate({"role": "assistant", "content": "   "})


def test_quiz_draft_accepts_ten_by_four():
    draft = QuizDraft.model_validate(quiz_payload())
    assert len(draft.questions) == 10
    assert all(len(q.answers) == 4 for q in draft.questions)


@pytest.mark.parametrize("payload", [
    quiz_payload(questions=9),
    quiz_payload(answers=3),
    quiz_payload(correct=0),
    quiz_payload(correct=2),
])
def test_quiz_draft_rejects_wrong_shape(payload):
    with pytest.raises(ValidationError):
        QuizDraft.model_validate(payload)


def test_response_format_is_strict_json_schema():
    fmt = response_format("grammar", GrammarCritique)
    assert fmt["type"] == "json_schema"
    assert fmt["json_schema"]["name"] == "grammar"
    assert fmt["json_schema"]["strict"] is True
    schema = fmt["json_schema"]["schema"]
    assert schema["additionalProperties"] is False
    assert sorted(schema["required"]) == ["corrected", "focus", "original"]


def test_quiz_schema_nested_objects_forbid_extra_fields():
    schema = response_format("quiz-structure", QuizDraft)["json_schema"]["schema"]
    for definition in schema["$defs"].values():
        assert definition["additionalProperties"] is False
