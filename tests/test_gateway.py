import pytest
from openai import OpenAIError

from english_partner.errors import GatewayError
from english_partner.models import Message
from english_partner.schemas import CONVERSATION_SYSTEM_PROMPT, GRAMMAR_SYSTEM_PROMPT, NO_MISTAKES_SENTINEL
from conftest import quiz_payload


def _message(role, content):
    return Message(message_id=f"{role}-{content}", conversation_id="c1", role=role, content=content)


def test_critique_sends_grammar_instruction(gateway, fake_openai):
    fake_openai.completions.queue("grammar", {
        "original": "I has a dog.", "corrected": "I have a dog.", "focus": "Subject-verb agreement",
    })
    critique = gateway.critique("I has a dog.")

    assert critique.corrected == "I have a dog."
    call = fake_openai.completions.calls[0]
    assert call["model"] == "test-model"
    assert call["messages"][0] == {"role": "system", "content": GRAMMAR_SYSTEM_PROMPT}
    assert call["messages"][1]["content"] == "The message is I has a dog."
    assert "not vocabulary or regional variations" in GRAMMAR_SYSTEM_PROMPT
    assert NO_MISTAKES_SENTINEL in GRAMMAR_SYSTEM_PROMPT


def test_reply_sends_full_history_in_order(gateway, fake_openai):
    fake_openai.completions.queue("message", {"role": "assistant", "content": "What breed is it?"})
    history = [_message("user", "Hello"), _message("assistant", "Hi! How are you?")]

    reply = gateway.reply(history, "I have a dog.")

    assert reply.content == "What breed is it?"
    sent = fake_openai.completions.calls[0]["messages"]
    assert sent == [
        {"role": "system", "content": CONVERSATION_SYSTEM_PROMPT},
        {"role": "user", "content": "Hello"},
        {"role": "assistant", "content": "Hi! How are you?"},
        {"role": "user", "content": "I have a dog."},
    ]


def test_generate_quiz_returns_validated_draft(gateway, fake_openai):
    fake_openai.completions.queue("quiz-structure", quiz_payload())
    draft = gateway.generate_quiz("Past simple")
    assert len(draft.questions) == 10
    assert "Past simple" in fake_openai.completions.calls[0]["messages"][1]["content"]


def test_malformed_json_is_gateway_error(gateway, fake_openai):
    fake_openai.completions.queue("grammar", "{not json")
    with pytest.raises(GatewayError):
        gateway.critique("Hello")


def test_schema_violation_is_gateway_error(gateway, fake_openai):
    fake_openai.completions.queue("grammar", {"original": "Hello", "corrected": "Hello"})
    with pytest.raises(GatewayError):
        gateway.critique("Hello")


def test_empty_content_is_gateway_error(gateway, fake_openai):
    fake_openai.completions.queue("message", None)
    with pytest.raises(GatewayError):
        gateway.reply([], "Hello")


def test_transport_failure_is_gateway_error(gateway, fake_openai):
    fake_openai.completions.queue("message", OpenAIError("connection reset"))
    with pytest.raises(GatewayError):
        gateway.reply([], "Hello")


def test_quiz_with_wrong_question_count_is_gateway_error(gateway, fake_openai):
    fake_openai.completions.queue("quiz-structure", quiz_payload(questions=7))
    with pytest.raises(GatewayError):
        gateway.generate_quiz("Articles")
