import json
from collections import defaultdict, deque
from types import SimpleNamespace

import pytest

from english_partner.conversation import ConversationOrchestrator
from english_partner.database import DatabaseClient
from english_partner.gateway import LanguageModelGateway
from english_partner.quiz import QuizGenerator

USER_ID = "learner-1"


class FakeCompletions:
    """Stands in for client.chat.completions; answers by response schema name."""

    def __init__(self):
        self.responses = defaultdict(deque)
        self.calls = []

    def queue(self, schema_name, payload):
        self.responses[schema_name].append(payload)

    def calls_for(self, schema_name):
        return [c for c in self.calls if c["response_format"]["json_schema"]["name"] == schema_name]

    def create(self, **kwargs):
        self.calls.append(kwargs)
        name = kwargs["response_format"]["json_schema"]["name"]
        payload = self.responses[name].popleft()
        if isinstance(payload, Exception):
            raise payload
        content = payload if isinstance(payload, str) or payload is None else json.dumps(payload)
        message = SimpleNamespace(content=content, refusal=None)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeOpenAI:
    def __init__(self):
        self.chat = SimpleNamespace(completions=FakeCompletions())

    @property
    def completions(self):
        return self.chat.completions


def quiz_payload(questions=10, answers=4, correct=1):
    return {
        "questions": [
            {
                "question": f"Question {q + 1}?",
                "answers": [
                    {"text": f"Answer {q + 1}.{a + 1}", "correct": a < correct}
                    for a in range(answers)
                ],
            }
            for q in range(questions)
        ]
    }


def count_records(store):
    return sum(len(docs) for docs in store._local.values())


@pytest.fixture
def store():
    """A record store in local mode."""
    return DatabaseClient(max_weaknesses=50)


@pytest.fixture
def fake_openai():
    return FakeOpenAI()


@pytest.fixture
def gateway(fake_openai):
    return LanguageModelGateway(fake_openai, model="test-model")


@pytest.fixture
def orchestrator(store, gateway):
    orchestrator = ConversationOrchestrator(store, gateway)
    yield orchestrator
    orchestrator.close()


@pytest.fixture
def quizzes(store, gateway):
    return QuizGenerator(store, gateway)


@pytest.fixture
def conversation(store):
    return store.create_conversation(USER_ID)
