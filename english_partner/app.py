"""
Application wiring.

build_app() constructs every process-wide collaborator once (settings, the
OpenAI client, the record store) and hands them to the orchestrators. The
result is held for the life of the process and closed on shutdown.
"""

from dataclasses import dataclass
from typing import Optional

from openai import OpenAI

from .config import Settings, load_settings
from .conversation import ConversationOrchestrator, ConversationSession
from .database import DatabaseClient
from .gateway import LanguageModelGateway, build_openai_client
from .logger import logger
from .quiz import QuizGenerator


@dataclass
class PartnerApp:
    settings: Settings
    store: DatabaseClient
    gateway: LanguageModelGateway
    conversations: ConversationOrchestrator
    quizzes: QuizGenerator

    def open_conversation(self, user_id: Optional[str], conversation_id: str) -> ConversationSession:
        return ConversationSession.open(self.conversations, user_id, conversation_id)

    def start_conversation(self, user_id: Optional[str], title: str = "English Practice") -> ConversationSession:
        conversation = self.store.create_conversation(user_id, title)
        return ConversationSession(self.conversations, conversation.user_id, conversation.conversation_id)

    def close(self) -> None:
        self.conversations.close()


def build_app(
    settings: Optional[Settings] = None,
    client: Optional[OpenAI] = None,
    store: Optional[DatabaseClient] = None,
) -> PartnerApp:
    """Build the application; any collaborator may be supplied pre-built."""
    logger.separator("English Partner Initialization")
    settings = settings or load_settings()

    if store is None:
        store = DatabaseClient(max_weaknesses=settings.max_weaknesses)
        store.initialize(settings.firebase_credentials_path)

    client = client or build_openai_client(settings)
    gateway = LanguageModelGateway.from_settings(client, settings)

    app = PartnerApp(
        settings=settings,
        store=store,
        gateway=gateway,
        conversations=ConversationOrchestrator(store, gateway),
        quizzes=QuizGenerator(store, gateway),
    )
    logger.separator("English Partner Ready")
    return app
