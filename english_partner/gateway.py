"""
OpenAI-backed language model gateway for English Partner.

This module handles:
- Sending a system instruction + ordered message list + JSON schema to the
  chat completions endpoint
- Validating the response against the matching pydantic model
- The three prompts built on top of it: grammar critique, conversational
  reply, and quiz generation

The OpenAI client is built once at startup (see build_openai_client) and
injected; nothing here keeps a module-level client.
"""

from typing import List, Dict, Optional, Sequence, Type, TypeVar

from openai import OpenAI, OpenAIError
from pydantic import BaseModel, ValidationError

from .config import Settings
from .errors import GatewayError
from .logger import logger, Timer
from .models import Message
from .schemas import (
    CONVERSATION_SYSTEM_PROMPT,
    GRAMMAR_SYSTEM_PROMPT,
    QUIZ_SYSTEM_PROMPT,
    GrammarCritique,
    MessageReply,
    QuizDraft,
    quiz_user_prompt,
    response_format,
)

T = TypeVar("T", bound=BaseModel)

ENDPOINT = "chat.completions.create"


def build_openai_client(settings: Settings) -> OpenAI:
    """Create the process-wide OpenAI client from settings."""
    if not settings.openai_api_key:
        raise GatewayError("OPENAI_API_KEY is not configured")
    logger.env("Initializing OpenAI client...")
    client = OpenAI(api_key=settings.openai_api_key)
    logger.env_success("OpenAI client initialized successfully")
    return client


class LanguageModelGateway:
    """Schema-validated chat completions."""

    def __init__(
        self,
        client: OpenAI,
        model: str,
        reply_temperature: float = 0.7,
        critique_temperature: float = 0.7,
    ):
        self.client = client
        self.model = model
        self.reply_temperature = reply_temperature
        self.critique_temperature = critique_temperature

    @classmethod
    def from_settings(cls, client: OpenAI, settings: Settings) -> "LanguageModelGateway":
        return cls(
            client,
            model=settings.chat_model,
            reply_temperature=settings.reply_temperature,
            critique_temperature=settings.critique_temperature,
        )

    def complete(
        self,
        purpose: str,
        messages: List[Dict[str, str]],
        schema_name: str,
        schema: Type[T],
        temperature: Optional[float] = None,
    ) -> T:
        """
        Run one completion and return the validated response object.

        Raises GatewayError on transport failure, refusal, empty content, or
        any response that does not validate against `schema`.
        """
        logger.api_call(f"{ENDPOINT} ({purpose})", model=self.model)
        kwargs = {}
        if temperature is not None:
            kwargs["temperature"] = temperature

        try:
            with Timer() as timer:
                completion = self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    response_format=response_format(schema_name, schema),
                    **kwargs,
                )
        except OpenAIError as e:
            logger.api_error(f"{purpose} request failed: {e}", exc_info=True)
            raise GatewayError(f"{purpose} request failed") from e
        logger.api_response(ENDPOINT, duration_ms=timer.duration_ms)

        if not completion.choices:
            logger.api_error(f"{purpose} returned no choices")
            raise GatewayError(f"{purpose} returned no choices")

        message = completion.choices[0].message
        if getattr(message, "refusal", None):
            logger.api_error(f"{purpose} refused: {message.refusal}")
            raise GatewayError(f"{purpose} was refused by the model")

        raw = message.content
        if not raw or not raw.strip():
            logger.api_error(f"{purpose} returned empty content")
            raise GatewayError(f"{purpose} returned empty content")

        try:
            return schema.model_validate_json(raw)
        except ValidationError as e:
            logger.api_error(f"{purpose} response failed validation: {e}")
            logger.debug(f"Raw response: {raw[:500]}")
            raise GatewayError(f"{purpose} response did not match the {schema_name} schema") from e

    # ------------------------------------------------------------------
    # Grammar critique
    # ------------------------------------------------------------------

    def critique(self, text: str) -> GrammarCritique:
        """Review `text` for grammar mistakes only."""
        logger.api(f"critique() called ({len(text)} chars)")
        result = self.complete(
            "critique",
            [
                {"role": "system", "content": GRAMMAR_SYSTEM_PROMPT},
                {"role": "user", "content": f"The message is {text}"},
            ],
            "grammar",
            GrammarCritique,
            temperature=self.critique_temperature,
        )
        logger.success(f"Critique focus: {result.focus}")
        return result

    # ------------------------------------------------------------------
    # Conversational reply
    # ------------------------------------------------------------------

    def reply(self, history: Sequence[Message], new_user_text: str) -> MessageReply:
        """
        Continue the conversation.

        The prompt is the fixed conversation instruction, then every prior
        message in order, then the new user text.
        """
        logger.api(f"reply() called with {len(history)} prior messages")
        messages = [{"role": "system", "content": CONVERSATION_SYSTEM_PROMPT}]
        messages.extend({"role": m.role, "content": m.content} for m in history)
        messages.append({"role": "user", "content": new_user_text})

        return self.complete(
            "reply",
            messages,
            "message",
            MessageReply,
            temperature=self.reply_temperature,
        )

    # ------------------------------------------------------------------
    # Quiz generation
    # ------------------------------------------------------------------

    def generate_quiz(self, topic: str) -> QuizDraft:
        """Ask for a ten-question multiple choice quiz on `topic`."""
        logger.api(f"generate_quiz() called for topic: {topic}")
        draft = self.complete(
            "quiz",
            [
                {"role": "system", "content": QUIZ_SYSTEM_PROMPT},
                {"role": "user", "content": quiz_user_prompt(topic)},
            ],
            "quiz-structure",
            QuizDraft,
        )
        logger.success(f"Quiz drafted: {len(draft.questions)} questions")
        return draft
