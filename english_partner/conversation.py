"""
Conversation turn orchestration.

One turn:
1. Persist the learner's message and ask for a grammar critique, in parallel.
2. If the critique found a mistake, save the correction and record the
   grammar focus as a weakness.
3. Ask for the assistant's reply with the full history and persist it.

ConversationOrchestrator runs a single turn. ConversationSession is the
caller-side view of one conversation: it holds the ordered messages, the
corrections shown beside them, and the turn state machine.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Set

from .database import DatabaseClient
from .errors import (
    GENERIC_ERROR_NOTICE,
    AuthorizationError,
    EmptyMessageError,
    NotFoundError,
    PartnerError,
    TurnInProgressError,
)
from .gateway import LanguageModelGateway
from .logger import logger, Timer
from .models import ROLE_ASSISTANT, ROLE_USER, Correction, Message, TurnResult


class TurnState(str, Enum):
    """Lifecycle of a single conversation turn."""
    IDLE = "IDLE"
    AWAITING_CRITIQUE_AND_PERSIST = "AWAITING_CRITIQUE_AND_PERSIST"
    AWAITING_REPLY = "AWAITING_REPLY"
    SETTLED = "SETTLED"
    FAILED = "FAILED"


BUSY_STATES = (TurnState.AWAITING_CRITIQUE_AND_PERSIST, TurnState.AWAITING_REPLY)

StateListener = Callable[[TurnState], None]


def _drain(job: Future) -> None:
    if job.cancel():
        return
    error = job.exception()
    if error is not None:
        logger.debug(f"Discarded result of an abandoned job: {error}")


class ConversationOrchestrator:
    """Runs conversation turns against the record store and the gateway."""

    def __init__(
        self,
        store: DatabaseClient,
        gateway: LanguageModelGateway,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.store = store
        self.gateway = gateway
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="turn")
        self._in_flight: Set[str] = set()
        self._lock = threading.Lock()

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def is_in_flight(self, conversation_id: str) -> bool:
        with self._lock:
            return conversation_id in self._in_flight

    def submit_turn(
        self,
        user_id: Optional[str],
        conversation_id: str,
        user_text: str,
        prior_messages: Sequence[Message],
        on_state: Optional[StateListener] = None,
    ) -> TurnResult:
        """
        Run one turn and return the persisted user and assistant messages.

        Empty input, a missing user, or a turn already running for this
        conversation are rejected before any store write or gateway call.
        """
        text = (user_text or "").strip()
        if not text:
            raise EmptyMessageError("Message is empty")
        if not user_id:
            raise AuthorizationError("No authenticated user")

        with self._lock:
            if conversation_id in self._in_flight:
                raise TurnInProgressError(f"A turn is already running for {conversation_id}")
            self._in_flight.add(conversation_id)

        notify = on_state or (lambda state: None)
        try:
            return self._run_turn(user_id, conversation_id, text, prior_messages, notify)
        except Exception as e:
            logger.error(f"Turn failed for {conversation_id}: {e}")
            notify(TurnState.FAILED)
            raise
        finally:
            with self._lock:
                self._in_flight.discard(conversation_id)

    def _run_turn(
        self,
        user_id: str,
        conversation_id: str,
        text: str,
        prior_messages: Sequence[Message],
        notify: StateListener,
    ) -> TurnResult:
        logger.turn(f"Turn started in {conversation_id} ({len(prior_messages)} prior messages)")
        notify(TurnState.AWAITING_CRITIQUE_AND_PERSIST)

        with Timer() as timer:
            persist = self._executor.submit(
                self.store.create_message, user_id, conversation_id, ROLE_USER, text
            )
            critique_job = self._executor.submit(self.gateway.critique, text)

            try:
                user_message = persist.result()
                critique = critique_job.result()
            except Exception:
                # A failed persist ends the turn; the critique is cancelled or waited out
                _drain(critique_job)
                raise
        logger.turn(f"Message saved and critiqued ({timer.duration_ms:.0f}ms)")

        correction: Optional[Correction] = None
        if critique.has_mistake:
            correction = self.store.create_correction(
                conversation_id,
                user_message.message_id,
                original=critique.original,
                corrected=critique.corrected,
                focus=critique.focus,
            )
            user_message.correction_id = correction.correction_id
            self.store.append_user_weakness(user_id, critique.focus)
            logger.turn(f"Correction saved: {critique.focus}")

        notify(TurnState.AWAITING_REPLY)
        reply = self.gateway.reply(prior_messages, user_message.content)
        assistant_message = self.store.create_message(
            user_id, conversation_id, ROLE_ASSISTANT, reply.content
        )

        notify(TurnState.SETTLED)
        logger.success(f"Turn settled in {conversation_id}")
        return TurnResult(
            user_message=user_message,
            assistant_message=assistant_message,
            correction=correction,
        )


class ConversationSession:
    """
    Caller-side state for one open conversation.

    Holds the ordered messages and their corrections and tracks the current
    turn as an explicit state machine:

        IDLE → AWAITING_CRITIQUE_AND_PERSIST → AWAITING_REPLY → SETTLED | FAILED

    Any failure is logged and reduced to one generic notice.
    """

    def __init__(
        self,
        orchestrator: ConversationOrchestrator,
        user_id: str,
        conversation_id: str,
        messages: Optional[List[Message]] = None,
        corrections: Optional[Dict[str, Correction]] = None,
    ):
        self.orchestrator = orchestrator
        self.user_id = user_id
        self.conversation_id = conversation_id
        self.messages: List[Message] = list(messages or [])
        self.corrections: Dict[str, Correction] = dict(corrections or {})
        self.state = TurnState.IDLE
        self.notice: Optional[str] = None

    @property
    def store(self) -> DatabaseClient:
        return self.orchestrator.store

    @classmethod
    def open(
        cls,
        orchestrator: ConversationOrchestrator,
        user_id: Optional[str],
        conversation_id: str,
    ) -> "ConversationSession":
        """Load an existing conversation the user owns."""
        store = orchestrator.store
        store.find_conversation(conversation_id, user_id)
        messages = store.get_messages(conversation_id)
        corrections = {}
        for message in messages:
            if message.correction_id:
                correction = store.get_correction_for_message(message.message_id)
                if correction is not None:
                    corrections[message.message_id] = correction
        logger.turn(f"Opened {conversation_id}: {len(messages)} messages, {len(corrections)} corrections")
        return cls(orchestrator, user_id, conversation_id, messages, corrections)

    @property
    def is_busy(self) -> bool:
        return self.state in BUSY_STATES

    def _set_state(self, state: TurnState) -> None:
        if state != self.state:
            logger.turn_transition(self.state.value, state.value)
            self.state = state

    def can_send(self, text: str) -> bool:
        return bool(text and text.strip()) and not self.is_busy

    def send(self, text: str) -> Optional[TurnResult]:
        """
        Submit one learner message.

        Returns the TurnResult, or None when the input was ignored (empty or
        busy) or the turn failed; after a failure `notice` holds the message
        to show the learner.
        """
        if not self.can_send(text):
            return None

        self.notice = None
        try:
            result = self.orchestrator.submit_turn(
                self.user_id,
                self.conversation_id,
                text,
                list(self.messages),
                on_state=self._set_state,
            )
        except PartnerError:
            logger.error(f"Turn in {self.conversation_id} abandoned", exc_info=True)
            self._set_state(TurnState.FAILED)
            self.notice = GENERIC_ERROR_NOTICE
            self._resync()
            return None

        self.messages.extend([result.user_message, result.assistant_message])
        if result.correction is not None:
            self.corrections[result.user_message.message_id] = result.correction
        return result

    def _resync(self) -> None:
        """Reload messages after a failed turn; records already saved stay."""
        try:
            self.messages = self.store.get_messages(self.conversation_id)
        except PartnerError as e:
            logger.warning(f"Could not reload messages for {self.conversation_id}: {e}")

    def correction_for(self, message_id: str) -> Optional[Correction]:
        return self.corrections.get(message_id)

    def dismiss_correction(self, message_id: str) -> None:
        """Delete the correction shown beside a message; the message stays."""
        correction = self.corrections.get(message_id)
        if correction is None:
            raise NotFoundError(f"No correction for message {message_id}")
        self.store.delete_correction(self.conversation_id, correction.correction_id)
        del self.corrections[message_id]
        for message in self.messages:
            if message.message_id == message_id:
                message.correction_id = None
