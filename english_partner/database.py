"""
Firebase Firestore record store for English Partner.

This module handles all persistence, including:
- Users and their accumulated grammar weaknesses
- Conversations and their ordered messages
- Grammar corrections linked to user messages
- Quizzes with their questions and answers

Collection structure:
- users/{user_id}                                           -> User
- conversations/{conversation_id}                           -> Conversation
- conversations/{conversation_id}/messages/{message_id}     -> Message
- corrections/{correction_id}                               -> Correction
- quizzes/{quiz_id}                                         -> Quiz
- quizzes/{quiz_id}/questions/{question_id}                 -> Question
- quizzes/{quiz_id}/questions/{question_id}/answers/{id}    -> Answer

When no Firestore credentials are configured the client runs in local mode,
keeping the same records in process memory.
"""

import os
import threading
from collections import defaultdict
from contextlib import contextmanager
from typing import Dict, List, Optional, Any, Iterator

import firebase_admin
from firebase_admin import credentials, firestore

from .config import DEFAULT_MAX_WEAKNESSES
from .errors import AuthorizationError, NotFoundError, PartnerError, StoreError
from .logger import logger
from .models import (
    ROLES,
    Answer,
    Conversation,
    Correction,
    Message,
    Question,
    Quiz,
    User,
    new_id,
    utc_now,
)

MESSAGE_UPDATABLE_FIELDS = ("content", "correction_id")


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    """Wrap Firestore failures as StoreError; let our own errors through."""
    try:
        yield
    except PartnerError:
        raise
    except Exception as e:
        logger.error(f"[DB] {action} failed: {e}")
        raise StoreError(f"{action} failed") from e


def _require_user(user_id: Optional[str]) -> str:
    if not user_id:
        raise AuthorizationError("No authenticated user")
    return user_id


class DatabaseClient:
    """
    Record store backed by Firestore, or by process memory in local mode.
    """

    def __init__(self, max_weaknesses: int = DEFAULT_MAX_WEAKNESSES):
        self.db = None
        self._initialized = False
        self.max_weaknesses = max_weaknesses

        # Local mode: collection name -> record id -> document
        self._local: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self._lock = threading.RLock()

    def initialize(self, credentials_path: Optional[str] = None) -> bool:
        """
        Initialize the Firestore connection.

        Args:
            credentials_path: Path to a Firebase service account JSON.
                              If None, uses FIREBASE_CREDENTIALS_PATH env var.

        Returns:
            True if connected, False if running in local mode.
        """
        logger.separator("Database Initialization")

        if self._initialized:
            logger.debug("[DB] Already initialized, skipping")
            return True

        creds_path = credentials_path or os.getenv("FIREBASE_CREDENTIALS_PATH")
        if not creds_path:
            logger.warning("[DB] FIREBASE_CREDENTIALS_PATH not set, using local mode")
            return False

        if not os.path.exists(creds_path):
            logger.error(f"[DB] Credentials file not found at: {creds_path}")
            logger.warning("[DB] Falling back to local mode")
            return False

        with _store_errors("Firestore initialization"):
            logger.debug(f"[DB] Loading Firebase credentials from {creds_path}")
            try:
                app = firebase_admin.get_app()
            except ValueError:
                app = firebase_admin.initialize_app(credentials.Certificate(creds_path))
            self.db = firestore.client(app)
            self._initialized = True

        logger.success("[DB] Firebase Firestore connected successfully!")
        return True

    def is_connected(self) -> bool:
        """Check if Firestore is connected (False means local mode)."""
        return self._initialized and self.db is not None

    # ------------------------------------------------------------------
    # Local mode helpers
    # ------------------------------------------------------------------

    def _local_get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            doc = self._local[collection].get(record_id)
            return dict(doc) if doc is not None else None

    def _local_put(self, collection: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._local[collection][record_id] = dict(data)
        logger.db_write(collection, record_id)

    def _local_where(self, collection: str, **filters: Any) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                dict(doc) for doc in self._local[collection].values()
                if all(doc.get(k) == v for k, v in filters.items())
            ]

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user(self, user_id: Optional[str]) -> User:
        uid = _require_user(user_id)

        if not self.is_connected():
            data = self._local_get("users", uid)
        else:
            with _store_errors("Loading user"):
                doc = self.db.collection("users").document(uid).get()
                data = doc.to_dict() if doc.exists else None

        if data is None:
            raise NotFoundError(f"User {uid} not found")
        return User.from_dict(data)

    def get_or_create_user(self, user_id: Optional[str]) -> User:
        """Get an existing user or create an empty profile."""
        uid = _require_user(user_id)
        try:
            return self.get_user(uid)
        except NotFoundError:
            pass

        user = User(user_id=uid, created_at=utc_now())
        if not self.is_connected():
            self._local_put("users", uid, user.to_dict())
        else:
            with _store_errors("Creating user"):
                self.db.collection("users").document(uid).set(user.to_dict())
        logger.success(f"[DB] Created new user profile: {uid}")
        return user

    def append_user_weakness(self, user_id: Optional[str], focus: str) -> User:
        """
        Append a grammar focus label to the user's weaknesses.

        The list keeps only the most recent `max_weaknesses` labels.
        """
        uid = _require_user(user_id)
        limit = self.max_weaknesses

        if not self.is_connected():
            with self._lock:
                user = self.get_or_create_user(uid)
                user.weaknesses = (user.weaknesses + [focus])[-limit:]
                self._local_put("users", uid, user.to_dict())
            logger.db(f"Weakness appended for {uid}: {focus}")
            return user

        ref = self.db.collection("users").document(uid)

        @firestore.transactional
        def _append(transaction) -> User:
            snapshot = ref.get(transaction=transaction)
            if snapshot.exists:
                user = User.from_dict(snapshot.to_dict())
            else:
                user = User(user_id=uid, created_at=utc_now())
            user.weaknesses = (user.weaknesses + [focus])[-limit:]
            transaction.set(ref, user.to_dict())
            return user

        with _store_errors("Appending weakness"):
            user = _append(self.db.transaction())
        logger.db(f"Weakness appended for {uid}: {focus}")
        return user

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def create_conversation(self, user_id: Optional[str], title: str = "English Practice") -> Conversation:
        uid = _require_user(user_id)
        self.get_or_create_user(uid)
        conversation = Conversation(
            conversation_id=new_id(),
            user_id=uid,
            title=title,
            created_at=utc_now(),
        )

        if not self.is_connected():
            self._local_put("conversations", conversation.conversation_id, conversation.to_dict())
        else:
            with _store_errors("Creating conversation"):
                self.db.collection("conversations").document(conversation.conversation_id)\
                       .set(conversation.to_dict())
        logger.success(f"[DB] Conversation created: {conversation.conversation_id}")
        return conversation

    def find_conversation(self, conversation_id: str, user_id: Optional[str]) -> Conversation:
        """Load a conversation owned by `user_id`."""
        uid = _require_user(user_id)

        if not self.is_connected():
            data = self._local_get("conversations", conversation_id)
        else:
            with _store_errors("Loading conversation"):
                doc = self.db.collection("conversations").document(conversation_id).get()
                data = doc.to_dict() if doc.exists else None

        if data is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        conversation = Conversation.from_dict(data)
        if conversation.user_id != uid:
            raise AuthorizationError(f"Conversation {conversation_id} belongs to another user")
        return conversation

    def list_conversations(self, user_id: Optional[str]) -> List[Conversation]:
        """All of a user's conversations, newest first."""
        uid = _require_user(user_id)

        if not self.is_connected():
            docs = self._local_where("conversations", user_id=uid)
        else:
            with _store_errors("Listing conversations"):
                query = self.db.collection("conversations").where("user_id", "==", uid)
                docs = [doc.to_dict() for doc in query.stream()]

        conversations = [Conversation.from_dict(d) for d in docs]
        conversations.sort(key=lambda c: c.created_at, reverse=True)
        return conversations

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def _messages_ref(self, conversation_id: str):
        return self.db.collection("conversations").document(conversation_id).collection("messages")

    def get_messages(self, conversation_id: str) -> List[Message]:
        """Messages of a conversation in creation order."""
        if not self.is_connected():
            docs = self._local_where("messages", conversation_id=conversation_id)
        else:
            with _store_errors("Loading messages"):
                query = self._messages_ref(conversation_id).order_by("created_at")
                docs = [doc.to_dict() for doc in query.stream()]
        return [Message.from_dict(d) for d in docs]

    def get_message(self, conversation_id: str, message_id: str) -> Message:
        if not self.is_connected():
            data = self._local_get("messages", message_id)
            if data is not None and data.get("conversation_id") != conversation_id:
                data = None
        else:
            with _store_errors("Loading message"):
                doc = self._messages_ref(conversation_id).document(message_id).get()
                data = doc.to_dict() if doc.exists else None

        if data is None:
            raise NotFoundError(f"Message {message_id} not found")
        return Message.from_dict(data)

    def create_message(
        self,
        user_id: Optional[str],
        conversation_id: str,
        role: str,
        content: str,
    ) -> Message:
        """Persist a message in a conversation the user owns."""
        if role not in ROLES:
            raise ValueError(f"Invalid message role: {role!r}")
        self.find_conversation(conversation_id, user_id)

        message = Message(
            message_id=new_id(),
            conversation_id=conversation_id,
            role=role,
            content=content,
            created_at=utc_now(),
        )

        if not self.is_connected():
            self._local_put("messages", message.message_id, message.to_dict())
        else:
            with _store_errors("Creating message"):
                self._messages_ref(conversation_id).document(message.message_id).set(message.to_dict())
                logger.db_write("messages", message.message_id)
        return message

    def update_message(self, conversation_id: str, message_id: str, changes: Dict[str, Any]) -> Message:
        """Apply `changes` to a stored message and return the updated record."""
        unknown = set(changes) - set(MESSAGE_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update message fields: {sorted(unknown)}")

        message = self.get_message(conversation_id, message_id)
        for key, value in changes.items():
            setattr(message, key, value)

        if not self.is_connected():
            self._local_put("messages", message_id, message.to_dict())
        else:
            with _store_errors("Updating message"):
                self._messages_ref(conversation_id).document(message_id).update(changes)
        return message

    # ------------------------------------------------------------------
    # Corrections
    # ------------------------------------------------------------------

    def create_correction(
        self,
        conversation_id: str,
        message_id: str,
        original: str,
        corrected: str,
        focus: str,
    ) -> Correction:
        """Persist a correction and link it to its message."""
        self.get_message(conversation_id, message_id)

        correction = Correction(
            correction_id=new_id(),
            message_id=message_id,
            conversation_id=conversation_id,
            original=original,
            corrected=corrected,
            focus=focus,
            created_at=utc_now(),
        )

        if not self.is_connected():
            self._local_put("corrections", correction.correction_id, correction.to_dict())
        else:
            with _store_errors("Creating correction"):
                self.db.collection("corrections").document(correction.correction_id)\
                       .set(correction.to_dict())
                logger.db_write("corrections", correction.correction_id)

        self.update_message(conversation_id, message_id, {"correction_id": correction.correction_id})
        return correction

    def get_correction(self, correction_id: str) -> Correction:
        if not self.is_connected():
            data = self._local_get("corrections", correction_id)
        else:
            with _store_errors("Loading correction"):
                doc = self.db.collection("corrections").document(correction_id).get()
                data = doc.to_dict() if doc.exists else None

        if data is None:
            raise NotFoundError(f"Correction {correction_id} not found")
        return Correction.from_dict(data)

    def get_correction_for_message(self, message_id: str) -> Optional[Correction]:
        if not self.is_connected():
            docs = self._local_where("corrections", message_id=message_id)
        else:
            with _store_errors("Loading correction"):
                query = self.db.collection("corrections").where("message_id", "==", message_id).limit(1)
                docs = [doc.to_dict() for doc in query.stream()]
        return Correction.from_dict(docs[0]) if docs else None

    def delete_correction(self, conversation_id: str, correction_id: str) -> None:
        """
        Delete a correction by its own id. The message it annotated stays;
        only its link to the correction is cleared.
        """
        correction = self.get_correction(correction_id)
        if correction.conversation_id != conversation_id:
            raise NotFoundError(f"Correction {correction_id} not found in {conversation_id}")

        if not self.is_connected():
            with self._lock:
                self._local["corrections"].pop(correction_id, None)
        else:
            with _store_errors("Deleting correction"):
                self.db.collection("corrections").document(correction_id).delete()

        try:
            message = self.get_message(conversation_id, correction.message_id)
        except NotFoundError:
            message = None
        if message is not None and message.correction_id == correction_id:
            self.update_message(conversation_id, message.message_id, {"correction_id": None})
        logger.db(f"Correction deleted: {correction_id}")

    # ------------------------------------------------------------------
    # Quizzes
    # ------------------------------------------------------------------

    def _load_quiz_children(self, quiz: Quiz) -> Quiz:
        if not self.is_connected():
            question_docs = self._local_where("questions", quiz_id=quiz.quiz_id)
            questions = [Question.from_dict(d) for d in question_docs]
            for question in questions:
                answer_docs = self._local_where("answers", question_id=question.question_id)
                question.answers = sorted((Answer.from_dict(d) for d in answer_docs),
                                          key=lambda a: a.position)
        else:
            with _store_errors("Loading quiz questions"):
                questions_ref = self.db.collection("quizzes").document(quiz.quiz_id).collection("questions")
                questions = [Question.from_dict(doc.to_dict()) for doc in questions_ref.stream()]
                for question in questions:
                    answers_ref = questions_ref.document(question.question_id).collection("answers")
                    question.answers = sorted((Answer.from_dict(doc.to_dict()) for doc in answers_ref.stream()),
                                              key=lambda a: a.position)

        quiz.questions = sorted(questions, key=lambda q: q.position)
        return quiz

    def find_quiz_by_topic(self, user_id: Optional[str], topic: str) -> Optional[Quiz]:
        uid = _require_user(user_id)

        if not self.is_connected():
            docs = self._local_where("quizzes", user_id=uid, topic=topic)
        else:
            with _store_errors("Finding quiz"):
                query = self.db.collection("quizzes")\
                              .where("user_id", "==", uid)\
                              .where("topic", "==", topic)\
                              .limit(1)
                docs = [doc.to_dict() for doc in query.stream()]

        if not docs:
            return None
        return self._load_quiz_children(Quiz.from_dict(docs[0]))

    def get_quiz(self, quiz_id: str, user_id: Optional[str]) -> Quiz:
        """Load a quiz owned by `user_id`, with questions and answers."""
        uid = _require_user(user_id)

        if not self.is_connected():
            data = self._local_get("quizzes", quiz_id)
        else:
            with _store_errors("Loading quiz"):
                doc = self.db.collection("quizzes").document(quiz_id).get()
                data = doc.to_dict() if doc.exists else None

        if data is None:
            raise NotFoundError(f"Quiz {quiz_id} not found")
        quiz = Quiz.from_dict(data)
        if quiz.user_id != uid:
            raise AuthorizationError(f"Quiz {quiz_id} belongs to another user")
        return self._load_quiz_children(quiz)

    def list_quizzes(self, user_id: Optional[str]) -> List[Quiz]:
        uid = _require_user(user_id)

        if not self.is_connected():
            docs = self._local_where("quizzes", user_id=uid)
        else:
            with _store_errors("Listing quizzes"):
                query = self.db.collection("quizzes").where("user_id", "==", uid)
                docs = [doc.to_dict() for doc in query.stream()]

        quizzes = [self._load_quiz_children(Quiz.from_dict(d)) for d in docs]
        quizzes.sort(key=lambda q: q.created_at, reverse=True)
        return quizzes

    def create_quiz_with_questions_and_answers(self, quiz: Quiz) -> Quiz:
        """
        Persist a quiz with all its questions and answers in one atomic write.

        Readers never observe a quiz without its full set of questions.
        """
        _require_user(quiz.user_id)

        if not self.is_connected():
            questions = {q.question_id: q.to_dict() for q in quiz.questions}
            answers = {a.answer_id: a.to_dict() for q in quiz.questions for a in q.answers}
            with self._lock:
                self._local["questions"].update(questions)
                self._local["answers"].update(answers)
                self._local["quizzes"][quiz.quiz_id] = quiz.to_dict()
        else:
            quiz_ref = self.db.collection("quizzes").document(quiz.quiz_id)
            batch = self.db.batch()
            batch.set(quiz_ref, quiz.to_dict())
            for question in quiz.questions:
                question_ref = quiz_ref.collection("questions").document(question.question_id)
                batch.set(question_ref, question.to_dict())
                for answer in question.answers:
                    batch.set(question_ref.collection("answers").document(answer.answer_id), answer.to_dict())
            with _store_errors("Creating quiz"):
                batch.commit()

        logger.db_write("quizzes", quiz.quiz_id)
        logger.success(f"[DB] Quiz saved: {quiz.topic} ({len(quiz.questions)} questions)")
        return quiz
