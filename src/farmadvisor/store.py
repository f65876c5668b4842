"""Concrete implementations for conversation session stores."""

import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from .models import SYSTEM_ROLE, ChatMessage, ConversationState, TelemetrySnapshot
from .prompts import SYSTEM_PROMPT


class Store(ABC):
    """Interface for holding per-session conversation state.

    A session is one user talking about one farm. Implementations keep at most
    ``max_messages`` non-system messages per session and drop the oldest first;
    the pinned system message is never dropped.
    """

    max_messages: int

    @abstractmethod
    def load_session(self, user_id: str, farm_id: str) -> ConversationState:
        """Returns the session, creating an empty one if needed."""
        pass

    @abstractmethod
    def append(self, user_id: str, farm_id: str, *messages: ChatMessage) -> None:
        """Atomically appends messages to the session."""
        pass

    @abstractmethod
    def set_snapshot(
        self, user_id: str, farm_id: str, snapshot: TelemetrySnapshot
    ) -> None:
        """Records the most recent snapshot used for the session."""
        pass

    @abstractmethod
    def clear(self, user_id: str, farm_id: str) -> None:
        """Drops the session's messages, keeping the pinned system message."""
        pass

    @abstractmethod
    def list_sessions(self, user_id: str) -> List[str]:
        """Lists the farm ids the user has sessions for."""
        pass

    def window(self, user_id: str, farm_id: str) -> List[ChatMessage]:
        """The pinned system message followed by the bounded history."""
        state = self.load_session(user_id, farm_id)
        return [state.system_message, *state.messages[-self.max_messages :]]

    def latest_snapshot(
        self, user_id: str, farm_id: str
    ) -> Optional[TelemetrySnapshot]:
        return self.load_session(user_id, farm_id).snapshot


class InMemory(Store):
    """Keeps sessions in an in-memory dictionary.

    Sessions are immutable :class:`ConversationState` values swapped under a
    lock, so readers never observe a half-applied append.
    """

    def __init__(self, max_messages: int = 20, system_prompt: str = SYSTEM_PROMPT):
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        self.max_messages = max_messages
        self.system_prompt = system_prompt
        self._sessions: Dict[Tuple[str, str], ConversationState] = {}
        self._lock = threading.Lock()

    def _new_session(self, user_id: str, farm_id: str) -> ConversationState:
        return ConversationState(
            user_id=user_id,
            farm_id=farm_id,
            system_message=ChatMessage(role=SYSTEM_ROLE, content=self.system_prompt),
        )

    def _get(self, user_id: str, farm_id: str) -> ConversationState:
        key = (user_id, farm_id)
        state = self._sessions.get(key)
        if state is None:
            state = self._new_session(user_id, farm_id)
            self._sessions[key] = state
        return state

    def load_session(self, user_id: str, farm_id: str) -> ConversationState:
        with self._lock:
            return self._get(user_id, farm_id)

    def append(self, user_id: str, farm_id: str, *messages: ChatMessage) -> None:
        if any(m.role == SYSTEM_ROLE for m in messages):
            raise ValueError("System messages are pinned per session and cannot be appended")
        with self._lock:
            state = self._get(user_id, farm_id)
            kept = (state.messages + tuple(messages))[-self.max_messages :]
            self._sessions[(user_id, farm_id)] = state.model_copy(
                update={"messages": kept}
            )

    def set_snapshot(
        self, user_id: str, farm_id: str, snapshot: TelemetrySnapshot
    ) -> None:
        with self._lock:
            state = self._get(user_id, farm_id)
            self._sessions[(user_id, farm_id)] = state.model_copy(
                update={"snapshot": snapshot}
            )

    def clear(self, user_id: str, farm_id: str) -> None:
        with self._lock:
            state = self._get(user_id, farm_id)
            self._sessions[(user_id, farm_id)] = state.model_copy(
                update={"messages": ()}
            )

    def list_sessions(self, user_id: str) -> List[str]:
        with self._lock:
            return [farm for user, farm in self._sessions if user == user_id]
