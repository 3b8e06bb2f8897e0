"""Conversation context store.

Keeps the recent turns of each (user, channel) conversation so follow-up
prompts can be dispatched with prior context. Conversations expire after a
TTL measured from their last update, and the store is bounded in size with
least-recently-used eviction.
"""

from __future__ import annotations

import dataclasses
import threading
import time
from collections import OrderedDict
from typing import Protocol

from ..router.types import MAX_CONTEXT_MESSAGES, ConversationContext, ConversationMessage

SEVEN_DAYS = 7 * 24 * 60 * 60


class ContextStore(Protocol):
    """What the dispatch engine needs from a context collaborator."""

    def get_context(self, user_id: str, channel_id: str) -> ConversationContext | None: ...

    def add_message(
        self, user_id: str, channel_id: str, message: ConversationMessage
    ) -> None: ...

    def clear_context(self, user_id: str, channel_id: str) -> None: ...


class InMemoryContextStore:
    """Thread-safe in-process context store with TTL and LRU bounds."""

    def __init__(
        self,
        ttl_seconds: float = SEVEN_DAYS,
        max_messages: int = MAX_CONTEXT_MESSAGES,
        max_conversations: int = 10000,
    ):
        self._contexts: OrderedDict[str, ConversationContext] = OrderedDict()
        self._lock = threading.Lock()
        self._ttl = ttl_seconds
        self._max_messages = min(max_messages, MAX_CONTEXT_MESSAGES)
        self._max_conversations = max_conversations

    @staticmethod
    def _key(user_id: str, channel_id: str) -> str:
        return f"{user_id}:{channel_id}"

    def get_context(self, user_id: str, channel_id: str) -> ConversationContext | None:
        """Return a copy of the conversation, or None if absent or expired."""
        key = self._key(user_id, channel_id)
        with self._lock:
            self._evict_expired()
            context = self._contexts.get(key)
            if context is None:
                return None
            self._contexts.move_to_end(key)
            return dataclasses.replace(context, messages=list(context.messages))

    def add_message(
        self, user_id: str, channel_id: str, message: ConversationMessage
    ) -> None:
        key = self._key(user_id, channel_id)
        with self._lock:
            self._evict_expired()
            context = self._contexts.get(key)
            if context is None:
                context = ConversationContext(
                    conversation_id=key, max_messages=self._max_messages
                )
                self._contexts[key] = context
            context.append(message)
            self._contexts.move_to_end(key)
            self._enforce_max_size()

    def clear_context(self, user_id: str, channel_id: str) -> None:
        with self._lock:
            self._contexts.pop(self._key(user_id, channel_id), None)

    def _evict_expired(self) -> None:
        now = time.time()
        expired = [
            k for k, v in self._contexts.items()
            if now - v.last_updated_at > self._ttl
        ]
        for k in expired:
            del self._contexts[k]

    def _enforce_max_size(self) -> None:
        while len(self._contexts) > self._max_conversations:
            self._contexts.popitem(last=False)

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._contexts)
