# =============================================================================
# unihost_core/state/entity_cache.py
# Client-Side Entity Cache
# =============================================================================
"""
EntityCache - in-memory normalized store of conversations, messages and
AI suggestions, fed by direct fetches and by push events.

Every write is a merge that is safe to repeat and safe to reorder:
- lists are replaced wholesale only after a full fetch
- appends are a set-union by id
- conversation updates are shallow merges by id

Message and suggestion lists distinguish "not loaded" (``None``) from
"loaded, empty" (``[]``). A list is only ever held for a conversation the
cache knows about.

One cache belongs to one SyncContext. All writes happen on the sync event
loop; readers on other threads get copies.
"""

from __future__ import annotations
from dataclasses import fields, replace
from typing import Any, Callable, Dict, Iterable, List, Optional

from unihost_core.logging import get_logger
from unihost_core.models import AiSuggestion, Conversation, Message, MessageStatus

logger = get_logger(__name__)

ChangeListener = Callable[[int], None]

_CONVERSATION_FIELDS = {f.name for f in fields(Conversation)} - {"id"}


class EntityCache:
    """
    Usage:
        cache = EntityCache()
        cache.set_conversations(conversations)
        cache.append_message(message)       # True if it was new
        current = cache.current_suggestion(conversation_id)
    """

    def __init__(self):
        self._conversations: Dict[str, Conversation] = {}
        self._order: List[str] = []
        self._messages: Dict[str, List[Message]] = {}
        self._suggestions: Dict[str, List[AiSuggestion]] = {}
        self._listeners: List[ChangeListener] = []
        self.conversations_loaded = False
        self.version = 0

    # =========================================================================
    # CHANGE NOTIFICATION
    # =========================================================================

    def add_listener(self, listener: ChangeListener) -> Callable[[], None]:
        """Register ``listener(version)``; returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _changed(self) -> None:
        self.version += 1
        for listener in list(self._listeners):
            try:
                listener(self.version)
            except Exception as e:
                logger.error(f"Error in cache listener: {e}")

    # =========================================================================
    # REPLACE-ALL
    # =========================================================================

    def set_conversations(self, conversations: Iterable[Conversation]) -> None:
        """Replace the conversation list after a full fetch."""
        incoming = list(conversations)
        self._conversations = {c.id: c for c in incoming}
        self._order = list(dict.fromkeys(c.id for c in incoming))

        # Lists of conversations that disappeared would otherwise be orphaned
        for store in (self._messages, self._suggestions):
            for cid in [cid for cid in store if cid not in self._conversations]:
                del store[cid]

        self.conversations_loaded = True
        self._changed()

    def set_messages(self, conversation_id: str, messages: Iterable[Message]) -> bool:
        if conversation_id not in self._conversations:
            logger.warning(f"Ignoring messages for unknown conversation {conversation_id}")
            return False
        self._messages[conversation_id] = _unique_by_id(messages)
        self._changed()
        return True

    def set_suggestions(self, conversation_id: str, suggestions: Iterable[AiSuggestion]) -> bool:
        if conversation_id not in self._conversations:
            logger.warning(f"Ignoring suggestions for unknown conversation {conversation_id}")
            return False
        self._suggestions[conversation_id] = _unique_by_id(suggestions)
        self._changed()
        return True

    # =========================================================================
    # MERGES
    # =========================================================================

    def upsert_conversation(self, conversation: Conversation) -> None:
        """Insert a new conversation at the head, or replace the cached one."""
        if conversation.id not in self._conversations:
            self._order.insert(0, conversation.id)
        else:
            existing = self._conversations[conversation.id]
            if existing.last_message_at > conversation.last_message_at:
                conversation = replace(conversation, last_message_at=existing.last_message_at)
        self._conversations[conversation.id] = conversation
        self._changed()

    def update_conversation(self, conversation_id: str, **changes: Any) -> bool:
        """
        Shallow-merge ``changes`` into a cached conversation.

        No-op (returns False) when the conversation is not cached. Unknown
        field names are ignored. ``last_message_at`` never moves backwards.
        """
        existing = self._conversations.get(conversation_id)
        if existing is None:
            return False

        known = {k: v for k, v in changes.items() if k in _CONVERSATION_FIELDS}
        ignored = set(changes) - set(known)
        if ignored:
            logger.debug(f"Ignoring unknown conversation fields {sorted(ignored)}")

        if "last_message_at" in known and known["last_message_at"] < existing.last_message_at:
            del known["last_message_at"]
        if not known:
            return False

        self._conversations[conversation_id] = replace(existing, **known)
        self._changed()
        return True

    def append_message(self, message: Message) -> bool:
        """
        Add a message to its conversation (set-union by id).

        Returns True if the message was new to the cache. Messages of
        unknown conversations are dropped. When the conversation's messages
        were never loaded only its summary is bumped; the next load brings
        the full list.
        """
        cid = message.conversation_id
        conversation = self._conversations.get(cid)
        if conversation is None:
            logger.debug(f"Dropping message {message.id} for unknown conversation {cid}")
            return False

        added = False
        current = self._messages.get(cid)
        if current is not None and not any(m.id == message.id for m in current):
            self._messages[cid] = current + [message]
            added = True

        bumped = self._bump_last_message(conversation, message)
        if added or bumped:
            self._changed()
        return added

    def _bump_last_message(self, conversation: Conversation, message: Message) -> bool:
        last = conversation.last_message
        if last is not None and last.id != message.id and last.created_at > message.created_at:
            return False
        if last is not None and last == message:
            return False

        self._conversations[conversation.id] = replace(
            conversation,
            last_message=message,
            last_message_at=max(conversation.last_message_at, message.created_at),
        )
        return True

    def discard_message(self, conversation_id: str, message_id: str) -> bool:
        """Roll back an optimistic append whose write failed."""
        current = self._messages.get(conversation_id)
        conversation = self._conversations.get(conversation_id)
        removed = False
        if current is not None and any(m.id == message_id for m in current):
            current = [m for m in current if m.id != message_id]
            self._messages[conversation_id] = current
            removed = True

        if conversation is not None and conversation.last_message and conversation.last_message.id == message_id:
            newest = max(current, key=lambda m: m.created_at) if current else None
            self._conversations[conversation_id] = replace(conversation, last_message=newest)
            removed = True

        if removed:
            self._changed()
        return removed

    def append_suggestion(self, suggestion: AiSuggestion) -> bool:
        """Add a suggestion to its conversation (set-union by id)."""
        cid = suggestion.conversation_id
        if cid not in self._conversations:
            logger.debug(f"Dropping suggestion {suggestion.id} for unknown conversation {cid}")
            return False

        current = self._suggestions.get(cid)
        if current is None or any(s.id == suggestion.id for s in current):
            return False

        self._suggestions[cid] = current + [suggestion]
        self._changed()
        return True

    def update_message_status(self, message_id: str, status: MessageStatus) -> bool:
        """Advance a cached message's status; regressions are ignored."""
        for cid, messages in self._messages.items():
            for index, message in enumerate(messages):
                if message.id != message_id:
                    continue
                if not message.status.can_advance_to(status):
                    return False
                updated = list(messages)
                updated[index] = replace(message, status=status)
                self._messages[cid] = updated
                self._changed()
                return True
        return False

    def mark_suggestion_used(self, conversation_id: str, suggestion_id: Optional[str] = None) -> bool:
        """
        Mark a suggestion used: the one with ``suggestion_id``, or else the
        current one. Used suggestions stay used; returns True on a change.
        """
        suggestions = self._suggestions.get(conversation_id) or []
        if suggestion_id is None:
            target = self.current_suggestion(conversation_id)
        else:
            target = next((s for s in suggestions if s.id == suggestion_id), None)

        if target is None or target.is_used:
            return False

        self._suggestions[conversation_id] = [
            replace(s, is_used=True) if s.id == target.id else s for s in suggestions
        ]
        self._changed()
        return True

    def clear(self) -> None:
        self._conversations.clear()
        self._order.clear()
        self._messages.clear()
        self._suggestions.clear()
        self.conversations_loaded = False
        self._changed()

    # =========================================================================
    # READS
    # =========================================================================

    @property
    def conversations(self) -> List[Conversation]:
        """Cached conversations, most recent activity first."""
        ordered = [self._conversations[cid] for cid in list(self._order) if cid in self._conversations]
        # Stable sort keeps head insertion order for equal timestamps
        return sorted(ordered, key=lambda c: c.last_message_at, reverse=True)

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        return self._conversations.get(conversation_id)

    def messages_for(self, conversation_id: str) -> Optional[List[Message]]:
        messages = self._messages.get(conversation_id)
        return list(messages) if messages is not None else None

    def suggestions_for(self, conversation_id: str) -> Optional[List[AiSuggestion]]:
        suggestions = self._suggestions.get(conversation_id)
        return list(suggestions) if suggestions is not None else None

    def current_suggestion(self, conversation_id: str) -> Optional[AiSuggestion]:
        """Most recent unused suggestion, or None."""
        unused = [s for s in self._suggestions.get(conversation_id) or [] if not s.is_used]
        if not unused:
            return None
        return max(unused, key=lambda s: s.created_at)


def _unique_by_id(items: Iterable[Any]) -> List[Any]:
    seen = set()
    unique = []
    for item in items:
        if item.id not in seen:
            seen.add(item.id)
            unique.append(item)
    return unique
