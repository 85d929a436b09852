# =============================================================================
# unihost_core/services/suggestions.py
# AI Suggestion generation and CRUD
# =============================================================================

from __future__ import annotations
import asyncio
import uuid
from typing import List, Optional, Set

from unihost_core.ai import SuggestionConnector, SuggestionResult, fallback_reply
from unihost_core.data import BaseGateway, TABLE_SUGGESTIONS
from unihost_core.errors import SuggestionServiceError, SuggestionUnavailableError, error_boundary
from unihost_core.models import AI_SESSION_COLUMN, AiSuggestion, Conversation, Message
from unihost_core.services.base_service import BaseService
from unihost_core.services.conversations import ConversationService


def build_context(messages: List[Message], new_content: str) -> str:
    """Transcript sent to the AI service: one "Host:"/"Guest:" line per message."""
    lines = [f"{'Host' if m.is_from_host else 'Guest'}: {m.content}" for m in messages]
    lines.append(f"Guest: {new_content}")
    return "\n".join(lines)


class SuggestionService(BaseService):
    """
    Generates reply suggestions and stores them per conversation.

    At most one generation runs per conversation at a time; a second
    request while one is in flight returns None. This keeps "the current
    suggestion" unambiguous.
    """

    def __init__(
        self,
        gateway: BaseGateway,
        connector: SuggestionConnector,
        conversations: Optional[ConversationService] = None,
    ):
        super().__init__(gateway)
        self.connector = connector
        self.conversations = conversations or ConversationService(gateway)
        self._in_flight: Set[str] = set()

    def is_generating(self, conversation_id: str) -> bool:
        return conversation_id in self._in_flight

    async def _ask(self, context_text: str, session_id: Optional[str]) -> SuggestionResult:
        try:
            return await asyncio.to_thread(self.connector.fetch_suggestion, context_text, session_id)
        except SuggestionUnavailableError as e:
            self.logger.warning(f"AI service unreachable, using fallback reply: {e}")
        except SuggestionServiceError as e:
            self.logger.error(f"AI service failed, using fallback reply: {e}")
        except Exception as e:
            self.logger.error(f"Unexpected AI connector error, using fallback reply: {e}")
        return SuggestionResult(content=fallback_reply(context_text), session_id=session_id)

    async def generate_suggestion(
        self,
        conversation: Conversation,
        context_text: str,
    ) -> Optional[AiSuggestion]:
        """
        Ask the AI service for a reply and store it.

        Args:
            conversation: Conversation the suggestion belongs to
            context_text: Transcript (see ``build_context``)

        Returns:
            The stored suggestion, or None if one is already being generated
            for this conversation or the insert failed
        """
        cid = conversation.id
        if cid in self._in_flight:
            self.logger.info(f"Suggestion already in progress for {cid}, ignoring request")
            return None

        self._in_flight.add(cid)
        try:
            result = await self._ask(context_text, conversation.ai_session_id)
            return await self._store(conversation, result)
        finally:
            self._in_flight.discard(cid)

    @error_boundary(default_return=None)
    async def _store(self, conversation: Conversation, result: SuggestionResult) -> Optional[AiSuggestion]:
        record = {
            "id": str(uuid.uuid4()),
            "conversation_id": conversation.id,
            "content": result.content,
            "is_used": False,
        }
        if result.session_id:
            record[AI_SESSION_COLUMN] = result.session_id

        row = await self.gateway.insert(TABLE_SUGGESTIONS, record)

        if result.session_id and result.session_id != conversation.ai_session_id:
            await self.conversations.set_ai_session_id(conversation.id, result.session_id)

        return self.decode(AiSuggestion, row)

    @error_boundary(default_return=None)
    async def list_by_conversation(self, conversation_id: str) -> Optional[List[AiSuggestion]]:
        """Suggestions of one conversation, newest first; None when the fetch fails."""
        rows = await self.gateway.select(
            TABLE_SUGGESTIONS,
            filters={"conversation_id": conversation_id},
            order_by="created_at",
            ascending=False,
        )
        return self.decode_all(AiSuggestion, rows)

    @error_boundary(default_return=None)
    async def get_latest(self, conversation_id: str) -> Optional[AiSuggestion]:
        """Newest unused suggestion stored for the conversation."""
        rows = await self.gateway.select(
            TABLE_SUGGESTIONS,
            filters={"conversation_id": conversation_id, "is_used": False},
            order_by="created_at",
            ascending=False,
            limit=1,
        )
        return self.decode(AiSuggestion, rows[0]) if rows else None

    @error_boundary(default_return=False)
    async def mark_used(self, suggestion_id: str) -> bool:
        return await self.gateway.update(TABLE_SUGGESTIONS, {"id": suggestion_id}, {"is_used": True})
