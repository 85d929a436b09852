# =============================================================================
# unihost_core/services/messages.py
# Message CRUD
# =============================================================================

from __future__ import annotations
import uuid
from datetime import datetime
from typing import List, Optional

from unihost_core.data import BaseGateway, TABLE_MESSAGES
from unihost_core.errors import error_boundary
from unihost_core.models import Message, MessageStatus, isoformat, utcnow
from unihost_core.services.base_service import BaseService
from unihost_core.services.conversations import ConversationService


class MessageService(BaseService):

    def __init__(self, gateway: BaseGateway, conversations: Optional[ConversationService] = None):
        super().__init__(gateway)
        self.conversations = conversations or ConversationService(gateway)

    @error_boundary(default_return=None)
    async def create_message(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
        is_from_host: bool,
        message_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Optional[Message]:
        """
        Insert a message and bump the conversation's last_message_at.

        ``message_id`` lets the caller pick the id up front, so a copy it
        appended optimistically and the pushed INSERT share one id.
        """
        created_at = created_at or utcnow()
        row = await self.gateway.insert(TABLE_MESSAGES, {
            "id": message_id or str(uuid.uuid4()),
            "conversation_id": conversation_id,
            "sender_id": sender_id,
            "content": content,
            "is_from_host": is_from_host,
            "status": MessageStatus.SENT.value,
            "created_at": isoformat(created_at),
        })
        message = self.decode(Message, row)

        if not await self.conversations.touch_last_message(conversation_id, message.created_at):
            self.logger.warning(f"Could not bump last_message_at for {conversation_id}")
        return message

    @error_boundary(default_return=None)
    async def list_by_conversation(self, conversation_id: str) -> Optional[List[Message]]:
        """Messages of one conversation, oldest first; None when the fetch fails."""
        rows = await self.gateway.select(
            TABLE_MESSAGES,
            filters={"conversation_id": conversation_id},
            order_by="created_at",
            ascending=True,
        )
        return self.decode_all(Message, rows)

    @error_boundary(default_return=False)
    async def update_status(self, message_id: str, status: MessageStatus) -> bool:
        """Advance a message's delivery status. Regressions are refused."""
        row = await self.gateway.select_one(TABLE_MESSAGES, filters={"id": message_id})
        if row is None:
            return False

        current = MessageStatus(row.get("status") or MessageStatus.SENT.value)
        if not current.can_advance_to(status):
            self.logger.warning(
                f"Refusing status change {current.value} -> {status.value} for message {message_id}"
            )
            return False

        return await self.gateway.update(TABLE_MESSAGES, {"id": message_id}, {"status": status.value})
