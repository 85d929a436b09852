# =============================================================================
# unihost_core/services/conversations.py
# Conversation CRUD and the create-conversation flow
# =============================================================================

from __future__ import annotations
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from unihost_core.config import DEMO_HOST_EMAIL, DEMO_HOST_ID, DEMO_HOST_USERNAME
from unihost_core.data import (
    BaseGateway,
    CONVERSATION_DETAILS_SELECT,
    TABLE_CONVERSATIONS,
    TABLE_MESSAGES,
)
from unihost_core.errors import UniHostError, error_boundary
from unihost_core.models import (
    AI_SESSION_COLUMN,
    Conversation,
    MessageStatus,
    NewConversationData,
    Platform,
    isoformat,
    utcnow,
)
from unihost_core.services.base_service import BaseService
from unihost_core.services.properties import PropertyService
from unihost_core.services.users import UserService


def guest_email_for(guest_name: str) -> str:
    """Unique placeholder address for guests created without an email."""
    local = guest_name.strip().lower().replace(" ", ".")
    return f"{local}.{uuid.uuid4().hex[:8]}@example.com"


class ConversationService(BaseService):

    def __init__(
        self,
        gateway: BaseGateway,
        users: Optional[UserService] = None,
        properties: Optional[PropertyService] = None,
    ):
        super().__init__(gateway)
        self.users = users or UserService(gateway)
        self.properties = properties or PropertyService(gateway)

    # =========================================================================
    # CREATE
    # =========================================================================

    @error_boundary(default_return=None)
    async def create_conversation(
        self,
        host_id: str,
        data: NewConversationData,
    ) -> Optional[Conversation]:
        """
        Create a conversation between ``host_id`` and the guest in ``data``.

        Steps:
            1. verify the host exists (the demo host is created on demand)
            2. reuse the guest by username, or create one
            3. find or create the property by (name, host)
            4. insert the conversation with last_message_at = now
            5. insert the initial guest message with the same timestamp

        Returns:
            The joined conversation, or None if any step failed
        """
        with self.log_operation(f"Creating conversation for {data.guest_name}"):
            host = await self.users.get_user_by_id(host_id)
            if host is None and host_id == DEMO_HOST_ID:
                host = await self.users.create_user(
                    DEMO_HOST_USERNAME, DEMO_HOST_EMAIL, is_host=True, user_id=DEMO_HOST_ID
                )
            if host is None:
                raise UniHostError(f"Host {host_id} not found", details={"host_id": host_id})

            guest = await self.users.find_by_username(data.guest_name, is_host=False)
            if guest is None:
                guest = await self.users.create_user(
                    data.guest_name,
                    data.guest_email or guest_email_for(data.guest_name),
                    is_host=False,
                )
            if guest is None:
                raise UniHostError(f"Could not create guest {data.guest_name}")

            platform = Platform.parse(data.platform)
            listing = await self.properties.find_or_create(
                data.property_name, host.id, platform, data.property_location
            )
            if listing is None:
                raise UniHostError(f"Could not resolve property {data.property_name}")

            now = isoformat(utcnow())
            record: Dict[str, Any] = {
                "id": str(uuid.uuid4()),
                "property_id": listing.id,
                "guest_id": guest.id,
                "host_id": host.id,
                "platform": platform.value,
                "last_message_at": now,
            }
            if data.check_in_date:
                record["check_in_date"] = data.check_in_date
            if data.check_out_date:
                record["check_out_date"] = data.check_out_date

            row = await self.gateway.insert(TABLE_CONVERSATIONS, record)

            if data.initial_message:
                await self.gateway.insert(TABLE_MESSAGES, {
                    "id": str(uuid.uuid4()),
                    "conversation_id": row["id"],
                    "sender_id": guest.id,
                    "content": data.initial_message,
                    "is_from_host": False,
                    "status": MessageStatus.SENT.value,
                    "created_at": now,
                })

            return await self.get_conversation_details(row["id"])

    # =========================================================================
    # READ
    # =========================================================================

    @error_boundary(default_return=None)
    async def get_conversation_details(self, conversation_id: str) -> Optional[Conversation]:
        """Conversation joined with its property, guest and last message."""
        row = await self.gateway.select_one(
            TABLE_CONVERSATIONS,
            columns=CONVERSATION_DETAILS_SELECT,
            filters={"id": conversation_id},
        )
        return self.decode(Conversation, row)

    @error_boundary(default_return=None)
    async def list_by_host(self, host_id: str) -> Optional[List[Conversation]]:
        """
        All of a host's conversations, most recent activity first.

        Returns None (not an empty list) when the fetch fails, so a failed
        load is never mistaken for a host without conversations.
        """
        rows = await self.gateway.select(
            TABLE_CONVERSATIONS,
            columns=CONVERSATION_DETAILS_SELECT,
            filters={"host_id": host_id},
            order_by="last_message_at",
            ascending=False,
        )
        return self.decode_all(Conversation, rows)

    @error_boundary(default_return=None)
    async def list_for_user(self, user_id: str) -> Optional[List[Conversation]]:
        """Conversations where ``user_id`` is either the host or the guest."""
        rows = await self.gateway.select(
            TABLE_CONVERSATIONS,
            columns=CONVERSATION_DETAILS_SELECT,
            or_filter=[("host_id", user_id), ("guest_id", user_id)],
            order_by="last_message_at",
            ascending=False,
        )
        return self.decode_all(Conversation, rows)

    # =========================================================================
    # UPDATE
    # =========================================================================

    @error_boundary(default_return=False)
    async def update_conversation(self, conversation_id: str, data: Dict[str, Any]) -> bool:
        return await self.gateway.update(TABLE_CONVERSATIONS, {"id": conversation_id}, data)

    async def touch_last_message(self, conversation_id: str, at: Optional[datetime] = None) -> bool:
        return await self.update_conversation(
            conversation_id, {"last_message_at": isoformat(at or utcnow())}
        )

    async def set_ai_session_id(self, conversation_id: str, session_id: str) -> bool:
        return await self.update_conversation(conversation_id, {AI_SESSION_COLUMN: session_id})
